"""
Aesthetic passes, run in a fixed order after collision resolution:
sibling reordering, parent centering, parent side alignment, child pull,
final cleanup, title grouping.
Every move is collision-guarded (see RowLayout.try_move).
"""

from collections import defaultdict
from statistics import median
from typing import Dict, List

import networkx as nx

from family_snapshot import FamilySnapshot, birth_key
from layout_config import LayoutConfig, LayoutRules
from row_layout import CollisionReport, RowLayout, resolve_collisions


class AestheticPasses:
    def __init__(self, snapshot: FamilySnapshot, graph: nx.DiGraph,
                 config: LayoutConfig, rules: LayoutRules):
        self.snapshot = snapshot
        self.graph = graph
        self.config = config
        self.rules = rules

    def run(self, layout: RowLayout) -> CollisionReport:
        if self.rules.sort_by_birth_date:
            self.reorder_siblings(layout)
        if self.rules.center_parent:
            self.center_parents(layout)
        if self.rules.parent_side_alignment:
            self.align_parent_sides(layout)
        self.pull_children(layout)
        report = self.cleanup(layout)
        if self.rules.title_grouping:
            self.group_titles(layout)
        return report

    # --- helpers ---

    def _children(self, layout: RowLayout, cluster_id: str) -> List[str]:
        if cluster_id not in self.graph:
            return []
        return [c for c in self.graph.successors(cluster_id) if c in layout]

    def _parents(self, layout: RowLayout, cluster_id: str) -> List[str]:
        if cluster_id not in self.graph:
            return []
        return [p for p in self.graph.predecessors(cluster_id) if p in layout]

    def _sibling_key(self, layout: RowLayout, parent_id: str, child_cluster_id: str) -> tuple:
        parent_members = set(layout.clusters[parent_id].members)
        keys = []
        for member in layout.clusters[child_cluster_id].members:
            person = self.snapshot.get(member)
            if parent_members & set(self.snapshot.parents(member)):
                keys.append(birth_key(person))
        return min(keys) if keys else birth_key(self.snapshot.get(layout.clusters[child_cluster_id].members[0]))

    # ==================== 1. SIBLING REORDERING ====================

    def reorder_siblings(self, layout: RowLayout):
        """
        Siblings left to right by birth, for every family sharing a row at once.
        Each parent cluster adds "older before younger" precedences to its
        children's row; a precedence that would close a loop (siblings married
        across families) is skipped. The row is then repacked inside its own
        span reusing its gap sequence, so no new collisions appear.
        """
        rows = layout.rows()
        precedence = defaultdict(nx.DiGraph)
        for parent_id in sorted(layout.ids()):
            by_row = defaultdict(list)
            for child_id in self._children(layout, parent_id):
                by_row[layout.row_key(child_id)].append(child_id)

            for row_key, siblings in by_row.items():
                if len(siblings) < 2:
                    continue
                ordered = sorted(siblings, key=lambda c: (self._sibling_key(layout, parent_id, c), c))
                graph = precedence[row_key]
                for i, older in enumerate(ordered):
                    for younger in ordered[i + 1:]:
                        if graph.has_edge(older, younger):
                            continue
                        if younger in graph and older in graph and nx.has_path(graph, younger, older):
                            continue
                        graph.add_edge(older, younger)

        for row_key, graph in precedence.items():
            row = rows[row_key]
            rank = {cid: i for i, cid in enumerate(row)}
            graph.add_nodes_from(row)
            desired = list(nx.lexicographical_topological_sort(graph, key=rank.get))
            if desired == row:
                continue

            gaps = [layout.left(row[i + 1]) - layout.right(row[i]) for i in range(len(row) - 1)]
            cursor = layout.left(row[0])
            for i, cid in enumerate(desired):
                layout.x[cid] = cursor + layout.width(cid) / 2
                cursor += layout.width(cid) + (gaps[i] if i < len(gaps) else 0)

    # ==================== 2. PARENT CENTERING ====================

    def center_parents(self, layout: RowLayout):
        """Bottom-up: parents move over the mean X of their child clusters when there is room."""
        for _ in range(self.config.centering_iterations):
            rows = layout.rows()
            for row_key in sorted(rows, reverse=True):
                row = rows[row_key]
                for i, cid in enumerate(row):
                    kids = self._children(layout, cid)
                    if not kids:
                        continue
                    target = sum(layout.x[k] for k in kids) / len(kids)
                    layout.try_move(cid, target, row, i)

    # ==================== 3. PARENT SIDE ALIGNMENT ====================

    def align_parent_sides(self, layout: RowLayout):
        """
        A married child's parents sit over the child's own box in the couple,
        not over the couple's center. Parent clusters with more than
        two child clusters stay centered.
        """
        owner = {m: cid for cid in layout.ids() for m in layout.clusters[cid].members}
        index = layout.row_index()
        half = self.config.node_width / 2
        for cid in sorted(layout.ids()):
            cluster = layout.clusters[cid]
            if len(cluster.members) < 2:
                continue
            for position, member in enumerate(cluster.members):
                target = layout.left(cid) + cluster.member_offset(position, self.config) + half
                for parent in self.snapshot.parents(member):
                    parent_id = owner.get(parent)
                    if parent_id is None or parent_id == cid:
                        continue
                    if layout.y[parent_id] >= layout.y[cid]:
                        continue
                    if len(self._children(layout, parent_id)) > 2:
                        continue
                    row, i = index[parent_id]
                    layout.try_move(parent_id, target, row, i)

    # ==================== 4. CHILD PULL ====================

    def pull_children(self, layout: RowLayout):
        threshold = self.config.child_pull_threshold
        factor = self.config.child_pull_factor
        rows = layout.rows()
        for row_key in sorted(rows):
            row = rows[row_key]
            for i, cid in enumerate(row):
                parents = self._parents(layout, cid)
                if not parents:
                    continue
                parent_x = sum(layout.x[p] for p in parents) / len(parents)
                distance = parent_x - layout.x[cid]
                if abs(distance) > threshold:
                    layout.try_move(cid, layout.x[cid] + distance * factor, row, i)

    # ==================== 5. FINAL CLEANUP ====================

    def cleanup(self, layout: RowLayout) -> CollisionReport:
        if not self.rules.overlap_resolution:
            return CollisionReport()
        return resolve_collisions(layout, self.config.cleanup_passes)

    # ==================== 6. TITLE GROUPING ====================

    def group_titles(self, layout: RowLayout):
        """Nudges clusters of the same title toward the group's median X (a loose column)."""
        groups: Dict[str, List[str]] = defaultdict(list)
        for cid in layout.ids():
            titles = {self.snapshot.get(m).title for m in layout.clusters[cid].members}
            for title in titles:
                if title:
                    groups[title].append(cid)

        damping = self.config.title_damping
        for title in sorted(groups):
            members = groups[title]
            if len(members) < 2:
                continue
            center = median(layout.x[c] for c in members)
            index = layout.row_index()
            for cid in sorted(members):
                row, i = index[cid]
                layout.try_move(cid, layout.x[cid] + (center - layout.x[cid]) * damping, row, i)
