"""
Family tree layout engine.
Pure and synchronous: takes a snapshot of persons and relationships and returns
a fresh map of node positions. No I/O, no state kept between runs.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from aesthetic_passes import AestheticPasses
from family_snapshot import FamilySnapshot, Position, visible_person_ids
from generation_calculator import assign_generations
from layered_placer import LayeredPlacer, build_cluster_graph
from layout_config import LayoutConfig, LayoutRules
from orphan_placer import normalize_positions, place_orphans
from row_layout import (CollisionReport, RowLayout, collision_budget, compact_rows,
                        normalize_rows, resolve_collisions)
from spouse_clusters import Cluster, build_clusters


@dataclass
class LayoutResult:
    positions: Dict[str, Position] = field(default_factory=dict)
    generations: Dict[str, int] = field(default_factory=dict)
    clusters: Dict[str, Cluster] = field(default_factory=dict)
    orphans: List[str] = field(default_factory=list)
    hidden_orphans: List[str] = field(default_factory=list)
    disconnected: List[str] = field(default_factory=list)
    converged: bool = True
    collision_passes: int = 0

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {pid: pos.as_dict() for pid, pos in self.positions.items()}


def _as_config(value) -> LayoutConfig:
    if isinstance(value, LayoutConfig):
        return value
    return LayoutConfig.from_overrides(value)


def _as_rules(value) -> LayoutRules:
    if isinstance(value, LayoutRules):
        return value
    return LayoutRules.from_overrides(value)


class LayoutEngine:
    def __init__(self, config: Union[LayoutConfig, Mapping, None] = None,
                 rules: Union[LayoutRules, Mapping, None] = None):
        self.config = _as_config(config)
        self.rules = _as_rules(rules)

    def calculate_layout(self, snapshot: FamilySnapshot,
                         collapsed_ids: Iterable[str] = (),
                         root_ids: Optional[Iterable[str]] = None,
                         previous_positions: Optional[Mapping[str, Position]] = None,
                         auto_arrange: bool = False) -> LayoutResult:
        """
        Full relayout.
        Fixed entries of previous_positions are kept verbatim unless auto_arrange
        is requested, which recomputes every node and clears the fixed flags.
        """
        if len(snapshot) == 0:
            return LayoutResult()

        config, rules = self.config, self.rules
        visible = visible_person_ids(snapshot, collapsed_ids)
        assignment = assign_generations(snapshot, visible, root_ids)
        person_to_cluster, clusters = build_clusters(snapshot, visible, config, rules)

        cluster_generations: Dict[str, int] = {}
        cluster_lineages: Dict[str, FrozenSet[str]] = {}
        for cid, cluster in clusters.items():
            gens = [assignment.generations[m] for m in cluster.members if m in assignment.generations]
            if gens:
                cluster_generations[cid] = max(gens)
            cluster_lineages[cid] = frozenset().union(
                *(assignment.lineages.get(m, frozenset()) for m in cluster.members))

        graph = build_cluster_graph(snapshot, person_to_cluster, clusters, rules)
        graph.remove_nodes_from([n for n in list(graph.nodes()) if n not in cluster_generations])
        orphan_clusters = [cid for cid in clusters if cid not in graph]

        placed = LayeredPlacer(config, rules).place(graph, cluster_generations, cluster_lineages)
        layout = RowLayout(clusters, placed, config)
        normalize_rows(layout, cluster_generations, rules)
        if rules.compact_apportioning:
            compact_rows(layout)

        report = CollisionReport()
        if rules.overlap_resolution:
            report = resolve_collisions(layout, collision_budget(config, len(placed)))
        cleanup = AestheticPasses(snapshot, graph, config, rules).run(layout)

        positions = layout.person_positions()
        in_rows = set(positions)
        orphan_members = [m for cid in orphan_clusters for m in clusters[cid].members]
        hidden = []
        if rules.show_orphans:
            positions.update(place_orphans(orphan_clusters, clusters, positions, config))
        else:
            hidden = orphan_members

        if rules.normalize_positions:
            positions = normalize_positions(positions, config.margin)

        if previous_positions and not auto_arrange:
            for pid, previous in previous_positions.items():
                if previous.fixed and pid in positions:
                    positions[pid] = Position(previous.x, previous.y, True)

        return LayoutResult(
            positions=positions,
            generations={pid: g for pid, g in assignment.generations.items() if pid in in_rows},
            clusters=clusters,
            orphans=orphan_members if rules.show_orphans else [],
            hidden_orphans=hidden,
            disconnected=assignment.disconnected,
            converged=report.converged and cleanup.converged,
            collision_passes=report.passes,
        )


def calculate_tree_layout(persons: Iterable[dict], relationships: Iterable[dict] = (),
                          collapsed_ids: Iterable[str] = (),
                          config: Optional[Mapping] = None,
                          rules: Optional[Mapping] = None) -> Dict[str, Dict[str, float]]:
    """Plain-dict entry point: records in, {person_id: {'x', 'y'}} out."""
    snapshot = FamilySnapshot.from_records(persons, relationships)
    return LayoutEngine(config, rules).calculate_layout(snapshot, collapsed_ids).as_dict()
