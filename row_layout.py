"""
Row-level working state for clusters, plus the row normalizer, the compactor
and the collision resolver.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Tuple

from family_snapshot import Position
from layout_config import LayoutConfig, LayoutRules
from spouse_clusters import Cluster

# Y values closer than this share a row (float drift tolerance)
ROW_BUCKET = 10.0
EPSILON = 1e-6


@dataclass
class CollisionReport:
    converged: bool = True
    passes: int = 0


class RowLayout:
    """
    Mutable working map of cluster centers (x) and row tops (y).
    Every layout run builds its own instance; nothing here is shared.
    """

    def __init__(self, clusters: Dict[str, Cluster], placed: Dict[str, Tuple[float, float]], config: LayoutConfig):
        self.clusters = clusters
        self.config = config
        self.x: Dict[str, float] = {cid: cx for cid, (cx, _) in placed.items()}
        self.y: Dict[str, float] = {cid: y for cid, (_, y) in placed.items()}

    def __contains__(self, cluster_id) -> bool:
        return cluster_id in self.x

    def ids(self) -> List[str]:
        return list(self.x)

    def width(self, cluster_id: str) -> float:
        return self.clusters[cluster_id].width

    def left(self, cluster_id: str) -> float:
        return self.x[cluster_id] - self.width(cluster_id) / 2

    def right(self, cluster_id: str) -> float:
        return self.x[cluster_id] + self.width(cluster_id) / 2

    def row_key(self, cluster_id: str) -> int:
        return int(round(self.y[cluster_id] / ROW_BUCKET))

    def rows(self) -> Dict[int, List[str]]:
        """Row key -> cluster ids sorted left to right."""
        rows = defaultdict(list)
        for cid in self.x:
            rows[self.row_key(cid)].append(cid)
        return {key: sorted(ids, key=lambda c: (self.x[c], c)) for key, ids in sorted(rows.items())}

    def row_index(self) -> Dict[str, Tuple[List[str], int]]:
        index = {}
        for row in self.rows().values():
            for i, cid in enumerate(row):
                index[cid] = (row, i)
        return index

    def fits(self, cluster_id: str, new_x: float, row: List[str], i: int) -> bool:
        """True when the cluster at new_x keeps min_gap to its immediate row neighbours."""
        half = self.width(cluster_id) / 2
        gap = self.config.min_gap
        if i > 0 and new_x - half < self.right(row[i - 1]) + gap - EPSILON:
            return False
        if i < len(row) - 1 and new_x + half > self.left(row[i + 1]) - gap + EPSILON:
            return False
        return True

    def try_move(self, cluster_id: str, new_x: float, row: List[str], i: int) -> bool:
        if not self.fits(cluster_id, new_x, row, i):
            return False
        self.x[cluster_id] = new_x
        return True

    def person_positions(self) -> Dict[str, Position]:
        positions = {}
        for cid in self.x:
            cluster = self.clusters[cid]
            start = self.left(cid)
            for index, member in enumerate(cluster.members):
                positions[member] = Position(start + cluster.member_offset(index, self.config), self.y[cid])
        return positions


# ==================== ROW NORMALIZER & COMPACTOR ====================

def normalize_rows(layout: RowLayout, cluster_generations: Dict[str, int], rules: LayoutRules):
    """Strict alignment: y follows the generation index, whatever the placer produced."""
    if rules.generation_alignment != 'strict':
        return
    row_height = layout.config.row_height
    for cid in layout.ids():
        gen = cluster_generations.get(cid)
        if gen is not None:
            layout.y[cid] = (gen - 1) * row_height


def compact_rows(layout: RowLayout):
    """Closes part of the slack between row neighbours. Only tightens."""
    fraction = layout.config.compaction_fraction
    min_gap = layout.config.min_gap
    for row in layout.rows().values():
        for i in range(1, len(row)):
            slack = layout.left(row[i]) - layout.right(row[i - 1]) - min_gap
            if slack > EPSILON:
                layout.x[row[i]] -= slack * fraction


# ==================== COLLISION RESOLVER ====================

def resolve_collisions(layout: RowLayout, max_passes: int) -> CollisionReport:
    """
    Spreads overlapping row neighbours apart, keeping their left-to-right order.
    Each row becomes the average of a right-pushed and a left-pushed placement,
    both of which keep min_gap, so the average does too.
    Best effort: returns converged=False when the pass budget runs out.
    """
    for pass_number in range(1, max_passes + 1):
        moved = False
        for row in layout.rows().values():
            if _spread_row(layout, row):
                moved = True
        if not moved:
            return CollisionReport(converged=True, passes=pass_number)
    return CollisionReport(converged=not has_overlap(layout), passes=max_passes)


def _spread_row(layout: RowLayout, row: List[str]) -> bool:
    if len(row) < 2:
        return False
    gap = layout.config.min_gap
    centers = [layout.x[cid] for cid in row]
    half = [layout.width(cid) / 2 for cid in row]

    pushed_right = list(centers)
    for i in range(1, len(row)):
        pushed_right[i] = max(pushed_right[i], pushed_right[i - 1] + half[i - 1] + gap + half[i])
    pushed_left = list(centers)
    for i in range(len(row) - 2, -1, -1):
        pushed_left[i] = min(pushed_left[i], pushed_left[i + 1] - half[i + 1] - gap - half[i])

    moved = False
    for i, cid in enumerate(row):
        new_x = (pushed_right[i] + pushed_left[i]) / 2
        if abs(new_x - centers[i]) > EPSILON:
            layout.x[cid] = new_x
            moved = True
    return moved


def has_overlap(layout: RowLayout) -> bool:
    min_gap = layout.config.min_gap
    for row in layout.rows().values():
        for i in range(len(row) - 1):
            if layout.left(row[i + 1]) - layout.right(row[i]) < min_gap - EPSILON:
                return True
    return False


def collision_budget(config: LayoutConfig, cluster_count: int) -> int:
    """Larger trees get more passes, up to the hard cap."""
    return min(config.collision_max_passes, max(config.collision_passes, cluster_count))
