"""
Orphan grid and final origin normalization.
"""

from typing import Dict, List

from family_snapshot import Position
from layout_config import LayoutConfig
from spouse_clusters import Cluster


def place_orphans(orphan_ids: List[str], clusters: Dict[str, Cluster],
                  positions: Dict[str, Position], config: LayoutConfig) -> Dict[str, Position]:
    """
    Grid below the main tree, wrapping after `orphan_columns` clusters.
    Returns positions for orphan members only; `positions` is not modified.
    """
    placed: Dict[str, Position] = {}
    if not orphan_ids:
        return placed

    if positions:
        start_x = min(p.x for p in positions.values())
        start_y = max(p.y for p in positions.values()) + config.node_height + config.orphan_gap
    else:
        start_x, start_y = 0.0, 0.0

    x, y = start_x, start_y
    for index, cluster_id in enumerate(sorted(orphan_ids)):
        if index and index % config.orphan_columns == 0:
            x = start_x
            y += config.node_height + config.node_sep
        cluster = clusters[cluster_id]
        for member_index, member in enumerate(cluster.members):
            placed[member] = Position(x + cluster.member_offset(member_index, config), y)
        x += cluster.width + config.node_sep
    return placed


def normalize_positions(positions: Dict[str, Position], margin: float) -> Dict[str, Position]:
    """Translates everything so the bounding box starts at (margin, margin)."""
    if not positions:
        return {}
    offset_x = margin - min(p.x for p in positions.values())
    offset_y = margin - min(p.y for p in positions.values())
    return {pid: Position(p.x + offset_x, p.y + offset_y, p.fixed) for pid, p in positions.items()}
