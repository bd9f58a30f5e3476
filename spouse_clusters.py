"""
Spouse clustering.
People linked by marriage (transitively) form one rigid horizontal unit.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from family_snapshot import FamilySnapshot, Person
from layout_config import LayoutConfig, LayoutRules


@dataclass
class Cluster:
    cluster_id: str
    members: List[str] = field(default_factory=list)
    width: float = 0.0
    height: float = 0.0

    def member_offset(self, index: int, config: LayoutConfig) -> float:
        """Left edge of a member relative to the cluster's left edge."""
        return index * (config.node_width + config.spouse_gap)


def build_clusters(snapshot: FamilySnapshot, visible_ids: Iterable[str],
                   config: LayoutConfig, rules: LayoutRules) -> Tuple[Dict[str, str], Dict[str, Cluster]]:
    """
    Returns (person id -> cluster id, cluster id -> Cluster).
    Persons are visited in ascending id order so the result does not depend on input order.
    """
    visible = set(visible_ids)
    person_to_cluster: Dict[str, str] = {}
    clusters: Dict[str, Cluster] = {}

    for pid in sorted(visible):
        if pid in person_to_cluster:
            continue

        cluster_id = f"cluster-{pid}"
        members = []
        queue = deque([pid])
        while queue:
            current = queue.popleft()
            if current in person_to_cluster:
                continue
            person_to_cluster[current] = cluster_id
            members.append(current)
            for sid in snapshot.spouses(current):
                if sid in visible and sid not in person_to_cluster:
                    queue.append(sid)

        ordered = order_members(snapshot, members, rules)
        width = len(ordered) * config.node_width + (len(ordered) - 1) * config.spouse_gap
        clusters[cluster_id] = Cluster(cluster_id, ordered, width, config.node_height)

    return person_to_cluster, clusters


def order_members(snapshot: FamilySnapshot, members: List[str], rules: LayoutRules) -> List[str]:
    """
    Husband-left convention.
    One husband with exactly two wives: wife, husband, wife (better-ranked wife left).
    Otherwise husbands first, then wives by rank.
    """
    if not rules.spouse_ordering:
        return sorted(members)

    people = [snapshot.get(m) for m in members]
    husbands = sorted((p for p in people if p.is_male), key=lambda p: p.person_id)
    wives = [p for p in people if not p.is_male]
    wives.sort(key=lambda w: _wife_rank(snapshot, w, husbands, rules.multi_spouse_mode))

    if len(husbands) == 1 and len(wives) == 2:
        return [wives[0].person_id, husbands[0].person_id, wives[1].person_id]
    return [p.person_id for p in husbands] + [p.person_id for p in wives]


def _wife_rank(snapshot: FamilySnapshot, wife: Person, husbands: List[Person], mode: str) -> tuple:
    marriage_order = None
    marriage_date = None
    shared_children = 0
    for husband in husbands:
        rel = snapshot.spouse_relationship(wife.person_id, husband.person_id)
        if rel is not None:
            if marriage_order is None and rel.marriage_order is not None:
                marriage_order = rel.marriage_order
            if marriage_date is None and rel.marriage_date:
                marriage_date = rel.marriage_date
        shared_children += len(set(wife.child_ids) & set(husband.child_ids))

    order = marriage_order if marriage_order is not None else 1
    if mode == 'chronological':
        return (marriage_date is None, marriage_date or '', order, wife.person_id)
    if mode == 'child_count':
        return (-shared_children, order, wife.person_id)
    return (order, wife.person_id)
