"""
Generation calculator.
Assigns every connected person a generation row (1 = root ancestor) using child
edges only, keeping the deepest lineage when several root ancestors reach the
same person, and aligning spouses on one row.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

import networkx as nx

from family_snapshot import FamilySnapshot

# Generation labels (Indonesian)
GENERATION_LABELS = {
    1: 'Leluhur',
    2: 'Anak',
    3: 'Cucu',
    4: 'Cicit',
    5: 'Canggah',
    6: 'Wareng',
    7: 'Udeg-udeg',
    8: 'Gantung Siwur',
}


@dataclass
class GenerationAssignment:
    generations: Dict[str, int] = field(default_factory=dict)
    disconnected: List[str] = field(default_factory=list)
    # root ancestors reaching each person
    lineages: Dict[str, FrozenSet[str]] = field(default_factory=dict)

    def get(self, person_id: str) -> Optional[int]:
        return self.generations.get(person_id)


def build_child_graph(snapshot: FamilySnapshot, person_ids: Optional[Iterable[str]] = None) -> nx.DiGraph:
    """parent -> child graph restricted to the given persons."""
    allowed = set(snapshot.ids() if person_ids is None else person_ids)
    graph = nx.DiGraph()
    for pid in snapshot.ids():
        if pid in allowed:
            graph.add_node(pid)
    for pid in graph.nodes():
        for cid in snapshot.children(pid):
            if cid in allowed:
                graph.add_edge(pid, cid)
        # parent_ids alone can also carry the link
        for par in snapshot.parents(pid):
            if par in allowed and not graph.has_edge(par, pid):
                graph.add_edge(par, pid)
    return graph


def find_root_ancestors(snapshot: FamilySnapshot, person_ids: Optional[Iterable[str]] = None) -> List[str]:
    """
    Persons without a parent inside the given set.
    Falls back to persons flagged as root ancestor when every person has a parent.
    """
    allowed = set(snapshot.ids() if person_ids is None else person_ids)
    ordered = [pid for pid in snapshot.ids() if pid in allowed]
    roots = [pid for pid in ordered if not any(p in allowed for p in snapshot.parents(pid))]
    if not roots:
        roots = [pid for pid in ordered if snapshot.get(pid).is_root_ancestor]
    return roots


def assign_generations(snapshot: FamilySnapshot,
                       person_ids: Optional[Iterable[str]] = None,
                       root_ids: Optional[Iterable[str]] = None) -> GenerationAssignment:
    wanted = None if person_ids is None else set(person_ids)
    ordered = [pid for pid in snapshot.ids() if wanted is None or pid in wanted]
    allowed = set(ordered)
    if not ordered:
        return GenerationAssignment()

    graph = build_child_graph(snapshot, ordered)
    if root_ids is None:
        roots = find_root_ancestors(snapshot, ordered)
    else:
        roots = [r for r in root_ids if r in allowed]

    # Depth never legitimately exceeds the number of persons; the cap stops
    # corrupt parent cycles from raising generations forever.
    cap = len(ordered)
    generations: Dict[str, int] = {}
    lineages: Dict[str, Set[str]] = {}

    for root in roots:
        _raise_from(graph, root, 1, generations, cap)
        for pid in nx.descendants(graph, root) | {root}:
            lineages.setdefault(pid, set()).add(root)

    # Spouses share the deeper row; a raised spouse pushes its descendants down.
    for _ in range(cap + 1):
        changed = False
        for pid in ordered:
            for sid in snapshot.spouses(pid):
                if sid not in allowed:
                    continue
                mine, theirs = generations.get(pid), generations.get(sid)
                if theirs is None:
                    continue
                if mine is None or mine < theirs:
                    _raise_from(graph, pid, theirs, generations, cap)
                    changed = True
        if not changed:
            break

    # Married-in people inherit the lineage of their spouse and pass it on.
    for pid in ordered:
        if pid in generations and pid not in lineages:
            merged = set()
            for sid in snapshot.spouses(pid):
                merged |= lineages.get(sid, set())
            lineages[pid] = merged

    disconnected = [pid for pid in ordered if pid not in generations]
    return GenerationAssignment(
        generations=generations,
        disconnected=disconnected,
        lineages={pid: frozenset(r) for pid, r in lineages.items()},
    )


def _raise_from(graph: nx.DiGraph, start: str, depth: int, generations: Dict[str, int], cap: int):
    """Breadth-first along child edges, keeping the maximum depth seen."""
    if generations.get(start, 0) >= depth:
        return
    generations[start] = depth
    queue = deque([start])
    while queue:
        current = queue.popleft()
        next_depth = generations[current] + 1
        if next_depth > cap:
            continue
        for child in graph.successors(current):
            if generations.get(child, 0) < next_depth:
                generations[child] = next_depth
                queue.append(child)


def generation_label(gen: int) -> str:
    if gen is None or gen < 1:
        return 'Tidak terhubung'
    return GENERATION_LABELS.get(gen, f'Generasi ke-{gen}')


def generation_stats(assignment: GenerationAssignment, total: Optional[int] = None) -> dict:
    """
    Summary counts. `total` is the number of persons in the whole tree; when
    given, everyone without a generation (hidden or unreachable) counts as
    disconnected.
    """
    per_generation: Dict[int, int] = {}
    for gen in assignment.generations.values():
        per_generation[gen] = per_generation.get(gen, 0) + 1
    if total is None:
        disconnected = len(assignment.disconnected)
    else:
        disconnected = max(0, total - len(assignment.generations))
    return {
        'total_generations': max(per_generation) if per_generation else 0,
        'persons_by_generation': dict(sorted(per_generation.items())),
        'disconnected_count': disconnected,
    }
