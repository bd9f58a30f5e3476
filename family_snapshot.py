"""
Immutable input snapshot for the layout engine.
Persons, relationships and positions as the engine sees them, plus the
collapse (subtree hiding) filter.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

# Relationship type constants
REL_SPOUSE = 'spouse'
REL_PARENT_CHILD = 'parent-child'

GENDER_MALE = 'male'
GENDER_FEMALE = 'female'
GENDER_UNKNOWN = 'unknown'


@dataclass(frozen=True)
class Person:
    person_id: str
    gender: str = GENDER_UNKNOWN
    birth_date: Optional[str] = None
    birth_order: Optional[int] = None
    spouse_ids: FrozenSet[str] = frozenset()
    parent_ids: Tuple[str, ...] = ()
    child_ids: Tuple[str, ...] = ()
    title: Optional[str] = None
    is_root_ancestor: bool = False
    name: str = ''

    @property
    def is_male(self) -> bool:
        return self.gender == GENDER_MALE


@dataclass(frozen=True)
class Relationship:
    relationship_id: str
    type: str
    person1_id: str
    person2_id: str
    marriage_order: Optional[int] = None
    marriage_date: Optional[str] = None


@dataclass
class Position:
    x: float
    y: float
    fixed: bool = False

    def as_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y}


def birth_key(person: Person, use_birth_data: bool = True) -> tuple:
    """Sort key for siblings: birth date, then birth order, then id. Unknown values sort last."""
    if not use_birth_data:
        return (person.person_id,)
    return (
        person.birth_date is None, person.birth_date or '',
        person.birth_order is None, person.birth_order or 0,
        person.person_id,
    )


@dataclass(frozen=True)
class FamilySnapshot:
    """
    Read-only view over persons and relationships.
    Lookups are O(1); cross-references to unknown ids are dropped at construction.
    """

    persons: Tuple[Person, ...] = ()
    relationships: Tuple[Relationship, ...] = ()
    _by_id: Dict[str, Person] = field(default_factory=dict, repr=False, compare=False)
    _spouse_links: Dict[FrozenSet[str], Relationship] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        by_id = {p.person_id: p for p in self.persons}
        object.__setattr__(self, '_by_id', by_id)

        links = {}
        for rel in self.relationships:
            if rel.type != REL_SPOUSE:
                continue
            if rel.person1_id not in by_id or rel.person2_id not in by_id:
                continue
            links.setdefault(frozenset((rel.person1_id, rel.person2_id)), rel)
        object.__setattr__(self, '_spouse_links', links)

    def __len__(self) -> int:
        return len(self.persons)

    def __contains__(self, person_id) -> bool:
        return person_id in self._by_id

    def get(self, person_id: str) -> Optional[Person]:
        return self._by_id.get(person_id)

    def ids(self) -> List[str]:
        return [p.person_id for p in self.persons]

    def spouses(self, person_id: str) -> List[str]:
        person = self._by_id.get(person_id)
        if person is None:
            return []
        return sorted(s for s in person.spouse_ids if s in self._by_id and s != person_id)

    def parents(self, person_id: str) -> List[str]:
        person = self._by_id.get(person_id)
        if person is None:
            return []
        return [p for p in person.parent_ids if p in self._by_id and p != person_id]

    def children(self, person_id: str) -> List[str]:
        person = self._by_id.get(person_id)
        if person is None:
            return []
        return [c for c in person.child_ids if c in self._by_id and c != person_id]

    def spouse_relationship(self, a: str, b: str) -> Optional[Relationship]:
        return self._spouse_links.get(frozenset((a, b)))

    @classmethod
    def from_records(cls, persons: Iterable[dict], relationships: Iterable[dict] = ()) -> 'FamilySnapshot':
        """
        Builds a snapshot from plain dicts (the JSON shape stored by DataManager).
        Relationship records also fill in per-person id sets, so a link known only
        from the relationship list still reaches both people.
        """
        persons = list(persons)
        relationships = list(relationships)
        known = {str(p['person_id']) for p in persons}

        spouses = {pid: set() for pid in known}
        parents = {pid: [] for pid in known}
        children = {pid: [] for pid in known}

        for raw in persons:
            pid = str(raw['person_id'])
            spouses[pid].update(str(s) for s in raw.get('spouse_ids') or ())
            for par in raw.get('parent_ids') or ():
                if str(par) not in parents[pid]:
                    parents[pid].append(str(par))
            for ch in raw.get('child_ids') or ():
                if str(ch) not in children[pid]:
                    children[pid].append(str(ch))

        # Either side of a parent/child link is enough
        for pid in [str(p['person_id']) for p in persons]:
            for sid in list(spouses[pid]):
                if sid in known:
                    spouses[sid].add(pid)
            for par in parents[pid]:
                if par in known and par != pid and pid not in children[par]:
                    children[par].append(pid)
            for ch in children[pid]:
                if ch in known and ch != pid and pid not in parents[ch]:
                    parents[ch].append(pid)

        rels = []
        for i, raw in enumerate(relationships):
            rel = Relationship(
                relationship_id=str(raw.get('relationship_id', f'rel-{i}')),
                type=raw.get('type', REL_SPOUSE),
                person1_id=str(raw['person1_id']),
                person2_id=str(raw['person2_id']),
                marriage_order=raw.get('marriage_order'),
                marriage_date=raw.get('marriage_date'),
            )
            rels.append(rel)
            a, b = rel.person1_id, rel.person2_id
            if a not in known or b not in known:
                continue
            if rel.type == REL_SPOUSE:
                spouses[a].add(b)
                spouses[b].add(a)
            elif rel.type == REL_PARENT_CHILD:
                if a not in parents[b]:
                    parents[b].append(a)
                if b not in children[a]:
                    children[a].append(b)

        built = []
        for raw in persons:
            pid = str(raw['person_id'])
            built.append(Person(
                person_id=pid,
                gender=raw.get('gender') or GENDER_UNKNOWN,
                birth_date=raw.get('birth_date') or None,
                birth_order=raw.get('birth_order'),
                spouse_ids=frozenset(spouses[pid] - {pid}),
                parent_ids=tuple(parents[pid][:2]),
                child_ids=tuple(children[pid]),
                title=raw.get('title') or None,
                is_root_ancestor=bool(raw.get('is_root_ancestor', False)),
                name=raw.get('name', ''),
            ))
        return cls(persons=tuple(built), relationships=tuple(rels))


def visible_person_ids(snapshot: FamilySnapshot, collapsed_ids: Iterable[str] = ()) -> List[str]:
    """
    Persons left on screen after collapsing subtrees.
    Starts from everyone without a known parent; spouses are always shown,
    children only when their parent is not collapsed. Input order is kept.
    Anybody the walk cannot reach (a corrupt parent cycle) stays visible
    unless it descends from a collapsed person.
    """
    collapsed = {pid for pid in collapsed_ids if pid in snapshot}
    if not collapsed:
        return snapshot.ids()

    queue = deque(p.person_id for p in snapshot.persons
                  if not snapshot.parents(p.person_id) or p.is_root_ancestor)
    visible = set()

    while queue:
        pid = queue.popleft()
        if pid in visible:
            continue
        visible.add(pid)

        for sid in snapshot.spouses(pid):
            if sid not in visible:
                queue.append(sid)
        if pid not in collapsed:
            for cid in snapshot.children(pid):
                if cid not in visible:
                    queue.append(cid)

    hidden = set()
    for pid in collapsed:
        hidden |= _descendants(snapshot, pid) - {pid}
    return [pid for pid in snapshot.ids() if pid in visible or pid not in hidden]


def _descendants(snapshot: FamilySnapshot, person_id: str) -> Set[str]:
    seen = set()
    queue = deque(snapshot.children(person_id))
    while queue:
        pid = queue.popleft()
        if pid in seen:
            continue
        seen.add(pid)
        queue.extend(snapshot.children(pid))
    return seen
