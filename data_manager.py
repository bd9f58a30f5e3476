"""
Data Manager for Family Tree.
Handles JSON loading/saving of the family graph, stored node positions
(with the user-pinned `fixed` flag), layout runs + Logging.
"""

import json
import os
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx

from family_snapshot import (GENDER_FEMALE, GENDER_MALE, GENDER_UNKNOWN, REL_SPOUSE, FamilySnapshot, Person,
                             Position)
from incremental_placer import IncrementalPlacer, LayoutCache, Viewport
from layout_config import LayoutConfig
from layout_engine import LayoutEngine, LayoutResult
from utils.logger_service import LoggerService

# Relationship type constants (edge attribute `type`)
REL_PARTNER = 'partner'
REL_CHILD = 'child'


class DataManager:
    def __init__(self, project_file: str, logger: Optional[LoggerService] = None):
        self.project_file_path = project_file
        self.project_directory = os.path.dirname(project_file) or "."
        self.graph = nx.DiGraph()
        self.next_person_id = 1
        self.logger = logger or LoggerService(os.path.join(self.project_directory, "activity_log.csv"))
        # Cache of the last full layout, reused by place_new_person
        self.layout_cache: Optional[LayoutCache] = None

    # ==================== PERSISTENCE ====================

    def load_project(self) -> bool:
        """Loads the project file. A missing file is an empty project."""
        if not os.path.exists(self.project_file_path):
            return True
        try:
            with open(self.project_file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self.graph = nx.node_link_graph(data, directed=True, edges="links")
        except (OSError, ValueError, KeyError, nx.NetworkXError) as e:
            print(f"Error loading project: {e}")
            return False

        node_ids = [int(node_id) for node_id in self.graph.nodes() if str(node_id).isdigit()]
        self.next_person_id = max(node_ids) + 1 if node_ids else 1
        self.layout_cache = None
        return True

    def save_project(self) -> bool:
        try:
            os.makedirs(self.project_directory, exist_ok=True)
            data = nx.node_link_data(self.graph, edges="links")
            with open(self.project_file_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            return True
        except (OSError, TypeError) as e:
            print(f"Error saving project: {e}")
            return False

    # ==================== PEOPLE & RELATIONS ====================

    def add_person(self, name: str, gender: str = GENDER_UNKNOWN, birth_date: Optional[str] = None,
                   birth_order: Optional[int] = None, title: Optional[str] = None,
                   is_root_ancestor: bool = False) -> str:
        if gender not in (GENDER_MALE, GENDER_FEMALE, GENDER_UNKNOWN):
            gender = GENDER_UNKNOWN
        person_id = str(self.next_person_id)
        self.next_person_id += 1

        self.graph.add_node(person_id, label=name, gender=gender, birth_date=birth_date or None,
                            birth_order=birth_order, title=title or None,
                            is_root_ancestor=is_root_ancestor, position=None)

        self.logger.log("ADD_PERSON", f"Created {name} (ID: {person_id})")
        return person_id

    def add_partner(self, person1_id: str, person2_id: str, marriage_order: Optional[int] = None,
                    marriage_date: Optional[str] = None) -> bool:
        if person1_id == person2_id: return False
        if not self.graph.has_node(person1_id) or not self.graph.has_node(person2_id): return False
        attrs = dict(type=REL_PARTNER, marriage_order=marriage_order, marriage_date=marriage_date)
        self.graph.add_edge(person1_id, person2_id, **attrs)
        self.graph.add_edge(person2_id, person1_id, **attrs)
        self.logger.log("ADD_PARTNER", f"{person1_id} <-> {person2_id} (order: {marriage_order})")
        return True

    def add_child(self, parent_id: str, child_id: str) -> bool:
        """Links parent -> child. A child has at most two parents."""
        if parent_id == child_id: return False
        if not self.graph.has_node(parent_id) or not self.graph.has_node(child_id): return False
        parents = self.get_parents(child_id)
        if parent_id not in parents and len(parents) >= 2:
            return False
        self.graph.add_edge(parent_id, child_id, type=REL_CHILD)
        self.logger.log("ADD_CHILD", f"{parent_id} -> {child_id}")
        return True

    def get_person_data(self, person_id: str) -> dict:
        if not self.graph.has_node(person_id): return {}
        data = dict(self.graph.nodes[person_id])
        data['id'] = person_id
        return data

    def get_all_people(self) -> list:
        return [(node_id, data.get('label', 'Unknown')) for node_id, data in self.graph.nodes(data=True)]

    def _edges_of_type(self, person_id: str, rel_type: str, incoming: bool = False) -> List[str]:
        if not self.graph.has_node(person_id): return []
        if incoming:
            return [u for u, _, attrs in self.graph.in_edges(person_id, data=True) if attrs.get('type') == rel_type]
        return [v for _, v, attrs in self.graph.out_edges(person_id, data=True) if attrs.get('type') == rel_type]

    def get_parents(self, person_id: str) -> list:
        return self._edges_of_type(person_id, REL_CHILD, incoming=True)

    def get_partners(self, person_id: str) -> list:
        return self._edges_of_type(person_id, REL_PARTNER)

    def get_children(self, person_id: str) -> list:
        return self._edges_of_type(person_id, REL_CHILD)

    # ==================== SNAPSHOT ====================

    def to_records(self) -> Tuple[List[dict], List[dict]]:
        """Persons and spouse relationships as plain dicts."""
        persons = []
        for node_id, data in self.graph.nodes(data=True):
            persons.append({
                'person_id': node_id,
                'name': data.get('label', ''),
                'gender': data.get('gender'),
                'birth_date': data.get('birth_date'),
                'birth_order': data.get('birth_order'),
                'title': data.get('title'),
                'is_root_ancestor': data.get('is_root_ancestor', False),
                'spouse_ids': self.get_partners(node_id),
                'parent_ids': self.get_parents(node_id),
                'child_ids': self.get_children(node_id),
            })

        relationships = []
        for u, v, attrs in self.graph.edges(data=True):
            if attrs.get('type') != REL_PARTNER or u > v:
                continue
            relationships.append({
                'relationship_id': f"{u}-{v}",
                'type': REL_SPOUSE,
                'person1_id': u,
                'person2_id': v,
                'marriage_order': attrs.get('marriage_order'),
                'marriage_date': attrs.get('marriage_date'),
            })
        return persons, relationships

    def to_snapshot(self) -> FamilySnapshot:
        persons, relationships = self.to_records()
        return FamilySnapshot.from_records(persons, relationships)

    def to_person(self, person_id: str) -> Optional[Person]:
        """One person with its links, read from its own node and edges only."""
        if not self.graph.has_node(person_id): return None
        data = self.graph.nodes[person_id]
        return Person(
            person_id=person_id,
            gender=data.get('gender') or GENDER_UNKNOWN,
            birth_date=data.get('birth_date') or None,
            birth_order=data.get('birth_order'),
            spouse_ids=frozenset(self.get_partners(person_id)),
            parent_ids=tuple(self.get_parents(person_id)[:2]),
            child_ids=tuple(self.get_children(person_id)),
            title=data.get('title') or None,
            is_root_ancestor=bool(data.get('is_root_ancestor', False)),
            name=data.get('label', ''),
        )

    # ==================== POSITIONS ====================

    def set_position(self, person_id: str, x: float, y: float, fixed: bool = True) -> bool:
        """Stores a position; manual drags pin the node by default."""
        if not self.graph.has_node(person_id): return False
        self.graph.nodes[person_id]['position'] = {'x': float(x), 'y': float(y), 'fixed': bool(fixed)}
        self.layout_cache = None
        self.logger.log("SET_POSITION", f"ID {person_id}: ({x:.0f}, {y:.0f}) fixed={fixed}")
        return True

    def get_positions(self) -> Dict[str, Position]:
        positions = {}
        for node_id, data in self.graph.nodes(data=True):
            pos = data.get('position')
            if pos:
                positions[node_id] = Position(pos['x'], pos['y'], bool(pos.get('fixed', False)))
        return positions

    def save_positions(self, positions: Dict[str, Position]) -> int:
        """Stores a whole position map (fixed flags included). Unknown ids are skipped."""
        stored = 0
        for person_id, pos in positions.items():
            if self.graph.has_node(person_id):
                self.graph.nodes[person_id]['position'] = {'x': pos.x, 'y': pos.y, 'fixed': pos.fixed}
                stored += 1
        return stored

    # ==================== LAYOUT ====================

    def _run_layout(self, config, rules, collapsed_ids: Iterable[str], auto_arrange: bool) -> LayoutResult:
        snapshot = self.to_snapshot()
        engine = LayoutEngine(config, rules)
        result = engine.calculate_layout(snapshot, collapsed_ids=collapsed_ids,
                                         previous_positions=self.get_positions(),
                                         auto_arrange=auto_arrange)
        self.save_positions(result.positions)
        self.layout_cache = LayoutCache.from_result(result, snapshot)

        if not result.converged:
            self.logger.log("LAYOUT_DEGRADED", f"Overlaps left after {result.collision_passes} passes")
        return result

    def relayout(self, config=None, rules=None, collapsed_ids: Iterable[str] = ()) -> LayoutResult:
        """Full layout. Pinned (fixed) nodes stay where the user put them."""
        result = self._run_layout(config, rules, collapsed_ids, auto_arrange=False)
        self.logger.log("LAYOUT", f"{len(result.positions)} nodes placed")
        return result

    def auto_arrange(self, config=None, rules=None, collapsed_ids: Iterable[str] = ()) -> LayoutResult:
        """Full layout that overrides and unpins every fixed node."""
        result = self._run_layout(config, rules, collapsed_ids, auto_arrange=True)
        self.logger.log("AUTO_ARRANGE", f"{len(result.positions)} nodes placed, pins cleared")
        return result

    def place_new_person(self, person_id: str, viewport: Optional[Viewport] = None,
                         config: Optional[LayoutConfig] = None) -> Optional[Position]:
        """
        Places one person without a full relayout.
        Never moves anybody else; a person that already has a position keeps it.
        """
        if not self.graph.has_node(person_id): return None
        if self.layout_cache is None:
            self.layout_cache = LayoutCache(self.get_positions(), self.to_snapshot())

        existing = self.layout_cache.get(person_id)
        if existing is not None:
            return existing

        position = IncrementalPlacer(config or LayoutConfig()).place(self.to_person(person_id), self.layout_cache, viewport)
        self.save_positions({person_id: position})
        self.logger.log("PLACE_PERSON", f"ID {person_id}: ({position.x:.0f}, {position.y:.0f})")
        return position

    # ==================== DEMO DATA ====================

    def create_test_data(self):
        """Small demo family: a root couple, a polygamous son, a titled line and one unlinked person."""
        adam = self.add_person("Adam", GENDER_MALE, is_root_ancestor=True)
        eve = self.add_person("Eve", GENDER_FEMALE)
        cain = self.add_person("Cain", GENDER_MALE, birth_date="0010-01-01")
        abel = self.add_person("Abel", GENDER_MALE, birth_date="0012-01-01")
        seth = self.add_person("Seth", GENDER_MALE, birth_date="0130-01-01", title="Elder")
        azura = self.add_person("Azura", GENDER_FEMALE)
        noam = self.add_person("Noam", GENDER_FEMALE)
        enosh = self.add_person("Enosh", GENDER_MALE, birth_date="0235-01-01", title="Elder")
        kenan = self.add_person("Kenan", GENDER_MALE, birth_date="0240-01-01")
        lilith = self.add_person("Lilith", GENDER_FEMALE)

        self.add_partner(adam, eve, marriage_order=1)
        for child in (cain, abel, seth):
            self.add_child(adam, child)
            self.add_child(eve, child)
        self.add_partner(seth, azura, marriage_order=1)
        self.add_partner(seth, noam, marriage_order=2)
        self.add_child(seth, enosh)
        self.add_child(azura, enosh)
        self.add_child(seth, kenan)
        self.add_child(noam, kenan)
        self.logger.log("TEST_DATA", f"Demo family created, unlinked: {lilith}")
        self.save_project()
