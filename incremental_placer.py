"""
Incremental placement of a single new person into an already laid-out tree.
Constant work per call: only the new person's parents or spouses and the cached
bounding box are looked at; existing positions are never changed.
"""

import random
import zlib
from collections import defaultdict
from typing import Dict, Iterable, Mapping, Optional, Tuple

from family_snapshot import FamilySnapshot, Person, Position
from layout_config import LayoutConfig

Viewport = Tuple[float, float, float, float]  # x, y, width, height


class LayoutCache:
    """
    Caller-owned memory of the last full layout.
    Keeps the positions, a running bounding box and per-parent child counts
    so placement never scans the tree.
    """

    def __init__(self, positions: Optional[Mapping[str, Position]] = None,
                 snapshot: Optional[FamilySnapshot] = None):
        self.positions: Dict[str, Position] = dict(positions or {})
        self.child_counts: Dict[str, int] = defaultdict(int)
        self.min_x = self.min_y = self.max_x = self.max_y = None
        for pos in self.positions.values():
            self._extend(pos)
        if snapshot is not None:
            for pid in self.positions:
                for parent_id in snapshot.parents(pid):
                    self.child_counts[parent_id] += 1

    @classmethod
    def from_result(cls, result, snapshot: Optional[FamilySnapshot] = None) -> 'LayoutCache':
        return cls(result.positions, snapshot)

    def __contains__(self, person_id) -> bool:
        return person_id in self.positions

    def __len__(self) -> int:
        return len(self.positions)

    def get(self, person_id: str) -> Optional[Position]:
        return self.positions.get(person_id)

    @property
    def is_empty(self) -> bool:
        return self.min_x is None

    def add(self, person_id: str, position: Position, parent_ids: Iterable[str] = ()):
        self.positions[person_id] = position
        self._extend(position)
        for parent_id in parent_ids:
            self.child_counts[parent_id] += 1

    def _extend(self, pos: Position):
        if self.min_x is None:
            self.min_x, self.max_x, self.min_y, self.max_y = pos.x, pos.x, pos.y, pos.y
            return
        self.min_x = min(self.min_x, pos.x)
        self.max_x = max(self.max_x, pos.x)
        self.min_y = min(self.min_y, pos.y)
        self.max_y = max(self.max_y, pos.y)


class IncrementalPlacer:
    def __init__(self, config: Optional[LayoutConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or LayoutConfig()
        self.rng = rng

    def _rng_for(self, person_id: str) -> random.Random:
        if self.rng is not None:
            return self.rng
        return random.Random(zlib.crc32(person_id.encode('utf-8')))

    def place(self, person: Person, cache: LayoutCache, viewport: Optional[Viewport] = None) -> Position:
        """
        Parent known -> below the parent with a small jitter;
        spouse known -> right beside the spouse;
        otherwise inside the viewport, or bottom-left of the current tree.
        A person already in the cache keeps its position.
        """
        existing = cache.get(person.person_id)
        if existing is not None:
            return existing

        config = self.config
        position = None

        for parent_id in person.parent_ids:
            parent_pos = cache.get(parent_id)
            if parent_pos is None:
                continue
            siblings = cache.child_counts.get(parent_id, 0)
            jitter = self._rng_for(person.person_id).uniform(-1.0, 1.0) * config.incremental_jitter * (siblings + 1)
            position = Position(parent_pos.x + jitter, parent_pos.y + config.node_height + config.rank_sep)
            break

        if position is None:
            for spouse_id in sorted(person.spouse_ids):
                spouse_pos = cache.get(spouse_id)
                if spouse_pos is not None:
                    position = Position(spouse_pos.x + config.node_width + config.spouse_gap, spouse_pos.y)
                    break

        if position is None:
            if viewport is not None:
                vx, vy, vw, vh = viewport
                position = Position(vx + (vw - config.node_width) / 2, vy + (vh - config.node_height) / 2)
            elif cache.is_empty:
                position = Position(config.margin, config.margin)
            else:
                position = Position(cache.min_x, cache.max_y + config.node_height + config.min_gap)

        cache.add(person.person_id, position, person.parent_ids)
        return position
