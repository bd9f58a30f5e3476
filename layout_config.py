"""
Layout parameters and rules.
Every field has a default; partial overrides are merged on top and validated here,
before any layout pass runs.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

# --- OPTION SETS ---
CYCLE_BREAKING_MODES = ('off', 'clone', 'crosslink')
MULTI_SPOUSE_MODES = ('default', 'chronological', 'child_count')
GENERATION_ALIGNMENT_MODES = ('strict', 'loose')

# Integer budgets / counters
_INT_FIELDS = {
    'collision_passes', 'collision_max_passes', 'cleanup_passes',
    'centering_iterations', 'crossing_sweeps', 'orphan_columns',
}
# Values that must lie in [0, 1]
_FRACTION_FIELDS = {'compaction_fraction', 'child_pull_factor', 'title_damping'}
# Sizes that must be strictly positive
_POSITIVE_FIELDS = {'node_width', 'node_height', 'tree_gap_multiplier', 'group_gap_multiplier'}


class LayoutConfigError(ValueError):
    """Raised for unknown or invalid layout settings."""


@dataclass(frozen=True)
class LayoutConfig:
    node_width: float = 220
    node_height: float = 130
    rank_sep: float = 160
    node_sep: float = 80
    spouse_gap: float = 25
    margin: float = 50
    min_gap: float = 30
    orphan_gap: float = 120
    tree_gap_multiplier: float = 1.5
    group_gap_multiplier: float = 3.0
    compaction_fraction: float = 0.5
    collision_passes: int = 50
    collision_max_passes: int = 400
    cleanup_passes: int = 10
    centering_iterations: int = 3
    crossing_sweeps: int = 4
    child_pull_threshold: float = 300
    child_pull_factor: float = 0.3
    title_damping: float = 0.5
    orphan_columns: int = 6
    incremental_jitter: float = 40

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise LayoutConfigError(f"{f.name} must be a number, got {value!r}")
            if f.name in _INT_FIELDS:
                if int(value) != value or value < 1:
                    raise LayoutConfigError(f"{f.name} must be a positive integer, got {value!r}")
            elif f.name in _FRACTION_FIELDS:
                if not 0 <= value <= 1:
                    raise LayoutConfigError(f"{f.name} must be between 0 and 1, got {value!r}")
            elif f.name in _POSITIVE_FIELDS:
                if value <= 0:
                    raise LayoutConfigError(f"{f.name} must be greater than 0, got {value!r}")
            elif value < 0:
                raise LayoutConfigError(f"{f.name} must not be negative, got {value!r}")

    @property
    def row_height(self) -> float:
        """Distance between the tops of two consecutive generation rows."""
        return self.node_height + self.rank_sep

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> 'LayoutConfig':
        return _merge(cls(), overrides)


@dataclass(frozen=True)
class LayoutRules:
    spouse_ordering: bool = True
    sort_by_birth_date: bool = True
    center_parent: bool = True
    parent_side_alignment: bool = True
    largest_group_first: bool = True
    overlap_resolution: bool = True
    cross_lineage_grouping: bool = True
    show_orphans: bool = True
    normalize_positions: bool = True
    compact_apportioning: bool = True
    title_grouping: bool = True
    cycle_breaking: str = 'off'
    multi_spouse_mode: str = 'default'
    generation_alignment: str = 'strict'

    def __post_init__(self):
        options = {
            'cycle_breaking': CYCLE_BREAKING_MODES,
            'multi_spouse_mode': MULTI_SPOUSE_MODES,
            'generation_alignment': GENERATION_ALIGNMENT_MODES,
        }
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in options:
                if value not in options[f.name]:
                    raise LayoutConfigError(
                        f"{f.name} must be one of {', '.join(options[f.name])}, got {value!r}")
            elif not isinstance(value, bool):
                raise LayoutConfigError(f"{f.name} must be true or false, got {value!r}")

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> 'LayoutRules':
        return _merge(cls(), overrides)


def _merge(defaults, overrides):
    if not overrides:
        return defaults
    known = {f.name for f in fields(defaults)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise LayoutConfigError(f"Unknown {type(defaults).__name__} setting(s): {', '.join(unknown)}")
    return replace(defaults, **dict(overrides))
