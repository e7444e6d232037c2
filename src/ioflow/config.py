from dataclasses import dataclass
from typing import FrozenSet, Iterable, Tuple

from .cell_types import IGNORED_CELL_TYPES, SEQUENTIAL_MARKERS


@dataclass
class AnalysisOptions:
    """Parameters of an I/O flow extraction run."""
    sequential_markers: Tuple[str, ...] = SEQUENTIAL_MARKERS
    ignored_cell_types: FrozenSet[str] = IGNORED_CELL_TYPES
    keep_going: bool = False  # skip structurally broken modules instead of aborting the batch

    def __post_init__(self):
        """Validate analysis parameters."""
        self.sequential_markers = tuple(self.sequential_markers)
        self.ignored_cell_types = frozenset(self.ignored_cell_types)
        if not self.sequential_markers:
            raise ValueError("At least one sequential marker must be specified")
        if any(not isinstance(marker, str) or not marker for marker in self.sequential_markers):
            # an empty marker would match every cell type
            raise ValueError("Sequential markers must be non-empty strings")

    def with_extra_markers(self, markers: Iterable[str]) -> 'AnalysisOptions':
        """Return a copy that also treats ``markers`` as state-holding."""
        extra = tuple(m for m in markers if m not in self.sequential_markers)
        return AnalysisOptions(
            sequential_markers=self.sequential_markers + extra,
            ignored_cell_types=self.ignored_cell_types,
            keep_going=self.keep_going
        )

    @classmethod
    def from_dict(cls, params: dict) -> 'AnalysisOptions':
        """Create AnalysisOptions from a dictionary of parameters."""
        options = cls(
            sequential_markers=params.get('sequential_markers', SEQUENTIAL_MARKERS),
            ignored_cell_types=params.get('ignored_cell_types', IGNORED_CELL_TYPES),
            keep_going=params.get('keep_going', False)
        )
        extra = params.get('extra_sequential_markers')
        if extra:
            options = options.with_extra_markers(extra)
        return options

    def to_dict(self) -> dict:
        """Convert options to a dictionary."""
        return {
            'sequential_markers': list(self.sequential_markers),
            'ignored_cell_types': sorted(self.ignored_cell_types),
            'keep_going': self.keep_going
        }
