import logging
from typing import Iterable, List

from .cell_types import SEQUENTIAL_MARKERS
from .models import Cell, Module

logger = logging.getLogger(__name__)


def is_sequential_cell_type(cell_type: str, markers: Iterable[str] = SEQUENTIAL_MARKERS) -> bool:
    """Check whether a cell type name contains any state-holding marker (case-sensitive)."""
    return any(marker in cell_type for marker in markers)


def find_sequential_cells(module: Module, markers: Iterable[str] = SEQUENTIAL_MARKERS) -> List[Cell]:
    """Return the cells of a module whose type denotes a state-holding element."""
    markers = tuple(markers)
    return [cell for cell in module.cells.values() if is_sequential_cell_type(cell.type, markers)]


def is_sequential_module(module: Module, markers: Iterable[str] = SEQUENTIAL_MARKERS) -> bool:
    """
    Classify a module as sequential or combinational.

    Stops at the first state-holding cell and logs it together with the
    containing module.

    Args:
        module: The module to classify
        markers: Substrings that mark a cell type as state-holding

    Returns:
        True if the module contains at least one state-holding cell
    """
    markers = tuple(markers)
    for cell in module.cells.values():
        if is_sequential_cell_type(cell.type, markers):
            logger.info(f"Sequential cell found: {cell.name} ({cell.type}) in module {module.name}")
            return True
    return False
