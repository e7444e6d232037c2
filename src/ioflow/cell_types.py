from typing import Dict, Optional, Tuple
from enum import Enum

# Substrings of cell type names that denote state-holding primitives
# ($_DFF_P_, $_DLATCH_N_, $_DLATCHSR_*, $_SR_*, $mem_v2, ...).
SEQUENTIAL_MARKERS: Tuple[str, ...] = ("FF", "DLATCH", "DLE", "SR", "mem")

# Annotation-only cells that carry no logic.
IGNORED_CELL_TYPES = frozenset({"$scopeinfo"})

OUTPUT_PIN = "Y"


class GateKind(Enum):
    """Primitive single-bit combinational gates and their pin contracts."""
    BUF = ("$_BUF_", ("A",))
    NOT = ("$_NOT_", ("A",))
    AND = ("$_AND_", ("A", "B"))
    NAND = ("$_NAND_", ("A", "B"))
    OR = ("$_OR_", ("A", "B"))
    NOR = ("$_NOR_", ("A", "B"))
    XOR = ("$_XOR_", ("A", "B"))
    XNOR = ("$_XNOR_", ("A", "B"))
    ANDNOT = ("$_ANDNOT_", ("A", "B"))
    ORNOT = ("$_ORNOT_", ("A", "B"))
    MUX = ("$_MUX_", ("A", "B", "S"))
    NMUX = ("$_NMUX_", ("A", "B", "S"))
    AOI3 = ("$_AOI3_", ("A", "B", "C"))
    OAI3 = ("$_OAI3_", ("A", "B", "C"))
    AOI4 = ("$_AOI4_", ("A", "B", "C", "D"))
    OAI4 = ("$_OAI4_", ("A", "B", "C", "D"))

    def __init__(self, cell_type: str, input_pins: Tuple[str, ...]):
        self.cell_type = cell_type
        self.input_pins = input_pins

    @property
    def output_pin(self) -> str:
        return OUTPUT_PIN

    @property
    def pins(self) -> Tuple[str, ...]:
        return self.input_pins + (OUTPUT_PIN,)

    @classmethod
    def from_cell_type(cls, cell_type: str) -> Optional['GateKind']:
        """Look up a gate kind by cell type name; None means unsupported."""
        return _GATE_KINDS_BY_TYPE.get(cell_type)


_GATE_KINDS_BY_TYPE: Dict[str, GateKind] = {kind.cell_type: kind for kind in GateKind}
