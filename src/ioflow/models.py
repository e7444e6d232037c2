from typing import Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import NetlistError

CONSTANT_STATES = ('0', '1', 'x', 'z')


class PortDirection(Enum):
    INPUT = "input"
    OUTPUT = "output"
    INOUT = "inout"


@dataclass(frozen=True)
class SigBit:
    """A single bit of a named wire, or a constant bit when ``wire`` is None."""
    wire: Optional[str] = None
    offset: int = 0
    data: Optional[str] = None  # constant state, only set when wire is None

    def __post_init__(self):
        if self.wire is None and self.data not in CONSTANT_STATES:
            raise ValueError(f"Constant bit must be one of {CONSTANT_STATES}, got {self.data!r}")
        if self.wire is not None and self.data is not None:
            raise ValueError("A wire bit cannot carry a constant state")

    @classmethod
    def const(cls, state: str) -> 'SigBit':
        return cls(wire=None, offset=0, data=state)

    @property
    def is_wire(self) -> bool:
        return self.wire is not None

    def __str__(self) -> str:
        if self.wire is None:
            return f"1'b{self.data}"
        return f"{self.wire}[{self.offset}]"


# Index 0 is the least significant bit.
SigSpec = Tuple[SigBit, ...]


def const_sigspec(states: str) -> SigSpec:
    """Build a SigSpec from a most-significant-first string such as ``"10x"``."""
    return tuple(SigBit.const(state) for state in reversed(states))


@dataclass
class Wire:
    """A named multi-bit wire, optionally a module port."""
    name: str
    width: int = 1
    start_offset: int = 0
    upto: bool = False
    port_input: bool = False
    port_output: bool = False
    port_id: int = 0

    def __post_init__(self):
        if self.width < 1:
            raise ValueError(f"Wire {self.name} must be at least one bit wide")

    @property
    def is_port(self) -> bool:
        return self.port_input or self.port_output

    @property
    def direction(self) -> Optional[PortDirection]:
        if self.port_input and self.port_output:
            return PortDirection.INOUT
        if self.port_input:
            return PortDirection.INPUT
        if self.port_output:
            return PortDirection.OUTPUT
        return None

    def bit(self, offset: int) -> SigBit:
        if not 0 <= offset < self.width:
            raise IndexError(f"Offset {offset} out of range for {self.width}-bit wire {self.name}")
        return SigBit(self.name, offset)

    def bits(self) -> SigSpec:
        return tuple(SigBit(self.name, offset) for offset in range(self.width))

    def index_to_offset(self, index: int) -> int:
        """Convert an HDL bit index (as written in ``w[index]``) to a bit offset."""
        if self.upto:
            offset = self.start_offset + self.width - 1 - index
        else:
            offset = index - self.start_offset
        if not 0 <= offset < self.width:
            raise IndexError(f"Index {index} out of range for wire {self.name}")
        return offset


@dataclass
class Port:
    """Port descriptor: name, direction and declared width."""
    name: str
    direction: PortDirection
    width: int


@dataclass
class Cell:
    """A logic instance: type tag plus pin name to SigSpec bindings."""
    name: str
    type: str
    connections: Dict[str, SigSpec] = field(default_factory=dict)


class Module:
    """A single netlist module: wires, ports, connections and cells."""

    def __init__(self, name: str):
        self.name = name
        self.wires: Dict[str, Wire] = {}
        self.ports: List[str] = []
        self.connections: List[Tuple[SigSpec, SigSpec]] = []
        self.cells: Dict[str, Cell] = {}

    def __repr__(self) -> str:
        return (f"Module({self.name!r}, wires={len(self.wires)}, "
                f"cells={len(self.cells)}, connections={len(self.connections)})")

    def wire(self, name: str) -> Optional[Wire]:
        return self.wires.get(name)

    def add_wire(self, name: str, width: int = 1, **kwargs) -> Wire:
        if name in self.wires:
            raise NetlistError(f"Wire {name} already exists in module {self.name}")
        wire = Wire(name, width, **kwargs)
        self.wires[name] = wire
        return wire

    def add_port(self, name: str, direction: PortDirection, width: int = 1, **kwargs) -> Wire:
        wire = self.add_wire(
            name, width,
            port_input=direction in (PortDirection.INPUT, PortDirection.INOUT),
            port_output=direction in (PortDirection.OUTPUT, PortDirection.INOUT),
            **kwargs
        )
        self.ports.append(name)
        wire.port_id = len(self.ports)
        return wire

    def fixup_ports(self) -> None:
        """Renumber port ids to follow ``self.ports`` and check every port has a direction."""
        for port_id, name in enumerate(self.ports, start=1):
            wire = self.wires.get(name)
            if wire is None or not wire.is_port:
                raise NetlistError(f"Port {name} of module {self.name} has no direction declaration")
            wire.port_id = port_id

    def connect(self, dest: SigSpec, src: SigSpec) -> None:
        self.connections.append((tuple(dest), tuple(src)))

    def add_cell(self, name: str, cell_type: str, connections: Optional[Dict[str, SigSpec]] = None) -> Cell:
        if name in self.cells:
            raise NetlistError(f"Cell {name} already exists in module {self.name}")
        cell = Cell(name, cell_type, {pin: tuple(sig) for pin, sig in (connections or {}).items()})
        self.cells[name] = cell
        return cell

    def port_wires(self) -> Iterator[Wire]:
        for name in self.ports:
            yield self.wires[name]

    def port_descriptors(self) -> List[Port]:
        return [Port(wire.name, wire.direction, wire.width) for wire in self.port_wires()]

    def input_bits(self) -> Iterator[SigBit]:
        for wire in self.port_wires():
            if wire.port_input:
                yield from wire.bits()

    def output_bits(self) -> Iterator[SigBit]:
        for wire in self.port_wires():
            if wire.port_output:
                yield from wire.bits()

    def is_primary_input(self, bit: SigBit) -> bool:
        if not bit.is_wire:
            return False
        wire = self.wires.get(bit.wire)
        return wire is not None and wire.port_input


class Design:
    """An ordered collection of modules plus an optional module selection."""

    def __init__(self):
        self.modules: Dict[str, Module] = {}
        self.selection: Optional[List[str]] = None

    def add_module(self, module: Module) -> Module:
        if module.name in self.modules:
            raise NetlistError(f"Module {module.name} defined more than once")
        self.modules[module.name] = module
        return module

    def module(self, name: str) -> Module:
        return self.modules[name]

    def selected_modules(self, selection: Optional[List[str]] = None) -> List[Module]:
        """
        Resolve a module selection.

        Args:
            selection: Module names to analyse. None falls back to the design's
                own selection, and when that is unset too, to every module.

        Returns:
            The selected modules, in selection order.

        Raises:
            KeyError: If a selected name is not a module of this design
        """
        names = selection if selection is not None else self.selection
        if names is None:
            return list(self.modules.values())
        missing = [name for name in names if name not in self.modules]
        if missing:
            raise KeyError(f"Selected modules not found in design: {', '.join(missing)}")
        return [self.modules[name] for name in names]
