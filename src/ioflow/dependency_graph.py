import logging
import warnings
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

import graphviz
import networkx as nx

from .cell_types import IGNORED_CELL_TYPES, GateKind
from .exceptions import (
    CyclicDependencyError,
    MultiBitPinError,
    StructuralInconsistencyError,
    UnsupportedCellError,
    WidthMismatchError,
)
from .models import Cell, Module, SigBit

logger = logging.getLogger(__name__)

EMPTY_DEPS: FrozenSet[SigBit] = frozenset()


class DependencyGraph:
    """
    Per-bit dependency graph of a single combinational module.

    The predecessor map is a DiGraph with one edge ``src -> dest`` per
    assigned bit and per (input pin, output pin) pair of every gate. The
    primary-input closure of a bit is computed on demand and memoized; both
    structures live only as long as this object.
    """

    def __init__(self, module: Module, ignored_cell_types: Iterable[str] = IGNORED_CELL_TYPES):
        self.module = module
        self.ignored_cell_types = frozenset(ignored_cell_types)
        self.graph = nx.DiGraph()
        self._deps: Dict[SigBit, FrozenSet[SigBit]] = {}
        self._resolving: Set[SigBit] = set()
        self.build()

    def add_sigbit_connection(self, src: SigBit, dest: SigBit) -> None:
        self.graph.add_edge(src, dest)

    def build(self) -> None:
        """Populate the predecessor map from the module's connections and cells."""
        for dest, src in self.module.connections:
            if len(dest) != len(src):
                raise WidthMismatchError(self.module.name, len(dest), len(src))
            for dest_bit, src_bit in zip(dest, src):
                self.add_sigbit_connection(src_bit, dest_bit)

        for cell in self.module.cells.values():
            if cell.type in self.ignored_cell_types:
                continue
            self._add_cell(cell)

        logger.debug(f"Dependency graph for {self.module.name}: "
                     f"{self.graph.number_of_nodes()} bits, {self.graph.number_of_edges()} edges")

    def _add_cell(self, cell: Cell) -> None:
        kind = GateKind.from_cell_type(cell.type)
        if kind is None:
            raise UnsupportedCellError(self.module.name, cell.name, cell.type)

        inputs: List[SigBit] = []
        outputs: List[SigBit] = []
        for pin, sig in cell.connections.items():
            if pin != kind.output_pin and pin not in kind.input_pins:
                raise UnsupportedCellError(self.module.name, cell.name, cell.type,
                                           reason=f"unexpected pin {pin} on")
            if len(sig) != 1:
                raise MultiBitPinError(self.module.name, cell.name, pin, len(sig))
            if pin == kind.output_pin:
                outputs.append(sig[0])
            else:
                inputs.append(sig[0])

        if not outputs or not inputs:
            raise StructuralInconsistencyError(
                self.module.name,
                f"cell {cell.name} ({cell.type}) needs its output pin and at least one input pin connected"
            )

        # Every input, select pins included, may influence the output.
        for output in outputs:
            for input_bit in inputs:
                self.add_sigbit_connection(input_bit, output)

    def predecessors(self, bit: SigBit) -> Set[SigBit]:
        if bit not in self.graph:
            return set()
        return set(self.graph.predecessors(bit))

    def is_cached(self, bit: SigBit) -> bool:
        return bit in self._deps

    @property
    def resolved_count(self) -> int:
        return len(self._deps)

    def dependencies_of(self, bit: SigBit) -> FrozenSet[SigBit]:
        """
        Return the primary-input bits that can influence ``bit``.

        Constants depend on nothing, a primary input depends on itself and any
        other bit on the union of its predecessors' dependencies. Resolution
        uses an explicit stack so that deep chains do not exhaust the
        interpreter's recursion limit; bits on the current path are tracked to
        report combinational loops.

        Args:
            bit: The bit to resolve

        Returns:
            Frozen set of primary-input bits

        Raises:
            CyclicDependencyError: If ``bit`` lies downstream of a combinational loop
        """
        if bit in self._deps:
            return self._deps[bit]

        stack: List[Tuple[SigBit, bool]] = [(bit, False)]
        try:
            while stack:
                sig, expanded = stack.pop()
                if expanded:
                    deps: Set[SigBit] = set()
                    for pred in self.graph.predecessors(sig):
                        deps.update(self._deps[pred])
                    self._deps[sig] = frozenset(deps)
                    self._resolving.discard(sig)
                    continue

                if sig in self._deps:
                    continue
                if sig in self._resolving:
                    raise CyclicDependencyError(self.module.name, sig)
                if not sig.is_wire:
                    self._deps[sig] = EMPTY_DEPS
                    continue
                if self.module.is_primary_input(sig):
                    self._deps[sig] = frozenset((sig,))
                    continue
                if sig not in self.graph:
                    # undriven internal bit
                    self._deps[sig] = EMPTY_DEPS
                    continue

                self._resolving.add(sig)
                stack.append((sig, True))
                for pred in self.graph.predecessors(sig):
                    if pred not in self._deps:
                        stack.append((pred, False))
        finally:
            self._resolving.clear()

        return self._deps[bit]

    def output_dependencies(self) -> Dict[SigBit, FrozenSet[SigBit]]:
        """Resolve every output port bit, in port order then ascending offset."""
        result: Dict[SigBit, FrozenSet[SigBit]] = {}
        for bit in self.module.output_bits():
            result[bit] = self.dependencies_of(bit)
            logger.debug(f"Output {bit} has {len(result[bit])} dependencies")
        return result

    def to_networkx(self) -> nx.DiGraph:
        """Return a copy of the predecessor map as a DiGraph (edges point from driver to load)."""
        return self.graph.copy()

    def visualize(self, filename: Optional[str] = None) -> None:
        """Render the bit-level dependency graph with Graphviz."""
        filename = filename or f"{self.module.name}_flows"
        dot = graphviz.Digraph(comment=f'I/O flows of {self.module.name}')
        dot.attr(rankdir='LR')

        # Yosys names contain ':', which Graphviz reads as node:port in edges
        node_ids = {bit: f"n{i}" for i, bit in enumerate(self.graph.nodes())}

        outputs = set(self.module.output_bits())
        for bit, node_id in node_ids.items():
            if self.module.is_primary_input(bit):
                dot.node(node_id, str(bit), shape='ellipse', color='blue')
            elif bit in outputs:
                dot.node(node_id, str(bit), shape='ellipse', color='red')
            else:
                dot.node(node_id, str(bit), shape='point' if not bit.is_wire else 'box')

        for src, dest in self.graph.edges():
            dot.edge(node_ids[src], node_ids[dest])

        try:
            dot.render(filename, view=False, format='png')
        except graphviz.ExecutableNotFound as e:
            warnings.warn(f"Could not generate visualization: {e}\n"
                          f"Please install Graphviz and add it to your system PATH")
