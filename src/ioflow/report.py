import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .dependency_graph import DependencyGraph
from .models import Module, SigBit


@dataclass(frozen=True)
class BitDescriptor:
    """A port bit as it appears in a report: port name, bit offset and port width."""
    name: str
    offset: int
    width: int

    @property
    def key(self) -> str:
        return f"{self.name}[{self.offset}]"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "offset": self.offset, "width": self.width}


@dataclass
class ModuleReport:
    """Result of the I/O flow extraction for one module."""
    module: str
    is_sequential: bool
    inputs: List[BitDescriptor]
    outputs: List[BitDescriptor]
    dependencies: Optional[Dict[str, List[BitDescriptor]]] = None  # None when sequential

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "module": self.module,
            "is_sequential": self.is_sequential,
            "inputs": [d.to_dict() for d in self.inputs],
            "outputs": [d.to_dict() for d in self.outputs],
        }
        if self.dependencies is not None:
            data["dependencies"] = {
                key: [d.to_dict() for d in deps] for key, deps in self.dependencies.items()
            }
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def describe_bit(module: Module, bit: SigBit) -> BitDescriptor:
    return BitDescriptor(bit.wire, bit.offset, module.wires[bit.wire].width)


def describe_bits(module: Module, bits: Iterable[SigBit]) -> List[BitDescriptor]:
    """Describe wire bits sorted by port order then offset, dropping duplicates."""
    unique = {(bit.wire, bit.offset): bit for bit in bits if bit.is_wire}
    ordered = sorted(unique.values(), key=lambda b: (module.wires[b.wire].port_id, b.wire, b.offset))
    return [describe_bit(module, bit) for bit in ordered]


def build_report(module: Module, is_sequential: bool,
                 graph: Optional[DependencyGraph] = None) -> ModuleReport:
    """
    Assemble the report of one module.

    Args:
        module: The analysed module
        is_sequential: Classifier verdict for the module
        graph: Dependency graph of the module; required when combinational

    Returns:
        ModuleReport with dependencies only for combinational modules
    """
    inputs = [describe_bit(module, bit) for bit in module.input_bits()]
    outputs = [describe_bit(module, bit) for bit in module.output_bits()]

    if is_sequential:
        return ModuleReport(module.name, True, inputs, outputs)

    if graph is None:
        raise ValueError(f"A dependency graph is required to report combinational module {module.name}")

    dependencies: Dict[str, List[BitDescriptor]] = {}
    for bit, deps in graph.output_dependencies().items():
        dependencies[describe_bit(module, bit).key] = describe_bits(module, deps)

    return ModuleReport(module.name, False, inputs, outputs, dependencies)
