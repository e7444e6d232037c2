import json
import logging
import os
from typing import Any, Dict, List, Union

from .exceptions import NetlistError, NetlistParseError
from .models import CONSTANT_STATES, Design, Module, PortDirection, SigBit, SigSpec

logger = logging.getLogger(__name__)

HIDDEN_NET_PREFIX = "$net$"


class YosysJsonReader:
    """
    Builds a Design from a Yosys ``write_json`` netlist.

    Yosys JSON identifies nets by integer ids shared by every name of the net.
    Each id is given one canonical bit: an input port bit when one carries the
    net, otherwise the first name listed. Every other name of the net becomes
    a connection from the canonical bit, so the ports keep their own names.
    """

    def __init__(self, data: Dict[str, Any]):
        self.data = data

    def read(self) -> Design:
        modules = self.data.get("modules")
        if not isinstance(modules, dict):
            raise NetlistParseError("Yosys JSON netlist has no 'modules' object")

        design = Design()
        for name, module_data in modules.items():
            try:
                design.add_module(self._read_module(name, module_data))
            except NetlistParseError:
                raise
            except (NetlistError, KeyError, TypeError, ValueError) as e:
                raise NetlistParseError(f"Malformed Yosys JSON for module {name}: {e}") from e
        return design

    def _read_module(self, name: str, module_data: Dict[str, Any]) -> Module:
        module = Module(name)
        ports: Dict[str, Any] = module_data.get("ports", {})
        netnames: Dict[str, Any] = module_data.get("netnames", {})

        for port_name, port in ports.items():
            try:
                direction = PortDirection(port["direction"])
            except ValueError:
                raise NetlistParseError(f"Unknown direction {port['direction']!r} of port {port_name} in {name}")
            module.add_port(port_name, direction, len(port["bits"]),
                            start_offset=port.get("offset", 0), upto=bool(port.get("upto", 0)))

        named_bits: Dict[str, List[Any]] = {port_name: port["bits"] for port_name, port in ports.items()}
        for net_name, net in netnames.items():
            if net_name in ports or not net["bits"]:
                continue
            module.add_wire(net_name, len(net["bits"]),
                            start_offset=net.get("offset", 0), upto=bool(net.get("upto", 0)))
            named_bits[net_name] = net["bits"]

        canonical = self._canonical_bits(module, named_bits, netnames)

        for wire_name, bits in named_bits.items():
            for offset, bit_id in enumerate(bits):
                alias = SigBit(wire_name, offset)
                driver = self._sigbit(module, canonical, bit_id)
                if driver != alias:
                    module.connect((alias,), (driver,))

        for cell_name, cell in module_data.get("cells", {}).items():
            connections: Dict[str, SigSpec] = {
                pin: tuple(self._sigbit(module, canonical, bit_id) for bit_id in bits)
                for pin, bits in cell.get("connections", {}).items()
            }
            module.add_cell(cell_name, cell["type"], connections)

        logger.debug(f"Read module {module!r}")
        return module

    @staticmethod
    def _canonical_bits(module: Module, named_bits: Dict[str, List[Any]],
                        netnames: Dict[str, Any]) -> Dict[int, SigBit]:
        def priority(wire_name: str) -> int:
            wire = module.wires[wire_name]
            if wire.port_input:
                return 0
            if not netnames.get(wire_name, {}).get("hide_name", 0):
                return 1
            return 2

        canonical: Dict[int, SigBit] = {}
        # sorted() is stable, so names of equal priority keep file order
        for wire_name in sorted(named_bits, key=priority):
            for offset, bit_id in enumerate(named_bits[wire_name]):
                if isinstance(bit_id, int) and bit_id not in canonical:
                    canonical[bit_id] = SigBit(wire_name, offset)
        return canonical

    @staticmethod
    def _sigbit(module: Module, canonical: Dict[int, SigBit], bit_id: Any) -> SigBit:
        if isinstance(bit_id, str):
            if bit_id not in CONSTANT_STATES:
                raise NetlistParseError(f"Unknown constant bit {bit_id!r} in module {module.name}")
            return SigBit.const(bit_id)
        if isinstance(bit_id, bool) or not isinstance(bit_id, int):
            raise NetlistParseError(f"Invalid bit reference {bit_id!r} in module {module.name}")
        if bit_id not in canonical:
            # net without any name in netnames
            wire_name = f"{HIDDEN_NET_PREFIX}{bit_id}"
            if module.wire(wire_name) is None:
                module.add_wire(wire_name)
            canonical[bit_id] = SigBit(wire_name, 0)
        return canonical[bit_id]


def load_yosys_json(source: Union[str, os.PathLike, Dict[str, Any], Any]) -> Design:
    """
    Load a Yosys JSON netlist.

    Args:
        source: Path to a JSON file, an open file object, or the decoded JSON dict

    Returns:
        Design with one Module per netlist module
    """
    if isinstance(source, dict):
        data = source
    else:
        try:
            if hasattr(source, "read"):
                data = json.load(source)
            else:
                with open(source, encoding="utf-8") as f:
                    data = json.load(f)
        except json.JSONDecodeError as e:
            raise NetlistParseError(f"Invalid Yosys JSON netlist: {e}") from e
    return YosysJsonReader(data).read()
