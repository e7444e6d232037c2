from pyverilog.vparser.parser import parse
from pyverilog.vparser import ast as vast
import logging
import os
import re
import shutil
import subprocess
import tempfile
import warnings
from typing import Dict, List, Optional, Set, Tuple

from .cell_types import GateKind
from .exceptions import NetlistError, NetlistParseError
from .models import Design, Module, SigSpec, Wire, const_sigspec

logger = logging.getLogger(__name__)

_BASED_CONSTANT = re.compile(r"^(\d*)'[sS]?([bBoOdDhH])([0-9a-fA-FxXzZ?]+)$")
_DIGIT_BITS = {'b': 1, 'o': 3, 'h': 4}
_DIGIT_RADIX = {'b': 2, 'o': 8, 'h': 16}

# Module items that only appear in behavioural code.
_BEHAVIOURAL_ITEMS = (vast.Always, vast.Initial)


def _strip_escape(name: str) -> str:
    """Drop the leading backslash of a Verilog escaped identifier."""
    name = name.strip()
    return name[1:] if name.startswith('\\') else name


def _expand_digit(digit: str, base: str, literal: str) -> str:
    width = _DIGIT_BITS[base]
    lowered = digit.lower()
    if lowered == 'x':
        return 'x' * width
    if lowered in ('z', '?'):
        return 'z' * width
    try:
        value = int(lowered, _DIGIT_RADIX[base])
    except ValueError:
        raise NetlistParseError(f"Invalid digit {digit!r} in constant {literal!r}")
    return format(value, f'0{width}b')


def parse_constant(literal: str, width_hint: Optional[int] = None) -> SigSpec:
    """
    Convert a Verilog integer literal into constant bits.

    Sized literals keep their declared width. Unsized literals take
    ``width_hint`` when given (the width of the assignment target), otherwise
    the 32 bits Verilog gives them. Values are truncated or extended the way
    Verilog does: x/z in the top digit extends with x/z, anything else with 0.

    Args:
        literal: The literal as written, e.g. ``4'b10x1``, ``8'hff``, ``3``
        width_hint: Width to use for unsized literals

    Returns:
        SigSpec of constant bits, least significant bit first

    Raises:
        NetlistParseError: If the literal is malformed
    """
    text = literal.replace('_', '').replace(' ', '')
    match = _BASED_CONSTANT.match(text)
    if match is None:
        if not text.isdigit():
            raise NetlistParseError(f"Malformed constant {literal!r}")
        size = None
        bits = format(int(text), 'b')
    else:
        size_text, base, digits = match.groups()
        size = int(size_text) if size_text else None
        base = base.lower()
        if base == 'd':
            if digits.lower() in ('x', 'z', '?'):
                bits = 'x' if digits.lower() == 'x' else 'z'
            elif digits.isdigit():
                bits = format(int(digits), 'b')
            else:
                raise NetlistParseError(f"Malformed decimal constant {literal!r}")
        else:
            bits = ''.join(_expand_digit(d, base, literal) for d in digits)

    if size is None:
        size = width_hint if width_hint is not None else max(len(bits), 32)
    if size < 1:
        raise NetlistParseError(f"Constant {literal!r} has zero width")

    if len(bits) >= size:
        bits = bits[-size:]
    else:
        pad = bits[0] if bits[0] in ('x', 'z') else '0'
        bits = pad * (size - len(bits)) + bits
    return const_sigspec(bits)


class ModuleTranslator:
    """Translates one Pyverilog ModuleDef into a netlist Module."""

    def __init__(self, module_def: vast.ModuleDef):
        self.module_def = module_def
        self.module = Module(_strip_escape(module_def.name))
        self.port_names: List[str] = []
        self.ranged_wires: Set[str] = set()  # wires declared with an explicit [msb:lsb]
        self.cell_counter = 0

    def translate(self) -> Module:
        """Declarations first, so that assignments and instances see final wire widths."""
        self._process_portlist(self.module_def.portlist)

        items = list(self.module_def.items or [])
        for item in items:
            if isinstance(item, vast.Decl):
                self._process_declaration(item)

        for item in items:
            if isinstance(item, vast.Decl):
                continue
            elif isinstance(item, vast.Assign):
                self._process_assign(item)
            elif isinstance(item, vast.InstanceList):
                self._process_instance_list(item)
            elif isinstance(item, _BEHAVIOURAL_ITEMS):
                raise NetlistParseError(
                    f"Behavioural block {type(item).__name__} in module {self.module.name} is not supported. "
                    f"Please use a gate-level netlist or synthesize behavioral Verilog."
                )
            else:
                raise NetlistParseError(
                    f"Unsupported module item {type(item).__name__} in module {self.module.name}"
                )

        self.module.ports = list(self.port_names)
        try:
            self.module.fixup_ports()
        except NetlistError as e:
            raise NetlistParseError(str(e)) from e
        return self.module

    def _process_portlist(self, portlist: Optional[vast.Portlist]) -> None:
        """Record port order; ANSI ports also carry their declarations."""
        if portlist is None:
            return
        for port in portlist.ports:
            if isinstance(port, vast.Ioport):
                self._declare(port.first)
                if port.second is not None:
                    self._declare(port.second)
                self.port_names.append(_strip_escape(port.first.name))
            elif isinstance(port, vast.Port):
                self.port_names.append(_strip_escape(port.name))

    def _process_declaration(self, decl: vast.Decl) -> None:
        for item in decl.list:
            if isinstance(item, (vast.Input, vast.Output, vast.Inout, vast.Wire, vast.Reg)):
                self._declare(item)
            # parameters and other declarations carry no connectivity

    def _declare(self, var: vast.Variable) -> Wire:
        """
        Declare or refine a wire.

        Yosys writes ports twice (``input [3:0] a;`` and ``wire [3:0] a;``), so
        a repeated declaration merges direction flags, and a ranged
        declaration refines an earlier unranged one.

        Raises:
            NetlistParseError: If two ranged declarations disagree
        """
        name = _strip_escape(var.name)
        width, start_offset, upto = self._decode_width(var.width)

        wire = self.module.wire(name)
        if wire is None:
            wire = self.module.add_wire(name, width, start_offset=start_offset, upto=upto)
        elif var.width is not None:
            if name in self.ranged_wires and (wire.width, wire.start_offset, wire.upto) != (width, start_offset, upto):
                raise NetlistParseError(f"Conflicting ranges declared for {name} in module {self.module.name}")
            wire.width, wire.start_offset, wire.upto = width, start_offset, upto

        if var.width is not None:
            self.ranged_wires.add(name)
        if isinstance(var, (vast.Input, vast.Inout)):
            wire.port_input = True
        if isinstance(var, (vast.Output, vast.Inout)):
            wire.port_output = True
        return wire

    def _decode_width(self, width: Optional[vast.Width]) -> Tuple[int, int, bool]:
        """Return (width, start_offset, upto) for a declared range."""
        if width is None:
            return 1, 0, False
        msb = self._const_int(width.msb)
        lsb = self._const_int(width.lsb)
        return abs(msb - lsb) + 1, min(msb, lsb), msb < lsb

    def _const_int(self, node) -> int:
        if not isinstance(node, vast.IntConst):
            raise NetlistParseError(
                f"Only integer constants are supported in ranges and indices, got {type(node).__name__} "
                f"in module {self.module.name}"
            )
        if "'" not in node.value:
            return int(node.value.replace('_', ''))
        states = ''.join(bit.data for bit in reversed(parse_constant(node.value)))
        if any(state not in ('0', '1') for state in states):
            raise NetlistParseError(f"Index {node.value} is not a defined number")
        return int(states, 2)

    def _lookup_wire(self, name: str) -> Wire:
        name = _strip_escape(name)
        wire = self.module.wire(name)
        if wire is None:
            logger.debug(f"Implicit net {name} in module {self.module.name}")
            wire = self.module.add_wire(name)
        return wire

    def _var_wire(self, node) -> Wire:
        if not isinstance(node, vast.Identifier):
            raise NetlistParseError(f"Unsupported select base {type(node).__name__} in module {self.module.name}")
        return self._lookup_wire(node.name)

    def _resolve_sigspec(self, node, width_hint: Optional[int] = None) -> SigSpec:
        """
        Resolve a connection expression to its bits.

        Handles identifiers, bit selects, part selects, concatenations,
        repeats and integer constants. ``width_hint`` is only used to size an
        unsized constant.

        Raises:
            NetlistParseError: For any other expression
        """
        try:
            if isinstance(node, (vast.Lvalue, vast.Rvalue)):
                return self._resolve_sigspec(node.var, width_hint)

            if isinstance(node, vast.Identifier):
                return self._lookup_wire(node.name).bits()

            if isinstance(node, vast.Pointer):
                wire = self._var_wire(node.var)
                index = self._const_int(node.ptr)
                return (wire.bit(wire.index_to_offset(index)),)

            if isinstance(node, vast.Partselect):
                wire = self._var_wire(node.var)
                msb = self._const_int(node.msb)
                lsb = self._const_int(node.lsb)
                step = 1 if msb >= lsb else -1
                return tuple(wire.bit(wire.index_to_offset(i)) for i in range(lsb, msb + step, step))

            if isinstance(node, vast.Concat):
                bits: List = []
                # {msb_part, ..., lsb_part}
                for item in reversed(node.list):
                    bits.extend(self._resolve_sigspec(item))
                return tuple(bits)

            if isinstance(node, vast.Repeat):
                return self._resolve_sigspec(node.value) * self._const_int(node.times)

            if isinstance(node, vast.IntConst):
                return parse_constant(node.value, width_hint)
        except IndexError as e:
            raise NetlistParseError(f"{e} in module {self.module.name}") from e

        raise NetlistParseError(
            f"Unsupported expression {type(node).__name__} in module {self.module.name}. "
            f"Please use a gate-level netlist or synthesize behavioral Verilog."
        )

    def _process_assign(self, assign: vast.Assign) -> None:
        dest = self._resolve_sigspec(assign.left)
        if any(not bit.is_wire for bit in dest):
            raise NetlistParseError(f"Assignment to a constant in module {self.module.name}")
        src = self._resolve_sigspec(assign.right, width_hint=len(dest))
        self.module.connect(dest, src)

    def _process_instance_list(self, instance_list: vast.InstanceList) -> None:
        for instance in instance_list.instances:
            if getattr(instance, 'array', None) is not None:
                raise NetlistParseError(f"Instance arrays are not supported in module {self.module.name}")

            cell_type = _strip_escape(instance.module)
            if instance.name:
                name = _strip_escape(instance.name)
            else:
                name = f"${cell_type}${self.cell_counter}"
            self.cell_counter += 1

            # primitive gate pins are single bits, so unsized constants on them are too
            pin_width = 1 if GateKind.from_cell_type(cell_type) is not None else None

            connections: Dict[str, SigSpec] = {}
            for port in instance.portlist or []:
                if port.portname is None:
                    raise NetlistParseError(
                        f"Instance {name} in module {self.module.name} uses positional port connections"
                    )
                pin = _strip_escape(port.portname)
                if port.argname is None:
                    connections[pin] = ()
                else:
                    connections[pin] = self._resolve_sigspec(port.argname, width_hint=pin_width)

            self.module.add_cell(name, cell_type, connections)


class VerilogNetlistReader:
    """Parses gate-level Verilog netlists into a Design using Pyverilog."""

    def __init__(self):
        self.ast = None
        self.design = Design()
        self.temp_dirs: List[str] = []

    def parse_file(self, filename: str, use_synthesis: bool = False, top: Optional[str] = None) -> Design:
        """
        Parse a Verilog file into a Design.

        Args:
            filename: Path to the Verilog file to parse
            use_synthesis: Whether to synthesize behavioral Verilog to a gate-level netlist first
            top: Top module; with synthesis it drives ``hierarchy -top``, and it
                becomes the design's module selection

        Returns:
            The parsed Design
        """
        if use_synthesis:
            try:
                output_file = self._synthesize_verilog(filename, top)
                self._parse_verilog_file(output_file)
            except (subprocess.SubprocessError, FileNotFoundError) as e:
                warnings.warn(f"Synthesis failed, falling back to direct parsing. Error: {e}\n"
                              f"Ensure YoWASP Yosys is installed via 'pip install yowasp-yosys' for better behavioral Verilog support.")
                self._parse_verilog_file(filename)
        else:
            self._parse_verilog_file(filename)

        if top is not None:
            if top not in self.design.modules:
                raise NetlistParseError(f"Top module {top} not found in {filename}")
            self.design.selection = [top]
        return self.design

    def _synthesize_verilog(self, filename: str, top: Optional[str] = None) -> str:
        """
        Synthesize behavioral Verilog to a flat gate-level netlist using Yosys.

        Args:
            filename: Path to input Verilog file
            top: Top module name, or None to let Yosys pick it

        Returns:
            Path to synthesized gate-level Verilog file
        """
        if shutil.which("yowasp-yosys") is None:
            raise FileNotFoundError("YoWASP Yosys not found. Please install it via 'pip install yowasp-yosys' for behavioral Verilog support.")

        filename = filename.replace('\\', '/')
        base_name = os.path.splitext(os.path.basename(filename))[0]
        # registered before Yosys runs, so a failed run is cleaned up too
        work_dir = tempfile.mkdtemp(prefix=f"{base_name}_synth_")
        self.temp_dirs.append(work_dir)
        output_file = os.path.join(work_dir, f"{base_name}_synth.v").replace('\\', '/')
        script_file = os.path.join(work_dir, f"{base_name}_synth.ys")

        hierarchy = f"hierarchy -check -top {top}" if top else "hierarchy -check -auto-top"
        with open(script_file, 'w') as f:
            f.write("# Yosys synthesis script\n")
            f.write(f"read_verilog {filename}\n")
            f.write(f"{hierarchy}\n")
            f.write("proc; flatten; opt\n")
            f.write("memory; opt\n")
            f.write("techmap; opt\n")
            # -noexpr keeps every gate as a cell instance
            f.write(f"write_verilog -noattr -noexpr {output_file}\n")

        result = subprocess.run(
            ["yowasp-yosys", "-q", "-s", script_file],
            check=True,
            capture_output=True,
            text=True
        )

        if not os.path.exists(output_file):
            raise FileNotFoundError(f"Synthesis failed: {result.stderr}")

        logger.info(f"Synthesized {filename} to {output_file}")
        return output_file

    def _parse_verilog_file(self, filename: str) -> None:
        """Parse a Verilog file into an AST using Pyverilog and translate its modules."""
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=UserWarning)
            self.ast, _ = parse([filename], debug=False)
        self._extract_modules()

    def _extract_modules(self) -> None:
        for item in self.ast.description.definitions:
            if isinstance(item, vast.ModuleDef):
                self.add_module_def(item)

    def add_module_def(self, module_def: vast.ModuleDef) -> Module:
        """Translate a single ModuleDef and add it to the design."""
        module = ModuleTranslator(module_def).translate()
        logger.debug(f"Read module {module!r}")
        return self.design.add_module(module)

    def cleanup(self) -> None:
        """Remove the synthesis working directories."""
        for work_dir in self.temp_dirs:
            shutil.rmtree(work_dir, ignore_errors=True)
        self.temp_dirs = []


def parse_verilog_netlist(filename: str,
                          use_synthesis: bool = False,
                          top: Optional[str] = None) -> Design:
    """
    Parse a gate-level Verilog netlist and return its Design.

    Args:
        filename: Path to Verilog file
        use_synthesis: Whether to attempt synthesis for behavioral Verilog
        top: Optional top module to select

    Returns:
        Design with one Module per module definition
    """
    reader = VerilogNetlistReader()
    try:
        return reader.parse_file(filename, use_synthesis=use_synthesis, top=top)
    finally:
        reader.cleanup()
