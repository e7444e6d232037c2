from .models import SigBit, SigSpec, Wire, Port, PortDirection, Cell, Module, Design
from .cell_types import GateKind, SEQUENTIAL_MARKERS, IGNORED_CELL_TYPES
from .classifier import is_sequential_cell_type, find_sequential_cells, is_sequential_module
from .config import AnalysisOptions
from .dependency_graph import DependencyGraph
from .report import BitDescriptor, ModuleReport, build_report
from .extract_io_flows import analyze_module, execute
from .verilog_parser import parse_verilog_netlist
from .yosys_json import load_yosys_json
from .exceptions import (
    NetlistError,
    NetlistParseError,
    StructuralInconsistencyError,
    WidthMismatchError,
    MultiBitPinError,
    UnsupportedCellError,
    CyclicDependencyError,
)

__all__ = [
    'SigBit',
    'SigSpec',
    'Wire',
    'Port',
    'PortDirection',
    'Cell',
    'Module',
    'Design',
    'GateKind',
    'SEQUENTIAL_MARKERS',
    'IGNORED_CELL_TYPES',
    'is_sequential_cell_type',
    'find_sequential_cells',
    'is_sequential_module',
    'AnalysisOptions',
    'DependencyGraph',
    'BitDescriptor',
    'ModuleReport',
    'build_report',
    'analyze_module',
    'execute',
    'parse_verilog_netlist',
    'load_yosys_json',
    'NetlistError',
    'NetlistParseError',
    'StructuralInconsistencyError',
    'WidthMismatchError',
    'MultiBitPinError',
    'UnsupportedCellError',
    'CyclicDependencyError',
]
