import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .config import AnalysisOptions
from .dependency_graph import DependencyGraph
from .exceptions import NetlistError
from .extract_io_flows import HELP_TEXT, PASS_NAME, execute
from .models import Design
from .verilog_parser import parse_verilog_netlist
from .yosys_json import load_yosys_json

logger = logging.getLogger(__name__)

VERILOG_SUFFIXES = ('.v', '.sv', '.vg')


def load_netlist(path: str, netlist_format: str = "auto",
                 use_synthesis: bool = False, top: Optional[str] = None) -> Design:
    """Load a netlist, picking the reader from ``netlist_format`` or the file suffix."""
    if netlist_format == "auto":
        netlist_format = "verilog" if path.lower().endswith(VERILOG_SUFFIXES) else "json"

    if netlist_format == "verilog":
        return parse_verilog_netlist(path, use_synthesis=use_synthesis, top=top)

    design = load_yosys_json(path)
    if top is not None:
        if top not in design.modules:
            raise NetlistError(f"Top module {top} not found in {path}")
        design.selection = [top]
    return design


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ioflow",
        description="Extract the inputs that flow into outputs",
        epilog=HELP_TEXT,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('netlist', help='Gate-level Verilog or Yosys JSON netlist')
    parser.add_argument('--format', dest='netlist_format', choices=['auto', 'verilog', 'json'],
                        default='auto', help='Netlist format (default: from file suffix)')
    parser.add_argument('--module', dest='modules', action='append', metavar='NAME',
                        help='Only analyse this module (repeatable)')
    parser.add_argument('--top', help='Top module; selects it when no --module is given')
    parser.add_argument('--synthesize', action='store_true',
                        help='Synthesize behavioral Verilog with yowasp-yosys first')
    parser.add_argument('--keep-going', action='store_true',
                        help='Skip malformed modules instead of stopping')
    parser.add_argument('--sequential-marker', dest='sequential_markers', action='append', default=[],
                        metavar='TOKEN', help='Extra cell type substring marking state-holding cells')
    parser.add_argument('--visualize', metavar='DIR',
                        help='Render the dependency graph of each combinational module into DIR')
    parser.add_argument('-o', '--output', help='Write the JSON reports here instead of stdout')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args, extra = parser.parse_known_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s: %(message)s')

    options = AnalysisOptions(keep_going=args.keep_going).with_extra_markers(args.sequential_markers)

    try:
        design = load_netlist(args.netlist, args.netlist_format, args.synthesize, args.top)
        reports = execute([PASS_NAME] + extra, design, selection=args.modules, options=options)
    except (NetlistError, KeyError) as e:
        logger.error(f"{PASS_NAME} failed: {e}")
        return 1

    if args.visualize:
        os.makedirs(args.visualize, exist_ok=True)
        for report in reports:
            if not report.is_sequential:
                graph = DependencyGraph(design.module(report.module), options.ignored_cell_types)
                graph.visualize(os.path.join(args.visualize, f"{report.module}_flows"))

    output = json.dumps([report.to_dict() for report in reports], indent=2)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(output + "\n")
        logger.info(f"Wrote {len(reports)} reports to {args.output}")
    else:
        print(output)

    selected = design.selected_modules(args.modules)
    return 0 if len(reports) == len(selected) else 1


if __name__ == "__main__":
    sys.exit(main())
