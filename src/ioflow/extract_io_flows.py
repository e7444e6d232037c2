import logging
from typing import List, Optional

from .classifier import is_sequential_module
from .config import AnalysisOptions
from .dependency_graph import DependencyGraph
from .exceptions import StructuralInconsistencyError
from .models import Design, Module
from .report import ModuleReport, build_report

logger = logging.getLogger(__name__)

PASS_NAME = "extract_io_flows"

HELP_TEXT = f"""
    {PASS_NAME} [selection]

This pass reports, for every output port bit of each selected combinational
module, the input port bits that can influence it. Modules containing
flip-flops, latches or memories are listed without dependencies.
"""


def analyze_module(module: Module, options: Optional[AnalysisOptions] = None) -> ModuleReport:
    """
    Classify a module and, if it is combinational, extract its I/O flows.

    Raises:
        StructuralInconsistencyError: If the module's netlist is malformed
    """
    options = options or AnalysisOptions()

    if is_sequential_module(module, options.sequential_markers):
        logger.info(f"No I/O Flow analysis for sequential module {module.name} yet.")
        return build_report(module, is_sequential=True)

    logger.info(f"Analysing combinational module {module.name}.")
    graph = DependencyGraph(module, options.ignored_cell_types)
    report = build_report(module, is_sequential=False, graph=graph)
    logger.debug(f"Resolved {graph.resolved_count} bits in module {module.name}")
    return report


def execute(args: List[str], design: Design,
            selection: Optional[List[str]] = None,
            options: Optional[AnalysisOptions] = None) -> List[ModuleReport]:
    """
    Run the extract_io_flows pass over the selected modules of a design.

    Args:
        args: Pass invocation, ``args[0]`` being the pass name. No options are
            recognised; extra arguments only produce a notice.
        design: The design to analyse
        selection: Names of the modules to analyse (None: design selection, else all)
        options: Analysis options

    Returns:
        One report per successfully analysed module, in selection order

    Raises:
        StructuralInconsistencyError: On the first malformed module, unless
            ``options.keep_going`` is set
    """
    options = options or AnalysisOptions()
    logger.info("Executing EXTRACT_IO_FLOWS pass.")

    if len(args) > 1:
        logger.info(f"No options supported yet. Ignoring: {' '.join(args[1:])}")

    reports: List[ModuleReport] = []
    for module in design.selected_modules(selection):
        try:
            reports.append(analyze_module(module, options))
        except StructuralInconsistencyError as e:
            if not options.keep_going:
                raise
            logger.error(f"Skipping module {module.name}: {e}")
    return reports
