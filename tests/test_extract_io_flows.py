import json
import logging

import pytest

from conftest import add_gate, bit
from ioflow import (
    AnalysisOptions,
    Design,
    Module,
    PortDirection,
    WidthMismatchError,
    analyze_module,
    execute,
)
from ioflow.extract_io_flows import PASS_NAME


def _as_set(descriptors):
    return {(d["name"], d["offset"], d["width"]) for d in descriptors}


def _sequential_module():
    module = Module("counter")
    module.add_port("clk", PortDirection.INPUT)
    module.add_port("d", PortDirection.INPUT)
    module.add_port("q", PortDirection.OUTPUT)
    add_gate(module, "ff", "$_DFF_P_", C=bit("clk"), D=bit("d"), Q=bit("q"))
    return module


def _broken_module():
    module = Module("broken")
    module.add_port("a", PortDirection.INPUT, 2)
    module.add_port("y", PortDirection.OUTPUT)
    module.connect(module.wires["y"].bits(), module.wires["a"].bits())
    return module


def _design(*modules):
    design = Design()
    for module in modules:
        design.add_module(module)
    return design


def test_and_gate_report(and_module):
    data = analyze_module(and_module).to_dict()

    assert data["module"] == "and2"
    assert data["is_sequential"] is False
    assert data["inputs"] == [{"name": "a", "offset": 0, "width": 1},
                              {"name": "b", "offset": 0, "width": 1}]
    assert data["outputs"] == [{"name": "y", "offset": 0, "width": 1}]
    assert list(data["dependencies"]) == ["y[0]"]
    assert _as_set(data["dependencies"]["y[0]"]) == {("a", 0, 1), ("b", 0, 1)}


def test_multi_bit_report(bus_module):
    report = analyze_module(bus_module)
    data = json.loads(report.to_json())

    assert [(d["name"], d["offset"]) for d in data["inputs"]] == [
        ("d", 0), ("d", 1), ("d", 2), ("d", 3), ("s", 0), ("s", 1)]
    assert all(d["width"] == 4 for d in data["inputs"][:4])
    assert list(data["dependencies"]) == ["q[0]", "q[1]", "q[2]"]
    assert data["dependencies"]["q[1]"] == [
        {"name": "d", "offset": 2, "width": 4},
        {"name": "d", "offset": 3, "width": 4},
        {"name": "s", "offset": 0, "width": 2},
    ]
    assert data["dependencies"]["q[2]"] == []


def test_sequential_module_reports_ports_only():
    data = analyze_module(_sequential_module()).to_dict()
    assert data["is_sequential"] is True
    assert "dependencies" not in data
    assert _as_set(data["inputs"]) == {("clk", 0, 1), ("d", 0, 1)}
    assert data["outputs"] == [{"name": "q", "offset": 0, "width": 1}]


def test_sequential_module_skips_graph_checks():
    # the flip-flop would be an unsupported cell for the dependency graph
    module = _sequential_module()
    module.connect((bit("q"),), module.wires["d"].bits() + module.wires["clk"].bits())
    assert analyze_module(module).is_sequential


def test_width_mismatch_produces_no_report(and_module):
    design = _design(and_module, _broken_module())
    with pytest.raises(WidthMismatchError):
        execute([PASS_NAME], design)


def test_keep_going_skips_broken_module(and_module, caplog):
    design = _design(_broken_module(), and_module)
    with caplog.at_level(logging.ERROR):
        reports = execute([PASS_NAME], design, options=AnalysisOptions(keep_going=True))
    assert [r.module for r in reports] == ["and2"]
    assert "broken" in caplog.text


def test_extra_arguments_log_notice(and_module, caplog):
    design = _design(and_module)
    with caplog.at_level(logging.INFO, logger="ioflow.extract_io_flows"):
        reports = execute([PASS_NAME, "-foo", "bar"], design)
    assert "No options supported yet" in caplog.text
    assert len(reports) == 1


def test_explicit_selection(and_module, chain_module):
    design = _design(and_module, chain_module)
    reports = execute([PASS_NAME], design, selection=["chain"])
    assert [r.module for r in reports] == ["chain"]


def test_design_selection_is_default(and_module, chain_module):
    design = _design(and_module, chain_module)
    design.selection = ["and2"]
    assert [r.module for r in execute([PASS_NAME], design)] == ["and2"]
    assert [r.module for r in execute([PASS_NAME], design, selection=["and2", "chain"])] == ["and2", "chain"]


def test_unknown_selection(and_module):
    with pytest.raises(KeyError):
        execute([PASS_NAME], _design(and_module), selection=["missing"])


def test_mixed_design(and_module):
    reports = execute([PASS_NAME], _design(_sequential_module(), and_module))
    assert [(r.module, r.is_sequential) for r in reports] == [("counter", True), ("and2", False)]
    assert reports[0].dependencies is None
    assert reports[1].dependencies is not None


def test_options_round_trip():
    options = AnalysisOptions.from_dict({"extra_sequential_markers": ["RAM"], "keep_going": True})
    assert options.sequential_markers[-1] == "RAM"
    assert AnalysisOptions.from_dict(options.to_dict()) == options


def test_empty_marker_rejected():
    with pytest.raises(ValueError):
        AnalysisOptions(sequential_markers=("FF", ""))
