import re

import graphviz
import networkx as nx
import pytest

from conftest import add_gate, bit
from ioflow import (
    CyclicDependencyError,
    DependencyGraph,
    Module,
    MultiBitPinError,
    PortDirection,
    SigBit,
    StructuralInconsistencyError,
    UnsupportedCellError,
    WidthMismatchError,
)


def test_primary_input_depends_on_itself(and_module):
    graph = DependencyGraph(and_module)
    for input_bit in and_module.input_bits():
        assert graph.dependencies_of(input_bit) == {input_bit}


@pytest.mark.parametrize("state", ["0", "1", "x", "z"])
def test_constant_has_no_dependencies(and_module, state):
    graph = DependencyGraph(and_module)
    assert graph.dependencies_of(SigBit.const(state)) == set()


def test_and_gate(and_module):
    graph = DependencyGraph(and_module)
    assert graph.dependencies_of(bit("y")) == {bit("a"), bit("b")}


def test_reconvergent_fan_in(reconvergent_module):
    graph = DependencyGraph(reconvergent_module)
    assert graph.dependencies_of(bit("y")) == {bit("a"), bit("b")}
    assert graph.dependencies_of(bit("x")) == {bit("a"), bit("b")}


def test_chain(chain_module):
    graph = DependencyGraph(chain_module)
    assert graph.dependencies_of(bit("y")) == {bit("a")}


def test_fan_in_is_union_of_predecessors(reconvergent_module):
    graph = DependencyGraph(reconvergent_module)
    preds = graph.predecessors(bit("y"))
    assert preds == {bit("a"), bit("x")}
    expected = set()
    for pred in preds:
        expected |= graph.dependencies_of(pred)
    assert graph.dependencies_of(bit("y")) == expected


def test_second_query_is_served_from_cache(reconvergent_module):
    graph = DependencyGraph(reconvergent_module)
    first = graph.dependencies_of(bit("y"))
    assert graph.is_cached(bit("y"))
    assert graph.is_cached(bit("x"))

    # with the predecessor map gone, only the cache can answer
    graph.graph = nx.DiGraph()
    assert graph.dependencies_of(bit("y")) == first


def test_shared_ancestors_resolved_once():
    # a ladder of diamonds: the number of paths doubles per level
    module = Module("ladder")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("b", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    levels = 40
    module.add_wire("l", levels)
    module.add_wire("r", levels)
    add_gate(module, "l0", "$_AND_", A=bit("a"), B=bit("b"), Y=bit("l", 0))
    add_gate(module, "r0", "$_OR_", A=bit("a"), B=bit("b"), Y=bit("r", 0))
    for i in range(1, levels):
        add_gate(module, f"l{i}", "$_AND_", A=bit("l", i - 1), B=bit("r", i - 1), Y=bit("l", i))
        add_gate(module, f"r{i}", "$_XOR_", A=bit("l", i - 1), B=bit("r", i - 1), Y=bit("r", i))
    add_gate(module, "out", "$_OR_", A=bit("l", levels - 1), B=bit("r", levels - 1), Y=bit("y"))

    graph = DependencyGraph(module)
    assert graph.dependencies_of(bit("y")) == {bit("a"), bit("b")}
    assert graph.resolved_count == 2 * levels + 3


def test_long_chain_does_not_hit_recursion_limit():
    module = Module("long_chain")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    length = 5000
    module.add_wire("n", length)
    add_gate(module, "g0", "$_NOT_", A=bit("a"), Y=bit("n", 0))
    for i in range(1, length):
        add_gate(module, f"g{i}", "$_BUF_", A=bit("n", i - 1), Y=bit("n", i))
    module.connect((bit("y"),), (bit("n", length - 1),))

    graph = DependencyGraph(module)
    assert graph.dependencies_of(bit("y")) == {bit("a")}


def test_mux_select_is_a_dependency(bus_module):
    graph = DependencyGraph(bus_module)
    assert graph.dependencies_of(bit("q", 1)) == {bit("d", 2), bit("d", 3), bit("s", 0)}
    assert graph.dependencies_of(bit("q", 0)) == {bit("d", 0), bit("d", 1)}
    assert graph.dependencies_of(bit("q", 2)) == set()


def test_undriven_bit_has_no_dependencies():
    module = Module("floating")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    graph = DependencyGraph(module)
    assert graph.dependencies_of(bit("y")) == set()


def test_output_dependencies_follow_port_order(bus_module):
    graph = DependencyGraph(bus_module)
    assert list(graph.output_dependencies()) == [bit("q", 0), bit("q", 1), bit("q", 2)]


def test_matches_networkx_ancestors(bus_module, reconvergent_module, chain_module):
    for module in (bus_module, reconvergent_module, chain_module):
        graph = DependencyGraph(module)
        dag = graph.to_networkx()
        for out_bit in module.output_bits():
            ancestors = nx.ancestors(dag, out_bit) if out_bit in dag else set()
            expected = {b for b in ancestors if module.is_primary_input(b)}
            assert graph.dependencies_of(out_bit) == expected


def test_width_mismatch_is_fatal():
    module = Module("mismatch")
    module.add_port("a", PortDirection.INPUT, 2)
    module.add_port("y", PortDirection.OUTPUT, 3)
    module.connect(module.wires["y"].bits(), module.wires["a"].bits())
    with pytest.raises(WidthMismatchError) as excinfo:
        DependencyGraph(module)
    assert excinfo.value.dest_width == 3
    assert excinfo.value.src_width == 2


def test_multi_bit_pin_is_fatal():
    module = Module("wide_pin")
    module.add_port("a", PortDirection.INPUT, 2)
    module.add_port("y", PortDirection.OUTPUT)
    module.add_cell("g", "$_NOT_", {"A": module.wires["a"].bits(), "Y": (bit("y"),)})
    with pytest.raises(MultiBitPinError):
        DependencyGraph(module)


def test_unconnected_pin_is_fatal(and_module):
    and_module.cells["g0"].connections["B"] = ()
    with pytest.raises(MultiBitPinError):
        DependencyGraph(and_module)


def test_unsupported_cell_type_is_fatal(and_module):
    and_module.add_cell("sub", "my_adder", {"A": (bit("a"),), "Y": (bit("y"),)})
    with pytest.raises(UnsupportedCellError) as excinfo:
        DependencyGraph(and_module)
    assert excinfo.value.cell_type == "my_adder"


def test_unknown_pin_is_fatal(and_module):
    and_module.cells["g0"].connections["S"] = (bit("a"),)
    with pytest.raises(UnsupportedCellError):
        DependencyGraph(and_module)


def test_gate_without_output_is_fatal():
    module = Module("no_output")
    module.add_port("a", PortDirection.INPUT)
    add_gate(module, "g", "$_NOT_", A=bit("a"))
    with pytest.raises(StructuralInconsistencyError):
        DependencyGraph(module)


def test_scopeinfo_cells_are_ignored(and_module):
    and_module.add_cell("scope", "$scopeinfo", {})
    graph = DependencyGraph(and_module)
    assert graph.dependencies_of(bit("y")) == {bit("a"), bit("b")}


def test_combinational_loop_is_reported():
    module = Module("loop")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    module.add_wire("x")
    add_gate(module, "g0", "$_AND_", A=bit("a"), B=bit("y"), Y=bit("x"))
    add_gate(module, "g1", "$_NOT_", A=bit("x"), Y=bit("y"))

    graph = DependencyGraph(module)
    with pytest.raises(CyclicDependencyError):
        graph.dependencies_of(bit("y"))
    # the failed query leaves nothing marked as in progress
    assert graph.dependencies_of(bit("a")) == {bit("a")}


def _yosys_named_chain():
    module = Module("named")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    module.add_wire("$auto$opt.cc:12:run$3")
    add_gate(module, "n0", "$_NOT_", A=bit("a"), Y=bit("$auto$opt.cc:12:run$3"))
    add_gate(module, "n1", "$_NOT_", A=bit("$auto$opt.cc:12:run$3"), Y=bit("y"))
    return module


def test_visualize_keeps_colon_names_as_labels(monkeypatch, tmp_path):
    sources = []
    monkeypatch.setattr(graphviz.Digraph, "render",
                        lambda self, filename, **kwargs: sources.append(self.source))
    DependencyGraph(_yosys_named_chain()).visualize(str(tmp_path / "named"))

    source = sources[0]
    assert 'label="$auto$opt.cc:12:run$3[0]"' in source
    edges = [line.strip() for line in source.splitlines() if "->" in line]
    assert len(edges) == 2
    assert all(re.fullmatch(r"n\d+ -> n\d+", edge) for edge in edges)


def test_visualize_without_graphviz_binary_warns(monkeypatch, tmp_path):
    def missing_binary(self, filename, **kwargs):
        raise graphviz.ExecutableNotFound(["dot"])

    monkeypatch.setattr(graphviz.Digraph, "render", missing_binary)
    with pytest.warns(UserWarning, match="Could not generate visualization"):
        DependencyGraph(_yosys_named_chain()).visualize(str(tmp_path / "named"))
