import pytest

from ioflow import Module, PortDirection, SigBit


def bit(wire, offset=0):
    return SigBit(wire, offset)


def add_gate(module, name, cell_type, **pins):
    module.add_cell(name, cell_type, {pin: (sig,) for pin, sig in pins.items()})


@pytest.fixture
def and_module():
    """y = a & b"""
    module = Module("and2")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("b", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    add_gate(module, "g0", "$_AND_", A=bit("a"), B=bit("b"), Y=bit("y"))
    return module


@pytest.fixture
def reconvergent_module():
    """x = a & b; y = a | x"""
    module = Module("reconvergent")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("b", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    module.add_wire("x")
    add_gate(module, "g_and", "$_AND_", A=bit("a"), B=bit("b"), Y=bit("x"))
    add_gate(module, "g_or", "$_OR_", A=bit("a"), B=bit("x"), Y=bit("y"))
    return module


@pytest.fixture
def chain_module():
    """x = ~a; y = ~x"""
    module = Module("chain")
    module.add_port("a", PortDirection.INPUT)
    module.add_port("y", PortDirection.OUTPUT)
    module.add_wire("x")
    add_gate(module, "n0", "$_NOT_", A=bit("a"), Y=bit("x"))
    add_gate(module, "n1", "$_NOT_", A=bit("x"), Y=bit("y"))
    return module


@pytest.fixture
def bus_module():
    """
    4-bit input d, 2-bit input s, 3-bit output q:
    q[0] = d[0] ^ d[1], q[1] = s[0] ? d[3] : d[2], q[2] = 1'b0
    """
    module = Module("bus")
    module.add_port("d", PortDirection.INPUT, 4)
    module.add_port("s", PortDirection.INPUT, 2)
    module.add_port("q", PortDirection.OUTPUT, 3)
    module.add_wire("t", 2)
    add_gate(module, "x0", "$_XOR_", A=bit("d", 0), B=bit("d", 1), Y=bit("t", 0))
    add_gate(module, "m0", "$_MUX_", A=bit("d", 2), B=bit("d", 3), S=bit("s", 0), Y=bit("t", 1))
    module.connect((bit("q", 0), bit("q", 1), bit("q", 2)),
                   (bit("t", 0), bit("t", 1), SigBit.const("0")))
    return module
