class NetlistError(ValueError):
    """Base class for all netlist and analysis errors."""


class NetlistParseError(NetlistError):
    """Raised when a netlist file cannot be turned into a Design."""


class StructuralInconsistencyError(NetlistError):
    """The netlist of a module violates an invariant the analysis relies on."""

    def __init__(self, module_name: str, message: str):
        super().__init__(f"{module_name}: {message}")
        self.module_name = module_name


class WidthMismatchError(StructuralInconsistencyError):
    def __init__(self, module_name: str, dest_width: int, src_width: int):
        super().__init__(
            module_name,
            f"connection width mismatch: destination has {dest_width} bits, source has {src_width}"
        )
        self.dest_width = dest_width
        self.src_width = src_width


class MultiBitPinError(StructuralInconsistencyError):
    def __init__(self, module_name: str, cell_name: str, pin: str, width: int):
        super().__init__(
            module_name,
            f"pin {pin} of cell {cell_name} must connect exactly one bit, got {width}"
        )
        self.cell_name = cell_name
        self.pin = pin
        self.width = width


class UnsupportedCellError(StructuralInconsistencyError):
    def __init__(self, module_name: str, cell_name: str, cell_type: str, reason: str = "unsupported cell type"):
        super().__init__(module_name, f"{reason} {cell_type} (cell {cell_name})")
        self.cell_name = cell_name
        self.cell_type = cell_type


class CyclicDependencyError(StructuralInconsistencyError):
    def __init__(self, module_name: str, bit):
        super().__init__(module_name, f"combinational loop through {bit}")
        self.bit = bit
