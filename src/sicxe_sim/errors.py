"""Exception taxonomy for the SIC/XE simulator.

Every fatal condition derives from SimulatorError and from the built-in
exception that matches its concern, so callers may catch either.

Recoverable conditions (a device that cannot be opened, a short device
read) are reported through register values and are not exceptions.
"""


class SimulatorError(Exception):
    """Base class for all fatal simulator errors."""


class UnknownOpcodeError(SimulatorError, RuntimeError):
    """Raised when the fetched byte has no opcode table entry."""

    def __init__(self, opcode: int, pc: int):
        self.opcode = opcode
        self.pc = pc
        super().__init__(f"Unknown opcode: {opcode:02X} at {pc:06X}")


class UnknownRegisterError(SimulatorError, KeyError):
    """Raised for a register name or index outside the register file."""

    def __init__(self, register):
        self.register = register
        super().__init__(f"Invalid register: {register}")

    def __str__(self) -> str:
        return self.args[0]


class UnresolvedSymbolError(SimulatorError, LookupError):
    """Raised when a Modify record names a symbol no section defines."""

    def __init__(self, symbol: str, line_number: int):
        self.symbol = symbol
        self.line_number = line_number
        super().__init__(f"line {line_number}: symbol {symbol!r} not found")


class ObjectFormatError(SimulatorError, ValueError):
    """Raised for a malformed record in an object program."""

    def __init__(self, message: str, line_number: int = 0):
        self.line_number = line_number
        if line_number:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class DeviceNotOpenError(SimulatorError, RuntimeError):
    """Raised when reading or writing a device that was never tested."""

    def __init__(self, device: str):
        self.device = device
        super().__init__(f"Device {device} is not open")


class StepLimitExceeded(SimulatorError, RuntimeError):
    """Raised when a run does not halt within its step budget."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Max steps ({limit}) exceeded")
