"""MachineState: the SIC/XE resource model.

This module owns every piece of mutable machine state that the loader and
the execution engine share:

State Components:
    - Memory: 64KB of byte cells, every address wrapped modulo 0x10000
    - Registers: A, X, L, B, S, T, PC, SW (24-bit integers) and F (float)
    - Control sections: name, load address and length of each linked module
    - Devices: file-backed I/O devices opened by the TD instruction

Words are 3 bytes, big-endian. Register-only instructions name registers by
their SIC/XE number, so registers can be addressed either by name or index.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .devices import DeviceManager
from .errors import UnknownRegisterError


MEMORY_SIZE = 0x10000
ADDRESS_MASK = MEMORY_SIZE - 1
WORD_SIZE = 3
WORD_MASK = 0xFFFFFF

# SIC/XE register numbers; 7 is unassigned
REGISTER_NUMBERS: Dict[str, int] = {
    "A": 0,
    "X": 1,
    "L": 2,
    "B": 3,
    "S": 4,
    "T": 5,
    "F": 6,
    "PC": 8,
    "SW": 9,
}
REGISTER_NAMES: Dict[int, str] = {num: name for name, num in REGISTER_NUMBERS.items()}

# Integer registers, in display order
INT_REGISTERS = ("A", "X", "L", "B", "S", "T", "PC", "SW")

RegisterRef = Union[str, int]


def word_to_bytes(value: int) -> bytes:
    """Encode the low 24 bits of value as 3 big-endian bytes."""
    value &= WORD_MASK
    return bytes(((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF))


def bytes_to_word(data: bytes) -> int:
    """Decode 3 big-endian bytes into an unsigned 24-bit integer.

    Raises:
        ValueError: If data is not exactly 3 bytes long
    """
    if len(data) != WORD_SIZE:
        raise ValueError(f"Only {WORD_SIZE} byte input supported, got {len(data)}")
    return (data[0] << 16) | (data[1] << 8) | data[2]


def _zero_registers() -> Dict[str, int]:
    return {name: 0 for name in INT_REGISTERS}


@dataclass(frozen=True)
class ControlSection:
    """A linked control section.

    Attributes:
        name: Program name from the Header record
        address: Absolute load address
        length: Declared length in bytes
    """
    name: str
    address: int
    length: int

    @property
    def end(self) -> int:
        return self.address + self.length

    def contains(self, address: int) -> bool:
        return self.address <= address < self.end

    def __str__(self) -> str:
        return f"{self.name} @ {self.address:06X} ({self.length:04X} bytes)"


@dataclass
class MachineState:
    """Mutable resource model shared by the loader and the execution engine.

    Attributes:
        memory: 64KB byte array
        registers: Integer registers by name
        register_f: Floating point register (storage only)
        sections: Control sections keyed by load address
        base_address: Load address of the first control section
        entry_point: Entry point reported by the last End record
        devices: Open device table
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    registers: Dict[str, int] = field(default_factory=_zero_registers)
    register_f: float = 0.0
    sections: Dict[int, ControlSection] = field(default_factory=dict)
    base_address: int = 0
    entry_point: int = 0
    devices: DeviceManager = field(default_factory=DeviceManager)

    def initialize(self) -> None:
        """Zero memory and registers and forget every control section.

        The configured base address is kept. Safe to call any number of times.
        """
        self.memory[:] = bytes(MEMORY_SIZE)
        self.registers = _zero_registers()
        self.register_f = 0.0
        self.sections = {}
        self.entry_point = 0

    # =========================================================================
    # Memory
    # =========================================================================

    def read_byte(self, address: int) -> int:
        return self.memory[address & ADDRESS_MASK]

    def write_byte(self, address: int, value: int) -> None:
        self.memory[address & ADDRESS_MASK] = value & 0xFF

    def read_bytes(self, address: int, count: int) -> bytes:
        """Read count consecutive bytes, wrapping at the end of memory."""
        return bytes(self.read_byte(address + i) for i in range(count))

    def write_bytes(self, address: int, data: bytes) -> None:
        """Write data to consecutive bytes, wrapping at the end of memory."""
        for i, value in enumerate(data):
            self.write_byte(address + i, value)

    def read_word(self, address: int) -> int:
        return bytes_to_word(self.read_bytes(address, WORD_SIZE))

    def write_word(self, address: int, value: int) -> None:
        self.write_bytes(address, word_to_bytes(value))

    # =========================================================================
    # Registers
    # =========================================================================

    def _register_name(self, reg: RegisterRef) -> str:
        if isinstance(reg, int):
            name = REGISTER_NAMES.get(reg)
        else:
            name = reg.upper()
            if name not in REGISTER_NUMBERS:
                name = None
        if name is None:
            raise UnknownRegisterError(reg)
        return name

    def get_register(self, reg: RegisterRef) -> Union[int, float]:
        """Get value of a register.

        Args:
            reg: Register name (case insensitive) or SIC/XE register number

        Returns:
            Register value (float for F)

        Raises:
            UnknownRegisterError: If the register doesn't exist
        """
        name = self._register_name(reg)
        if name == "F":
            return self.register_f
        return self.registers[name]

    def set_register(self, reg: RegisterRef, value: Union[int, float]) -> None:
        """Set value of a register.

        Raises:
            UnknownRegisterError: If the register doesn't exist
        """
        name = self._register_name(reg)
        if name == "F":
            self.register_f = float(value)
        else:
            self.registers[name] = int(value)

    @property
    def pc(self) -> int:
        return self.registers["PC"]

    @pc.setter
    def pc(self, value: int) -> None:
        self.registers["PC"] = value

    def dump_registers(self) -> Dict[str, Union[int, float]]:
        """Get a copy of all register values, F included."""
        regs: Dict[str, Union[int, float]] = dict(self.registers)
        regs["F"] = self.register_f
        return regs

    # =========================================================================
    # Devices
    # =========================================================================

    def test_device(self, name: str) -> None:
        """Open a device; SW is 1 when it is usable and 0 otherwise."""
        self.set_register("SW", 1 if self.devices.open(name) else 0)

    def read_device(self, name: str, count: int) -> Optional[bytes]:
        """Read count bytes from a device.

        Returns:
            The data, or None on a short read (A is then set to 0)

        Raises:
            DeviceNotOpenError: If the device was never tested
        """
        data = self.devices.read(name, count)
        if data is None:
            self.set_register("A", 0)
        return data

    def write_device(self, name: str, data: bytes, count: int) -> None:
        self.devices.write(name, data, count)

    def close_devices(self) -> None:
        self.devices.close()

    # =========================================================================
    # Control sections
    # =========================================================================

    def add_section(self, section: ControlSection) -> None:
        self.sections[section.address] = section

    def control_section_at(self, address: int) -> Optional[ControlSection]:
        """Find the section with the greatest load address <= address."""
        current = None
        for start in sorted(self.sections):
            if start > address:
                break
            current = self.sections[start]
        return current

    def section_list(self) -> List[ControlSection]:
        return [self.sections[start] for start in sorted(self.sections)]

    # =========================================================================
    # Introspection
    # =========================================================================

    def snapshot(self) -> dict:
        """Copy of the register file for tracing (memory excluded)."""
        return {
            "registers": self.dump_registers(),
            "pc": self.pc,
        }

    def validate(self) -> bool:
        """Check the structural invariants of the resource model."""
        if len(self.memory) != MEMORY_SIZE:
            return False
        if set(self.registers) != set(INT_REGISTERS):
            return False
        return all(isinstance(v, int) for v in self.registers.values())

    def __enter__(self) -> "MachineState":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close_devices()

    def __str__(self) -> str:
        regs = " ".join(f"{name}={self.registers[name]:06X}" for name in INT_REGISTERS)
        return f"{regs} F={self.register_f}"
