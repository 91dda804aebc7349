"""Instruction decode for SIC/XE.

Fetch reads the byte at PC; its high 6 bits select the opcode and its low
2 bits are the n/i addressing flags.

Format 3/4 layout:

    byte 1: oooooo n i
    byte 2: x b p e dddd
    byte 3: dddddddd
    byte 4: dddddddd        (format 4 only, e=1)

Addressing modes:
    n=0 i=1   immediate: the displacement is the operand value
    n=1 i=0   indirect: the computed address holds the target address
    otherwise simple: the computed address is the target address

The computed address is B + disp (b=1), next PC + disp (p=1) or disp, plus
X when x=1 (except in indirect mode). Only the 12-bit displacement of a
base/PC-relative instruction is sign extended.

Register-only instructions (format 2) carry two register numbers in the
high and low nibble of byte 2.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from .errors import UnknownOpcodeError
from .state import ADDRESS_MASK, MachineState


class Mnemonic(Enum):
    """Supported instructions, valued by opcode."""
    LDA = 0x00
    STA = 0x0C
    STX = 0x10
    STL = 0x14
    COMP = 0x28
    JEQ = 0x30
    JLT = 0x38
    J = 0x3C
    JSUB = 0x48
    RSUB = 0x4C
    LDCH = 0x50
    STCH = 0x54
    LDB = 0x68
    LDT = 0x74
    COMPR = 0xA0
    CLEAR = 0xB4
    TIXR = 0xB8
    RD = 0xD8
    WD = 0xDC
    TD = 0xE0

    @property
    def opcode(self) -> int:
        return self.value

    @property
    def uses_device(self) -> bool:
        return self in DEVICE_INSTRUCTIONS

    @property
    def register_only(self) -> bool:
        return self in REGISTER_INSTRUCTIONS


DEVICE_INSTRUCTIONS = frozenset({Mnemonic.TD, Mnemonic.RD, Mnemonic.WD})
REGISTER_INSTRUCTIONS = frozenset({Mnemonic.CLEAR, Mnemonic.COMPR, Mnemonic.TIXR})

OPCODE_TABLE: Dict[int, Mnemonic] = {m.opcode: m for m in Mnemonic}

OPCODE_MASK = 0xFC
FORMAT2_LENGTH = 2


@dataclass(frozen=True)
class DecodeResult:
    """Operand of a format 3/4 instruction.

    Attributes:
        address: Effective address, or the operand value when immediate
        immediate: Whether address is an immediate value
        length: Instruction length in bytes (3 or 4)
    """
    address: int
    immediate: bool
    length: int


def sign_extend(value: int, bits: int) -> int:
    """Interpret the low `bits` bits of value as a two's complement number."""
    sign = 1 << (bits - 1)
    value &= (1 << bits) - 1
    return value - (1 << bits) if value & sign else value


def fetch(state: MachineState, pc: int) -> Mnemonic:
    """Look up the instruction whose first byte is at pc.

    Raises:
        UnknownOpcodeError: If the opcode has no table entry
    """
    opcode = state.read_byte(pc) & OPCODE_MASK
    mnemonic = OPCODE_TABLE.get(opcode)
    if mnemonic is None:
        raise UnknownOpcodeError(opcode, pc)
    return mnemonic


def instruction_length(state: MachineState, pc: int) -> int:
    """Length of the format 3/4 instruction at pc, from its e bit."""
    return 4 if state.read_byte(pc + 1) & 0x10 else 3


def decode_address(state: MachineState, pc: int) -> DecodeResult:
    """Resolve the operand of the format 3/4 instruction at pc.

    Args:
        state: Machine state (B and X are read, memory for indirection)
        pc: Address the instruction was fetched from

    Returns:
        DecodeResult with the effective address or immediate value
    """
    byte1 = state.read_byte(pc)
    byte2 = state.read_byte(pc + 1)
    byte3 = state.read_byte(pc + 2)

    n = bool(byte1 & 0x02)
    i = bool(byte1 & 0x01)
    x = bool(byte2 & 0x80)
    b = bool(byte2 & 0x40)
    p = bool(byte2 & 0x20)
    e = bool(byte2 & 0x10)

    disp = ((byte2 & 0x0F) << 8) | byte3
    length = 4 if e else 3
    if e:
        disp = (disp << 8) | state.read_byte(pc + 3)

    if not n and i:
        return DecodeResult(disp, True, length)

    if not e and (b or p):
        disp = sign_extend(disp, 12)

    if b:
        target = state.get_register("B") + disp
    elif p:
        target = pc + length + disp
    else:
        target = disp

    indirect = n and not i
    if x and not indirect:
        target += state.get_register("X")

    target &= ADDRESS_MASK
    if indirect:
        target = state.read_word(target) & ADDRESS_MASK

    return DecodeResult(target, False, length)


def decode_registers(state: MachineState, pc: int) -> Tuple[int, int]:
    """Register numbers (r1, r2) of the format 2 instruction at pc."""
    byte2 = state.read_byte(pc + 1)
    return (byte2 >> 4) & 0x0F, byte2 & 0x0F
