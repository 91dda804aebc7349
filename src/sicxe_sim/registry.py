"""InstructionRegistry: SIC/XE instruction semantics.

This module implements the execution engine as a registry of handlers, one
per Mnemonic. Each handler receives the machine state and the address the
instruction was fetched from, mutates registers/memory/devices, sets the
next PC and returns an ExecutionResult describing what it did.

Registry Keys (Mnemonic):
    LDA, LDB, LDT, LDCH: Load register from memory or immediate operand
    STA, STL, STX, STCH: Store register (or low byte of A) to memory
    COMP: Compare A with operand, set SW
    COMPR, TIXR: Register-only compares (TIXR increments X first)
    CLEAR: Zero a register
    J, JEQ, JLT: Jumps, conditional on SW
    JSUB, RSUB: Subroutine call and return through L
    TD, RD, WD: Device test, read and write

The registry is frozen after initialization. Freezing checks that every
Mnemonic has a handler, so a step can never reach an unhandled instruction.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .decode import (
    FORMAT2_LENGTH,
    DecodeResult,
    Mnemonic,
    decode_address,
    decode_registers,
    fetch,
    instruction_length,
    sign_extend,
)
from .state import MachineState

logger = logging.getLogger(__name__)

# Condition codes held in SW
CC_LESS = -1
CC_EQUAL = 0
CC_GREATER = 1


def compare(left: int, right: int) -> int:
    """Condition code for left compared with right."""
    if left == right:
        return CC_EQUAL
    return CC_LESS if left < right else CC_GREATER


@dataclass(frozen=True)
class ExecutionResult:
    """Observable facts about one executed instruction.

    Attributes:
        mnemonic: Instruction executed
        pc: Address the instruction was fetched from
        length: Instruction length in bytes
        address: Effective address (0 for register-only instructions and RSUB)
        device: Device name used by TD/RD/WD, else None
    """
    mnemonic: Mnemonic
    pc: int
    length: int
    address: int = 0
    device: Optional[str] = None

    @property
    def name(self) -> str:
        return self.mnemonic.name

    @property
    def next_pc(self) -> int:
        return self.pc + self.length


Handler = Callable[[MachineState, int], ExecutionResult]


class InstructionRegistry:
    """Frozen registry of instruction handlers.

    Attributes:
        _handlers: Dictionary mapping each Mnemonic to its handler
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all instruction handlers."""
        self._handlers: Dict[Mnemonic, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self.freeze()

    def _register_all_handlers(self) -> None:
        # Load / store
        self.register(Mnemonic.LDA, self._op_lda)
        self.register(Mnemonic.LDB, self._op_ldb)
        self.register(Mnemonic.LDT, self._op_ldt)
        self.register(Mnemonic.LDCH, self._op_ldch)
        self.register(Mnemonic.STA, self._op_sta)
        self.register(Mnemonic.STL, self._op_stl)
        self.register(Mnemonic.STX, self._op_stx)
        self.register(Mnemonic.STCH, self._op_stch)

        # Comparison and register-only
        self.register(Mnemonic.COMP, self._op_comp)
        self.register(Mnemonic.COMPR, self._op_compr)
        self.register(Mnemonic.TIXR, self._op_tixr)
        self.register(Mnemonic.CLEAR, self._op_clear)

        # Control flow
        self.register(Mnemonic.J, self._op_j)
        self.register(Mnemonic.JEQ, self._op_jeq)
        self.register(Mnemonic.JLT, self._op_jlt)
        self.register(Mnemonic.JSUB, self._op_jsub)
        self.register(Mnemonic.RSUB, self._op_rsub)

        # Devices
        self.register(Mnemonic.TD, self._op_td)
        self.register(Mnemonic.RD, self._op_rd)
        self.register(Mnemonic.WD, self._op_wd)

    def register(self, mnemonic: Mnemonic, handler: Handler) -> None:
        """Register the handler for an instruction.

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If the mnemonic already has a handler
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if mnemonic in self._handlers:
            raise ValueError(f"Handler already registered: {mnemonic.name}")
        self._handlers[mnemonic] = handler

    def freeze(self) -> None:
        """Freeze the registry.

        Raises:
            RuntimeError: If any Mnemonic is left without a handler
        """
        missing = [m.name for m in Mnemonic if m not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler for: {', '.join(missing)}")
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_mnemonics(self) -> set:
        return set(self._handlers)

    def execute(self, state: MachineState) -> ExecutionResult:
        """Fetch, decode and execute the instruction at PC.

        Raises:
            UnknownOpcodeError: If the byte at PC is not a known opcode
        """
        pc = state.pc
        mnemonic = fetch(state, pc)
        result = self._handlers[mnemonic](state, pc)
        logger.debug(
            "%06X %-5s ea=%06X len=%d -> PC=%06X",
            pc, mnemonic.name, result.address, result.length, state.pc,
        )
        return result

    # =========================================================================
    # Shared operand helpers
    # =========================================================================

    def _operand_word(self, state: MachineState, operand: DecodeResult) -> int:
        return operand.address if operand.immediate else state.read_word(operand.address)

    def _load(self, state: MachineState, pc: int, mnemonic: Mnemonic, reg: str) -> ExecutionResult:
        operand = decode_address(state, pc)
        state.set_register(reg, self._operand_word(state, operand))
        state.pc = pc + operand.length
        return ExecutionResult(mnemonic, pc, operand.length, operand.address)

    def _store(self, state: MachineState, pc: int, mnemonic: Mnemonic, reg: str) -> ExecutionResult:
        operand = decode_address(state, pc)
        state.write_word(operand.address, state.get_register(reg))
        state.pc = pc + operand.length
        return ExecutionResult(mnemonic, pc, operand.length, operand.address)

    def _jump_if(self, state: MachineState, pc: int, mnemonic: Mnemonic, taken: bool) -> ExecutionResult:
        operand = decode_address(state, pc)
        state.pc = operand.address if taken else pc + operand.length
        return ExecutionResult(mnemonic, pc, operand.length, operand.address)

    def _device_name(self, state: MachineState, operand: DecodeResult) -> str:
        # The operand always addresses the device id byte, immediate or not
        return f"{state.read_byte(operand.address):02X}"

    # =========================================================================
    # Load / store
    # =========================================================================

    def _op_lda(self, state: MachineState, pc: int) -> ExecutionResult:
        """LDA m - A <- (m..m+2)."""
        return self._load(state, pc, Mnemonic.LDA, "A")

    def _op_ldb(self, state: MachineState, pc: int) -> ExecutionResult:
        """LDB m - B <- (m..m+2)."""
        return self._load(state, pc, Mnemonic.LDB, "B")

    def _op_ldt(self, state: MachineState, pc: int) -> ExecutionResult:
        """LDT m - T <- (m..m+2)."""
        return self._load(state, pc, Mnemonic.LDT, "T")

    def _op_ldch(self, state: MachineState, pc: int) -> ExecutionResult:
        """LDCH m - A <- (m), a single unsigned byte."""
        operand = decode_address(state, pc)
        if operand.immediate:
            value = operand.address & 0xFF
        else:
            value = state.read_byte(operand.address)
        state.set_register("A", value)
        state.pc = pc + operand.length
        return ExecutionResult(Mnemonic.LDCH, pc, operand.length, operand.address)

    def _op_sta(self, state: MachineState, pc: int) -> ExecutionResult:
        """STA m - m..m+2 <- (A)."""
        return self._store(state, pc, Mnemonic.STA, "A")

    def _op_stl(self, state: MachineState, pc: int) -> ExecutionResult:
        """STL m - m..m+2 <- (L)."""
        return self._store(state, pc, Mnemonic.STL, "L")

    def _op_stx(self, state: MachineState, pc: int) -> ExecutionResult:
        """STX m - m..m+2 <- (X)."""
        return self._store(state, pc, Mnemonic.STX, "X")

    def _op_stch(self, state: MachineState, pc: int) -> ExecutionResult:
        """STCH m - m <- low byte of A."""
        operand = decode_address(state, pc)
        state.write_byte(operand.address, state.get_register("A") & 0xFF)
        state.pc = pc + operand.length
        return ExecutionResult(Mnemonic.STCH, pc, operand.length, operand.address)

    # =========================================================================
    # Comparison and register-only
    # =========================================================================

    def _op_comp(self, state: MachineState, pc: int) -> ExecutionResult:
        """COMP m - SW <- (A) : (m..m+2)."""
        operand = decode_address(state, pc)
        value = self._operand_word(state, operand)
        state.set_register("SW", compare(state.get_register("A"), value))
        state.pc = pc + operand.length
        return ExecutionResult(Mnemonic.COMP, pc, operand.length, operand.address)

    def _op_compr(self, state: MachineState, pc: int) -> ExecutionResult:
        """COMPR r1, r2 - SW <- (r1) : (r2)."""
        r1, r2 = decode_registers(state, pc)
        state.set_register("SW", compare(state.get_register(r1), state.get_register(r2)))
        state.pc = pc + FORMAT2_LENGTH
        return ExecutionResult(Mnemonic.COMPR, pc, FORMAT2_LENGTH)

    def _op_tixr(self, state: MachineState, pc: int) -> ExecutionResult:
        """TIXR r - X <- (X) + 1; SW <- (X) : (r)."""
        r1, _ = decode_registers(state, pc)
        x = state.get_register("X") + 1
        state.set_register("X", x)
        state.set_register("SW", compare(x, state.get_register(r1)))
        state.pc = pc + FORMAT2_LENGTH
        return ExecutionResult(Mnemonic.TIXR, pc, FORMAT2_LENGTH)

    def _op_clear(self, state: MachineState, pc: int) -> ExecutionResult:
        """CLEAR r - r <- 0."""
        r1, _ = decode_registers(state, pc)
        state.set_register(r1, 0)
        state.pc = pc + FORMAT2_LENGTH
        return ExecutionResult(Mnemonic.CLEAR, pc, FORMAT2_LENGTH)

    # =========================================================================
    # Control flow
    # =========================================================================

    def _op_j(self, state: MachineState, pc: int) -> ExecutionResult:
        """J m - PC <- m."""
        return self._jump_if(state, pc, Mnemonic.J, True)

    def _op_jeq(self, state: MachineState, pc: int) -> ExecutionResult:
        """JEQ m - PC <- m if SW is equal."""
        return self._jump_if(state, pc, Mnemonic.JEQ, state.get_register("SW") == CC_EQUAL)

    def _op_jlt(self, state: MachineState, pc: int) -> ExecutionResult:
        """JLT m - PC <- m if SW is less."""
        return self._jump_if(state, pc, Mnemonic.JLT, state.get_register("SW") < CC_EQUAL)

    def _op_jsub(self, state: MachineState, pc: int) -> ExecutionResult:
        """JSUB m - L <- next PC; PC <- m."""
        operand = decode_address(state, pc)
        state.set_register("L", pc + operand.length)
        state.pc = operand.address
        return ExecutionResult(Mnemonic.JSUB, pc, operand.length, operand.address)

    def _op_rsub(self, state: MachineState, pc: int) -> ExecutionResult:
        """RSUB - PC <- (L). The operand field is not used."""
        length = instruction_length(state, pc)
        state.pc = state.get_register("L")
        return ExecutionResult(Mnemonic.RSUB, pc, length)

    # =========================================================================
    # Devices
    # =========================================================================

    def _op_td(self, state: MachineState, pc: int) -> ExecutionResult:
        """TD m - test device named by byte m; SW <- 1 if ready, else 0."""
        operand = decode_address(state, pc)
        device = self._device_name(state, operand)
        state.test_device(device)
        state.pc = pc + operand.length
        return ExecutionResult(Mnemonic.TD, pc, operand.length, operand.address, device)

    def _op_rd(self, state: MachineState, pc: int) -> ExecutionResult:
        """RD m - A <- one byte read from device m (0 when exhausted)."""
        operand = decode_address(state, pc)
        device = self._device_name(state, operand)
        data = state.read_device(device, 1)
        if data is not None:
            state.set_register("A", sign_extend(data[0], 8))
        state.pc = pc + operand.length
        return ExecutionResult(Mnemonic.RD, pc, operand.length, operand.address, device)

    def _op_wd(self, state: MachineState, pc: int) -> ExecutionResult:
        """WD m - write low byte of A to device m."""
        operand = decode_address(state, pc)
        device = self._device_name(state, operand)
        state.write_device(device, bytes([state.get_register("A") & 0xFF]), 1)
        state.pc = pc + operand.length
        return ExecutionResult(Mnemonic.WD, pc, operand.length, operand.address, device)


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry instance.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
