"""SicSimulator: step controller for the SIC/XE machine.

This module ties the pieces together:
    OBJECT TEXT -> LOADER -> MEMORY -> FETCH -> DECODE -> REGISTRY -> STATE

A simulator owns one MachineState and hands it to both the loader and the
instruction registry. After a load the machine is runnable; each step runs
one instruction and records its mnemonic. The machine stops being runnable
when PC returns to 0 or leaves memory.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from .config import SimulatorConfig
from .devices import DeviceManager
from .errors import SimulatorError, StepLimitExceeded
from .loader import LoadResult, ObjectLoader
from .registry import ExecutionResult, InstructionRegistry, get_registry
from .state import MEMORY_SIZE, ControlSection, MachineState

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution history.

    Attributes:
        step: Step number (0-indexed)
        section: Name of the control section that owned PC
        result: Facts reported by the execution engine
        pre_state: Register snapshot before execution
        post_state: Register snapshot after execution
    """
    step: int
    section: str
    result: ExecutionResult
    pre_state: dict
    post_state: dict


class SicSimulator:
    """SIC/XE machine with a linking loader.

    Attributes:
        config: Simulator settings
        state: Resource model shared by loader and registry
        loader: Object program loader
        registry: Frozen instruction registry
        trace: Mnemonics of executed instructions, in order
        history: Detailed trace entries, one per executed instruction
        running: Whether the machine will execute on the next step
        last_result: Facts about the most recently executed instruction
        current_section: Control section owning PC at the last step
        load_result: Outcome of the last load
    """

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config or SimulatorConfig()
        self.state = MachineState(
            base_address=self.config.base_address,
            devices=DeviceManager(self.config.device_dir),
        )
        self.loader = ObjectLoader(self.state)
        self.registry: InstructionRegistry = get_registry()
        self.trace: List[str] = []
        self.history: List[ExecutionTraceEntry] = []
        self.running = False
        self.last_result: Optional[ExecutionResult] = None
        self.current_section: Optional[ControlSection] = None
        self.load_result: Optional[LoadResult] = None

    def __enter__(self) -> "SicSimulator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # =========================================================================
    # Load / step / run
    # =========================================================================

    def load(self, source: str) -> LoadResult:
        """Reset the machine and load an object program.

        Args:
            source: Object program text

        Returns:
            LoadResult from the loader
        """
        self.running = False
        self.state.close_devices()
        self.state.initialize()
        self.trace = []
        self.history = []
        self.last_result = None

        self.load_result = self.loader.load(source)

        self.state.pc = self.state.base_address
        self.current_section = self.state.control_section_at(self.state.pc)
        self.running = True
        return self.load_result

    def load_file(self, path: Union[str, Path]) -> LoadResult:
        """Reset the machine and load an object program from a file."""
        path = Path(path)
        logger.info("Loading object program %s", path)
        return self.load(path.read_text())

    def step(self) -> Optional[ExecutionResult]:
        """Execute a single instruction.

        Once the machine is no longer runnable this releases every open
        device and returns None.

        Returns:
            ExecutionResult of the executed instruction, or None

        Raises:
            SimulatorError: On a fatal execution error; the machine halts
        """
        if not self.running:
            self.state.close_devices()
            return None

        pc = self.state.pc
        self.current_section = self.state.control_section_at(pc)
        pre_state = self.state.snapshot()

        try:
            result = self.registry.execute(self.state)
        except SimulatorError:
            self.running = False
            self.last_result = None
            logger.error("Execution halted at %06X", pc, exc_info=True)
            raise

        self.last_result = result
        self.trace.append(result.name)
        self.history.append(ExecutionTraceEntry(
            step=len(self.history),
            section=self.current_section.name if self.current_section else "",
            result=result,
            pre_state=pre_state,
            post_state=self.state.snapshot(),
        ))

        if not 0 < self.state.pc < MEMORY_SIZE:
            logger.info("Program finished: PC=%06X after %d steps", self.state.pc, len(self.trace))
            self.running = False
        return result

    def run(self, max_steps: Optional[int] = None) -> List[str]:
        """Step until the machine halts.

        Args:
            max_steps: Override the configured step budget for this run

        Returns:
            The mnemonic trace

        Raises:
            StepLimitExceeded: If the program is still running after the budget
        """
        limit = max_steps if max_steps is not None else self.config.max_steps
        steps = 0
        while self.running:
            if steps >= limit:
                raise StepLimitExceeded(limit)
            self.step()
            steps += 1
        return self.trace

    def close(self) -> None:
        """Stop the machine and release its devices."""
        self.running = False
        self.state.close_devices()

    # =========================================================================
    # Observers
    # =========================================================================

    def is_running(self) -> bool:
        return self.running

    def get_register(self, reg: Union[str, int]) -> Union[int, float]:
        return self.state.get_register(reg)

    def registers(self) -> Dict[str, Union[int, float]]:
        return self.state.dump_registers()

    def memory(self, start: int, count: int) -> bytes:
        return self.state.read_bytes(start, count)

    def read_word(self, address: int) -> int:
        return self.state.read_word(address)

    @property
    def entry_point(self) -> int:
        return self.state.entry_point

    @property
    def target_address(self) -> int:
        return self.last_result.address if self.last_result else 0

    @property
    def device_in_use(self) -> Optional[str]:
        return self.last_result.device if self.last_result else None

    @property
    def step_count(self) -> int:
        return len(self.trace)

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        section = self.current_section
        return {
            "steps": self.step_count,
            "running": self.running,
            "registers": self.registers(),
            "pc": self.state.pc,
            "section": section.name if section else None,
            "sections": [str(s) for s in self.state.section_list()],
            "entry_point": self.entry_point,
            "target_address": self.target_address,
            "device": self.device_in_use,
            "last_instruction": self.last_result.name if self.last_result else "",
        }

    def format_trace(self, limit: Optional[int] = None) -> str:
        """Render the execution history, one block per instruction."""
        entries = self.history if limit is None else self.history[:limit]
        lines = []
        for entry in entries:
            result = entry.result
            lines.append(
                f"[{entry.step}] {entry.section:<6} {result.pc:06X} {result.name:<5} "
                f"ea={result.address:06X}"
                + (f" dev={result.device}" if result.device else "")
            )
            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"{reg}: {pre_regs[reg]:X} -> {post_regs[reg]:X}"
                for reg in pre_regs
                if reg not in ("PC", "F") and pre_regs[reg] != post_regs[reg]
            ]
            if changes:
                lines.append(f"      {', '.join(changes)}")
        if limit is not None and len(self.history) > limit:
            lines.append(f"... ({len(self.history) - limit} more entries)")
        return "\n".join(lines)
