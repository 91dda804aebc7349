"""SIC/XE Simulator: an instructional CPU with a linking loader.

This package emulates the SIC/XE architecture (24-bit words, 64KB of byte
addressable memory, format 2/3/4 instructions with immediate, indirect,
indexed, base-relative and PC-relative addressing) together with the
two-pass linking loader that places relocatable object programs in memory.

Architecture:
    OBJECT TEXT -> LOADER -> MEMORY -> FETCH -> DECODE -> REGISTRY -> STATE
                     |                            |           |
               [two passes,                 [addressing   [one handler
                Modify records]               modes]       per mnemonic]

Modules:
    state: MachineState resource model (memory, registers, sections)
    devices: File-backed device table
    loader: Two-pass object program loader
    decode: Opcode table and addressing-mode decode
    registry: Instruction handlers
    simulator: SicSimulator step controller
"""

__version__ = "0.1.0"
__author__ = "SIC/XE Simulator Project"

from .config import SimulatorConfig
from .errors import (
    DeviceNotOpenError,
    ObjectFormatError,
    SimulatorError,
    StepLimitExceeded,
    UnknownOpcodeError,
    UnknownRegisterError,
    UnresolvedSymbolError,
)
from .state import ControlSection, MachineState
from .loader import LoadResult, ObjectLoader
from .decode import DecodeResult, Mnemonic
from .registry import ExecutionResult, InstructionRegistry
from .simulator import SicSimulator

__all__ = [
    "SimulatorConfig",
    "SimulatorError",
    "DeviceNotOpenError",
    "ObjectFormatError",
    "StepLimitExceeded",
    "UnknownOpcodeError",
    "UnknownRegisterError",
    "UnresolvedSymbolError",
    "ControlSection",
    "MachineState",
    "LoadResult",
    "ObjectLoader",
    "DecodeResult",
    "Mnemonic",
    "ExecutionResult",
    "InstructionRegistry",
    "SicSimulator",
]
