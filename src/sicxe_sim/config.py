"""Runtime configuration for the simulator."""

from dataclasses import dataclass
from pathlib import Path
from typing import Union


@dataclass
class SimulatorConfig:
    """Settings shared by the front-ends and the simulator core.

    Attributes:
        base_address: Load address of the first control section
        device_dir: Directory holding the files that back devices
        max_steps: Step budget for a single run before it is aborted
    """
    base_address: int = 0x0
    device_dir: Union[str, Path] = "."
    max_steps: int = 100_000

    def __post_init__(self):
        if not 0 <= self.base_address <= 0xFFFF:
            raise ValueError(f"base_address out of range: {self.base_address:#x}")
        if self.max_steps <= 0:
            raise ValueError("max_steps must be positive")
        self.device_dir = Path(self.device_dir)
