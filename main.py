#!/usr/bin/env python3
"""SIC/XE Simulator Command Line Interface.

Load and run object programs on the SIC/XE simulator.

Usage:
    python main.py --program programs/copy_string.obj
    python main.py --program programs/linked_call.obj --steps 3 --trace
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from rich.logging import RichHandler

from sicxe_sim import SicSimulator, SimulatorConfig, SimulatorError


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def parse_dump(value: str) -> tuple:
    """Parse START:COUNT (hex start, decimal count)."""
    try:
        start, count = value.split(":")
        return int(start, 16), int(count)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected HEXSTART:COUNT, got {value!r}") from None


def format_memory(data: bytes, start: int, highlight: range = range(0)) -> str:
    lines = []
    for row in range(0, len(data), 16):
        cells = []
        for offset in range(row, min(row + 16, len(data))):
            cell = f"{data[offset]:02X}"
            cells.append(f"[{cell}]" if start + offset in highlight else f" {cell} ")
        lines.append(f"{(start + row) & 0xFFFF:04X}: {''.join(cells)}")
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(
        description="SIC/XE Simulator: linking loader and instruction-level emulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a program to completion
    python main.py --program programs/copy_string.obj

    # Execute only the first three instructions and show the trace
    python main.py --program programs/linked_call.obj --steps 3 --trace

    # Run with devices backed by files in /tmp/devices and dump memory
    python main.py --program programs/echo_device.obj --device-dir /tmp/devices --dump 0:32
        """
    )

    parser.add_argument(
        "--program", "-p",
        type=str,
        required=True,
        help="Path to object program file"
    )
    parser.add_argument(
        "--steps", "-s",
        type=int,
        help="Execute this many instructions instead of running to completion"
    )
    parser.add_argument(
        "--base",
        type=lambda v: int(v, 16),
        default=0,
        help="Load address of the first control section (hex). Default: 0"
    )
    parser.add_argument(
        "--device-dir",
        type=str,
        default=".",
        help="Directory holding device files. Default: current directory"
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=100_000,
        help="Maximum instructions per run (safety limit). Default: 100000"
    )
    parser.add_argument(
        "--dump",
        type=parse_dump,
        metavar="HEXSTART:COUNT",
        help="Print a memory range after execution"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final registers only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log loader and per-instruction detail"
    )

    args = parser.parse_args()
    configure_logging(args.verbose)

    program_path = Path(args.program)
    if not program_path.exists():
        print(f"Error: Program file not found: {args.program}")
        return 1

    try:
        config = SimulatorConfig(
            base_address=args.base,
            device_dir=args.device_dir,
            max_steps=args.max_steps,
        )
    except ValueError as e:
        parser.error(str(e))

    exit_code = 0
    with SicSimulator(config) as sim:
        try:
            result = sim.load_file(program_path)
        except SimulatorError as e:
            print(f"Load error: {e}")
            return 1

        if not args.quiet:
            print(f"Loading program: {args.program}")
            for section in result.sections:
                print(f"  {section}")
            print("-" * 60)
            print("Executing...")
            print("-" * 60)

        try:
            if args.steps is not None:
                for _ in range(args.steps):
                    if sim.step() is None:
                        break
            else:
                sim.run()
        except SimulatorError as e:
            print(f"Execution error: {e}")
            exit_code = 1

        if args.trace:
            print(sim.format_trace())
            print()

        if args.quiet:
            for reg, value in sim.registers().items():
                if value:
                    print(f"{reg}={value}")
        else:
            summary = sim.get_summary()
            print(f"Steps: {summary['steps']}")
            print(f"Running: {summary['running']}")
            print(f"Section: {summary['section']}")
            print(f"Entry point: {summary['entry_point']:06X}")
            print(f"Target address: {summary['target_address']:06X}")
            if summary["device"]:
                print(f"Device: {summary['device']}")
            regs = summary["registers"]
            print("Registers: " + " ".join(
                f"{reg}={value:06X}" if isinstance(value, int) else f"{reg}={value}"
                for reg, value in regs.items()
            ))

        if args.dump:
            start, count = args.dump
            highlight = range(0)
            if sim.last_result:
                highlight = range(sim.last_result.pc, sim.last_result.next_pc)
            print(format_memory(sim.memory(start, count), start, highlight))

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
