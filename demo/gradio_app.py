"""SIC/XE Simulator Interactive Demo.

A Gradio web interface for loading object programs and stepping through
their execution on the SIC/XE simulator.

Usage:
    cd /path/to/sicxe-sim
    python demo/gradio_app.py

Features:
    - Paste an object program or load one of the bundled examples
    - Execute one instruction at a time or run to completion
    - Inspect registers, the active control section and memory
    - See the log of executed instructions
"""

import sys
import threading
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from sicxe_sim import SicSimulator, SimulatorConfig, SimulatorError


PROGRAMS_DIR = Path(__file__).parent.parent / "programs"
MEMORY_ROWS = 16


# =============================================================================
# Example Programs
# =============================================================================

def _read_example(name: str) -> str:
    path = PROGRAMS_DIR / name
    return path.read_text() if path.exists() else ""


EXAMPLE_PROGRAMS = {
    "Copy string": _read_example("copy_string.obj"),
    "Linked call": _read_example("linked_call.obj"),
    "Store five": _read_example("store_five.obj"),
    "Echo device": _read_example("echo_device.obj"),
    "Custom": "",
}


# =============================================================================
# Simulator session
# =============================================================================

# Gradio may run event handlers on several threads; the core is not
# reentrant, so every call into the simulator holds this lock.
_lock = threading.Lock()
_simulator = SicSimulator(SimulatorConfig(device_dir=Path.cwd()))
_status = "No program loaded"


def render_header() -> str:
    summary = _simulator.get_summary()
    section = _simulator.current_section
    lines = [
        "CONTROL SECTION",
        "=" * 40,
        f"Program:       {section.name if section else '-'}",
        f"Start address: {section.address:06X}" if section else "Start address: -",
        f"Length:        {section.length:04X}" if section else "Length:        -",
        f"Entry point:   {summary['entry_point']:06X}",
        "",
        f"Steps:          {summary['steps']}",
        f"Running:        {'Yes' if summary['running'] else 'No'}",
        f"Last:           {summary['last_instruction'] or '-'}",
        f"Target address: {summary['target_address']:X}",
        f"Device:         {summary['device'] or ''}",
        "",
        f"Status: {_status}",
    ]
    return "\n".join(lines)


def render_registers() -> str:
    lines = ["REGISTERS", "=" * 30]
    for reg, value in _simulator.registers().items():
        if reg == "F":
            lines.append(f"  {reg:<3} {value}")
        elif reg == "SW":
            lines.append(f"  {reg:<3} {value & 0xFFFFFF:06X}")
        else:
            lines.append(f"  {reg:<3} {value & 0xFFFFFF:06X} {value:>10}")
    return "\n".join(lines)


def render_memory() -> str:
    result = _simulator.last_result
    highlight = range(result.pc, result.next_pc) if result else range(0)
    start = (_simulator.state.pc & 0xFFF0) - 0x40
    start = max(start, 0)
    data = _simulator.memory(start, MEMORY_ROWS * 16)
    lines = []
    for row in range(MEMORY_ROWS):
        addr = start + row * 16
        cells = []
        for offset in range(16):
            cell = f"{data[row * 16 + offset]:02X}"
            cells.append(f"[{cell}]" if addr + offset in highlight else f" {cell} ")
        lines.append(f"{addr & 0xFFFF:04X}: {''.join(cells)}")
    return "\n".join(lines)


def render_log() -> str:
    return "\n".join(_simulator.trace)


def render() -> tuple:
    return render_header(), render_registers(), render_memory(), render_log()


# =============================================================================
# Event handlers
# =============================================================================

def load_program(program: str) -> tuple:
    """Reset the machine and load an object program."""
    global _status
    with _lock:
        if not program.strip():
            _status = "Error: No program provided"
            return render()
        try:
            result = _simulator.load(program)
            _status = f"Loaded {len(result.sections)} section(s)"
        except SimulatorError as e:
            _status = f"Load error: {e}"
        return render()


def step_program() -> tuple:
    """Execute one instruction."""
    global _status
    with _lock:
        try:
            if _simulator.step() is None:
                _status = "Program finished"
        except SimulatorError as e:
            _status = f"Execution error: {e}"
        return render()


def run_program(max_steps: int) -> tuple:
    """Execute until the program halts."""
    global _status
    with _lock:
        try:
            _simulator.run(max_steps=int(max_steps))
            _status = "Program finished"
        except SimulatorError as e:
            _status = f"Execution error: {e}"
        return render()


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="SIC/XE Simulator") as demo:
        gr.Markdown("""
        # SIC/XE Simulator

        Load a relocatable object program, then step through it one
        instruction at a time or run it to completion.

        **Pipeline**: `object text -> loader -> memory -> fetch -> decode -> execute`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Object Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Copy string",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Copy string"],
                    label="Object Code",
                    lines=12,
                    placeholder="H, D, R, T, M and E records..."
                )

                max_steps = gr.Slider(
                    minimum=100,
                    maximum=100000,
                    value=10000,
                    step=100,
                    label="Max Steps"
                )

                with gr.Row():
                    load_button = gr.Button("Load", variant="primary")
                    step_button = gr.Button("Step")
                    run_button = gr.Button("Run")

            with gr.Column(scale=3):
                with gr.Row():
                    header_output = gr.Textbox(label="Machine", lines=14, interactive=False)
                    registers_output = gr.Textbox(label="Registers", lines=14, interactive=False)

                memory_output = gr.Textbox(label="Memory", lines=MEMORY_ROWS, interactive=False)
                log_output = gr.Textbox(label="Instruction Log", lines=10, interactive=False)

        with gr.Accordion("Object Record Reference", open=False):
            gr.Markdown("""
            | Record | Columns |
            |--------|---------|
            | `H` | name, start (6 hex) + length (6 hex) |
            | `D` | repeated symbol (6) + offset (6 hex) |
            | `R` | referenced symbols (ignored) |
            | `T` | offset (6 hex), byte count (2 hex), bytes |
            | `M` | offset (6 hex), half-bytes (2 hex), `+`/`-`, symbol |
            | `E` | entry offset (6 hex, optional) |
            """)

        outputs = [header_output, registers_output, memory_output, log_output]

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )
        load_button.click(fn=load_program, inputs=[program_input], outputs=outputs)
        step_button.click(fn=step_program, inputs=[], outputs=outputs)
        run_button.click(fn=run_program, inputs=[max_steps], outputs=outputs)

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
