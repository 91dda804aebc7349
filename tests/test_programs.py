"""Integration tests for the bundled example programs."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from sicxe_sim import SicSimulator, SimulatorConfig


PROGRAMS_DIR = Path(__file__).parent.parent / "programs"


@pytest.fixture
def sim(tmp_path):
    with SicSimulator(SimulatorConfig(device_dir=tmp_path)) as sim:
        yield sim


class TestStoreFiveProgram:
    """Test store_five.obj - LDA #5, +STA 0x2000, RSUB."""

    def test_stores_five(self, sim):
        sim.load_file(PROGRAMS_DIR / "store_five.obj")
        sim.run()

        assert sim.read_word(0x2000) == 5
        assert sim.get_register("A") == 5
        assert sim.is_running() is False

    def test_returns_through_l(self, sim):
        """RSUB leaves PC at the value L held before the run."""
        sim.load_file(PROGRAMS_DIR / "store_five.obj")
        sim.run()
        assert sim.get_register("PC") == 0

    def test_returns_to_caller_address(self, sim):
        sim.load_file(PROGRAMS_DIR / "store_five.obj")
        sim.state.set_register("L", 0x0100)
        for _ in range(3):
            sim.step()

        assert sim.get_register("PC") == 0x0100
        assert sim.read_word(0x2000) == 5
        assert sim.trace == ["LDA", "STA", "RSUB"]


class TestCopyStringProgram:
    """Test copy_string.obj - copies "ABC" with LDCH/STCH and TIXR."""

    def test_copies_string(self, sim):
        sim.load_file(PROGRAMS_DIR / "copy_string.obj")
        sim.run()

        assert sim.memory(0x16, 3) == b"ABC"
        assert sim.get_register("X") == 3
        assert sim.get_register("A") == ord("C")
        assert sim.get_register("SW") == 0

    def test_trace(self, sim):
        sim.load_file(PROGRAMS_DIR / "copy_string.obj")
        trace = sim.run()

        assert trace[:2] == ["CLEAR", "LDT"]
        assert trace[2:14] == ["LDCH", "STCH", "TIXR", "JLT"] * 3
        assert trace[-1] == "RSUB"
        assert len(trace) == 15


class TestLinkedCallProgram:
    """Test linked_call.obj - MAIN calls SUB, stores its result in SUB."""

    def test_result_stored(self, sim):
        sim.load_file(PROGRAMS_DIR / "linked_call.obj")
        sim.run()

        assert sim.read_word(0x14) == 7
        assert sim.trace == ["JSUB", "LDA", "RSUB", "STA", "J"]

    def test_sections(self, sim):
        result = sim.load_file(PROGRAMS_DIR / "linked_call.obj")
        assert [(s.name, s.address, s.length) for s in result.sections] == [
            ("MAIN", 0x00, 0x0E),
            ("SUB", 0x0E, 0x09),
        ]

    def test_active_section_follows_pc(self, sim):
        sim.load_file(PROGRAMS_DIR / "linked_call.obj")
        assert sim.current_section.name == "MAIN"

        sim.step()  # +JSUB SUB
        sim.step()  # LDA #7 inside SUB
        assert sim.current_section.name == "SUB"

        sim.step()  # RSUB
        sim.step()  # +STA RESULT back in MAIN
        assert sim.current_section.name == "MAIN"
        assert sim.target_address == 0x14

    def test_relocated_base(self, tmp_path):
        config = SimulatorConfig(base_address=0x3000, device_dir=tmp_path)
        with SicSimulator(config) as sim:
            result = sim.load_file(PROGRAMS_DIR / "linked_call.obj")
            assert result.symbols["SUB"] == 0x300E
            for _ in range(4):
                sim.step()
            assert sim.read_word(0x3014) == 7


class TestEchoDeviceProgram:
    """Test echo_device.obj - copies one byte from device F1 to device 05."""

    def test_echo(self, sim, tmp_path):
        (tmp_path / "F1").write_bytes(b"Z")
        sim.load_file(PROGRAMS_DIR / "echo_device.obj")
        sim.run()

        assert sim.get_register("A") == ord("Z")
        assert (tmp_path / "05").read_bytes() == b"Z"
        assert sim.trace == ["TD", "RD", "TD", "WD", "RSUB"]

    def test_device_in_use(self, sim, tmp_path):
        (tmp_path / "F1").write_bytes(b"Z")
        sim.load_file(PROGRAMS_DIR / "echo_device.obj")

        sim.step()
        assert sim.device_in_use == "F1"
        sim.step()
        sim.step()
        assert sim.device_in_use == "05"
        sim.step()
        sim.step()
        assert sim.device_in_use is None

    def test_empty_input_device(self, sim, tmp_path):
        """An exhausted input device reads as 0 and execution continues."""
        sim.load_file(PROGRAMS_DIR / "echo_device.obj")
        sim.run()

        assert sim.get_register("A") == 0
        assert (tmp_path / "05").read_bytes() == b"\x00"
