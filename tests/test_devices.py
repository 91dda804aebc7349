"""Tests for file-backed devices."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from sicxe_sim.devices import DeviceManager
from sicxe_sim.errors import DeviceNotOpenError
from sicxe_sim.state import MachineState


@pytest.fixture
def state(tmp_path):
    state = MachineState(devices=DeviceManager(tmp_path))
    yield state
    state.close_devices()


class TestDeviceTest:
    """Test opening devices with test_device."""

    def test_creates_backing_file(self, state, tmp_path):
        state.test_device("F1")
        assert (tmp_path / "F1").exists()
        assert state.get_register("SW") == 1
        assert "F1" in state.devices

    def test_reopening_is_noop(self, state):
        state.test_device("F1")
        state.test_device("F1")
        assert state.devices.open_devices == ["F1"]
        assert state.get_register("SW") == 1

    def test_open_failure_sets_sw_zero(self, tmp_path):
        """A device whose file cannot be created is reported, not raised."""
        state = MachineState(devices=DeviceManager(tmp_path / "missing" / "dir"))
        state.set_register("SW", 1)
        state.test_device("F1")
        assert state.get_register("SW") == 0
        assert "F1" not in state.devices


class TestDeviceRead:
    """Test reading through the device cursor."""

    def test_sequential_single_byte_reads(self, state, tmp_path):
        (tmp_path / "F1").write_bytes(b"XYZ")
        state.test_device("F1")

        assert state.read_device("F1", 1) == b"X"
        assert state.read_device("F1", 1) == b"Y"
        assert state.read_device("F1", 1) == b"Z"

    def test_exhausted_device_returns_none(self, state, tmp_path):
        (tmp_path / "F1").write_bytes(b"X")
        state.test_device("F1")
        state.set_register("A", 0x41)

        assert state.read_device("F1", 1) == b"X"
        assert state.read_device("F1", 1) is None
        assert state.get_register("A") == 0

    def test_short_read_zeroes_a(self, state, tmp_path):
        """Asking for 4 bytes when only 2 remain is not an error."""
        (tmp_path / "F1").write_bytes(b"AB")
        state.test_device("F1")
        state.set_register("A", 0x123456)

        assert state.read_device("F1", 4) is None
        assert state.get_register("A") == 0

    def test_read_unopened_device(self, state):
        with pytest.raises(DeviceNotOpenError):
            state.read_device("F1", 1)


class TestDeviceWrite:
    """Test appending to devices."""

    def test_write_appends_and_flushes(self, state, tmp_path):
        (tmp_path / "05").write_bytes(b"old")
        state.test_device("05")
        state.write_device("05", b"AB", 2)
        state.write_device("05", b"CDE", 1)

        # Visible without closing the device
        assert (tmp_path / "05").read_bytes() == b"oldABC"

    def test_write_unopened_device(self, state):
        with pytest.raises(DeviceNotOpenError):
            state.write_device("05", b"A", 1)

    def test_written_data_is_readable(self, state):
        state.test_device("F2")
        state.write_device("F2", b"Q", 1)
        assert state.read_device("F2", 1) == b"Q"


class TestDeviceClose:
    """Test releasing devices."""

    def test_close_releases_all(self, state):
        state.test_device("F1")
        state.test_device("05")
        state.close_devices()

        assert state.devices.open_devices == []
        with pytest.raises(DeviceNotOpenError):
            state.read_device("F1", 1)

    def test_close_without_devices(self, state):
        state.close_devices()
        state.close_devices()

    def test_reopen_after_close_restarts_cursor(self, state, tmp_path):
        (tmp_path / "F1").write_bytes(b"XY")
        state.test_device("F1")
        assert state.read_device("F1", 1) == b"X"
        state.close_devices()

        state.test_device("F1")
        assert state.read_device("F1", 1) == b"X"

    def test_context_manager_closes(self, tmp_path):
        with DeviceManager(tmp_path) as devices:
            devices.open("F1")
            assert "F1" in devices
        assert devices.open_devices == []
