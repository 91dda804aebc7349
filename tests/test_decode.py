"""Tests for opcode lookup and addressing-mode decode."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from sicxe_sim.decode import (
    OPCODE_TABLE,
    DecodeResult,
    Mnemonic,
    decode_address,
    decode_registers,
    fetch,
    instruction_length,
    sign_extend,
)
from sicxe_sim.errors import UnknownOpcodeError
from sicxe_sim.state import MachineState


def place(state: MachineState, address: int, hex_bytes: str) -> None:
    state.write_bytes(address, bytes.fromhex(hex_bytes))


@pytest.fixture
def state():
    return MachineState()


class TestOpcodeTable:
    """Test the opcode table."""

    def test_twenty_instructions(self):
        assert len(OPCODE_TABLE) == 20
        assert len(Mnemonic) == 20

    @pytest.mark.parametrize("opcode,mnemonic", [
        (0x00, Mnemonic.LDA), (0x0C, Mnemonic.STA), (0x10, Mnemonic.STX),
        (0x14, Mnemonic.STL), (0x28, Mnemonic.COMP), (0x30, Mnemonic.JEQ),
        (0x38, Mnemonic.JLT), (0x3C, Mnemonic.J), (0x48, Mnemonic.JSUB),
        (0x4C, Mnemonic.RSUB), (0x50, Mnemonic.LDCH), (0x54, Mnemonic.STCH),
        (0x68, Mnemonic.LDB), (0x74, Mnemonic.LDT), (0xA0, Mnemonic.COMPR),
        (0xB4, Mnemonic.CLEAR), (0xB8, Mnemonic.TIXR), (0xD8, Mnemonic.RD),
        (0xDC, Mnemonic.WD), (0xE0, Mnemonic.TD),
    ])
    def test_opcode_values(self, opcode, mnemonic):
        assert OPCODE_TABLE[opcode] is mnemonic
        assert mnemonic.opcode == opcode

    def test_instruction_classes(self):
        assert Mnemonic.RD.uses_device
        assert not Mnemonic.LDA.uses_device
        assert Mnemonic.TIXR.register_only
        assert not Mnemonic.J.register_only


class TestFetch:
    """Test opcode fetch."""

    @pytest.mark.parametrize("first_byte", ["00", "01", "02", "03"])
    def test_low_bits_ignored(self, state, first_byte):
        place(state, 0x100, first_byte)
        assert fetch(state, 0x100) is Mnemonic.LDA

    def test_unknown_opcode(self, state):
        place(state, 0x40, "FC")
        with pytest.raises(UnknownOpcodeError) as exc_info:
            fetch(state, 0x40)
        assert exc_info.value.opcode == 0xFC
        assert exc_info.value.pc == 0x40
        assert "FC" in str(exc_info.value)

    def test_unknown_opcode_is_runtime_error(self, state):
        place(state, 0, "04")
        with pytest.raises(RuntimeError):
            fetch(state, 0)


class TestSignExtend:
    """Test two's complement sign extension."""

    @pytest.mark.parametrize("value,bits,expected", [
        (0x7FF, 12, 2047),
        (0x800, 12, -2048),
        (0xFFF, 12, -1),
        (0x005, 12, 5),
        (0x7F, 8, 127),
        (0x80, 8, -128),
        (0xFF, 8, -1),
    ])
    def test_sign_extend(self, value, bits, expected):
        assert sign_extend(value, bits) == expected


class TestImmediate:
    """n=0 i=1: the displacement is the operand."""

    def test_format3_immediate(self, state):
        place(state, 0, "010005")
        assert decode_address(state, 0) == DecodeResult(5, True, 3)

    def test_format4_immediate(self, state):
        place(state, 0, "01112345")
        assert decode_address(state, 0) == DecodeResult(0x12345, True, 4)

    def test_immediate_not_sign_extended(self, state):
        """Immediate operands keep the raw displacement even with p set."""
        place(state, 0, "012FFF")
        assert decode_address(state, 0) == DecodeResult(0xFFF, True, 3)


class TestSimple:
    """n=1 i=1: computed address is the target."""

    def test_direct(self, state):
        place(state, 0, "030123")
        assert decode_address(state, 0) == DecodeResult(0x123, False, 3)

    def test_direct_not_sign_extended(self, state):
        place(state, 0, "030FFE")
        assert decode_address(state, 0).address == 0xFFE

    def test_pc_relative_forward(self, state):
        """Target is fetch PC + length + displacement."""
        place(state, 0x100, "032010")
        assert decode_address(state, 0x100) == DecodeResult(0x100 + 3 + 0x10, False, 3)

    def test_pc_relative_backward(self, state):
        """A 12-bit displacement of 0xFFE is -2."""
        place(state, 0x100, "032FFE")
        assert decode_address(state, 0x100).address == 0x100 + 3 - 2

    @pytest.mark.parametrize("pc,disp", [(0x0, 0x7FF), (0x1000, 0x800), (0x2345, 0xABC)])
    def test_pc_relative_property(self, state, pc, disp):
        place(state, pc, f"03{0x20 | (disp >> 8):02X}{disp & 0xFF:02X}")
        expected = (pc + 3 + sign_extend(disp, 12)) & 0xFFFF
        assert decode_address(state, pc).address == expected

    def test_base_relative(self, state):
        state.set_register("B", 0x2000)
        place(state, 0, "034010")
        assert decode_address(state, 0).address == 0x2010

    def test_base_relative_negative(self, state):
        state.set_register("B", 0x2000)
        place(state, 0, "034FF0")
        assert decode_address(state, 0).address == 0x2000 - 0x10

    def test_base_wins_over_pc(self, state):
        state.set_register("B", 0x3000)
        place(state, 0, "036004")
        assert decode_address(state, 0).address == 0x3004

    def test_indexed(self, state):
        state.set_register("X", 0x10)
        place(state, 0, "038100")
        assert decode_address(state, 0).address == 0x110

    def test_indexed_pc_relative(self, state):
        state.set_register("X", 2)
        place(state, 0x50, "03A004")
        assert decode_address(state, 0x50).address == 0x50 + 3 + 4 + 2

    def test_format4_extended_address(self, state):
        place(state, 0, "03101234")
        assert decode_address(state, 0) == DecodeResult(0x1234, False, 4)

    def test_format4_pc_relative_not_sign_extended(self, state):
        """The 20-bit displacement is used as is."""
        place(state, 0x10, "03300800")
        assert decode_address(state, 0x10).address == (0x10 + 4 + 0x00800) & 0xFFFF

    def test_address_wraps(self, state):
        state.set_register("B", 0xFFFF)
        place(state, 0, "034002")
        assert decode_address(state, 0).address == 0x0001

    def test_sic_format_uses_absolute_disp(self, state):
        """n=0 i=0 is decoded like a simple reference."""
        place(state, 0, "000050")
        assert decode_address(state, 0) == DecodeResult(0x50, False, 3)


class TestIndirect:
    """n=1 i=0: computed address holds the target."""

    def test_indirect(self, state):
        state.write_word(0x50, 0x001234)
        place(state, 0, "020050")
        result = decode_address(state, 0)
        assert result.address == 0x1234
        assert result.immediate is False

    def test_indirect_pc_relative(self, state):
        state.write_word(0x110, 0x000ABC)
        place(state, 0x100, "02200D")
        assert decode_address(state, 0x100).address == 0xABC

    def test_indirect_ignores_index(self, state):
        """X is not added for pure indirect addressing."""
        state.set_register("X", 0x30)
        state.write_word(0x50, 0x000111)
        state.write_word(0x80, 0x000222)
        place(state, 0, "028050")
        assert decode_address(state, 0).address == 0x111


class TestFormat2:
    """Register-only instructions."""

    def test_register_nibbles(self, state):
        place(state, 0, "A015")
        assert decode_registers(state, 0) == (1, 5)

    def test_instruction_length(self, state):
        place(state, 0, "4F0000")
        place(state, 3, "4F1000")
        assert instruction_length(state, 0) == 3
        assert instruction_length(state, 3) == 4
