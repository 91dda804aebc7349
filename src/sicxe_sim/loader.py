"""ObjectLoader: two-pass linking loader for SIC/XE object programs.

Object programs are text, one record per line, record type in column 1:

    H  name, whitespace, start (6 hex) and length (6 hex) run together
    D  repeated 12-column groups: symbol (6 columns), offset (6 hex)
    R  referenced symbols (not needed for loading, ignored)
    T  offset (6 hex), byte count (2 hex), object bytes as hex pairs
    M  offset (6 hex), half-byte count (2 hex), sign, symbol
    E  optional entry offset (6 hex)

Each Header starts a new control section, loaded directly after the
previous one. Pass 1 places text and collects the symbols each section
defines. Pass 2 re-derives the section addresses and applies Modify
records, which may reference symbols of any section.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .errors import ObjectFormatError, UnresolvedSymbolError
from .state import ControlSection, MachineState

logger = logging.getLogger(__name__)

Record = Tuple[int, str, str]

HEX_FIELD = re.compile(r"[0-9A-Fa-f]+")


@dataclass
class SymbolTable:
    """Symbols defined by one control section (absolute addresses)."""
    section: str
    symbols: Dict[str, int] = field(default_factory=dict)

    def define(self, name: str, address: int) -> None:
        self.symbols[name] = address

    def search(self, name: str) -> Optional[int]:
        return self.symbols.get(name)


@dataclass
class LoadResult:
    """Outcome of loading one object program.

    Attributes:
        sections: Control sections in load order
        entry_point: Address given by the last End record
        symbols: Read-only view of every defined symbol (first definition wins)
    """
    sections: List[ControlSection]
    entry_point: int
    symbols: Mapping[str, int]

    @property
    def length(self) -> int:
        return sum(section.length for section in self.sections)


def _parse_hex(text: str, what: str, line_number: int, width: Optional[int] = None) -> int:
    """Parse an unsigned hex field, exactly width digits when width is given."""
    if not HEX_FIELD.fullmatch(text) or (width is not None and len(text) != width):
        raise ObjectFormatError(f"malformed {what}: {text!r}", line_number)
    return int(text, 16)


def iter_records(source: str) -> Iterator[Record]:
    """Yield (line_number, record_type, body) for every non-blank line."""
    for line_number, line in enumerate(source.splitlines(), start=1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        yield line_number, line[0], line[1:]


class ObjectLoader:
    """Links and loads object programs into a MachineState.

    Attributes:
        state: Resource model receiving text bytes and section metadata
    """

    def __init__(self, state: MachineState):
        self.state = state
        self._tables: List[SymbolTable] = []
        self._sections: List[ControlSection] = []
        self._table: Optional[SymbolTable] = None
        self._section: Optional[ControlSection] = None
        self._explicit_entry = False

    def load_file(self, path: Union[str, Path]) -> LoadResult:
        """Load an object program from a file."""
        path = Path(path)
        logger.info("Loading object program %s", path)
        return self.load(path.read_text())

    def load(self, source: str) -> LoadResult:
        """Link and load an object program.

        Memory is not cleared first; call MachineState.initialize() for a
        fresh machine.

        Args:
            source: Object program text

        Returns:
            LoadResult describing the loaded sections

        Raises:
            ObjectFormatError: If a record is malformed
            UnresolvedSymbolError: If a Modify record names an unknown symbol
        """
        records = list(iter_records(source))
        self._tables = []
        self._sections = []
        self._explicit_entry = False
        self.state.entry_point = self.state.base_address

        try:
            self._pass_one(records)
            self._pass_two(records)

            symbols: Dict[str, int] = {}
            for table in self._tables:
                for name, address in table.symbols.items():
                    symbols.setdefault(name, address)
        finally:
            # Symbol tables live only for the duration of one load
            self._tables = []
            self._table = None
            self._section = None

        result = LoadResult(
            sections=list(self._sections),
            entry_point=self.state.entry_point,
            symbols=MappingProxyType(symbols),
        )
        logger.info(
            "Loaded %d control section(s), %d bytes, entry point %06X",
            len(result.sections), result.length, result.entry_point,
        )
        return result

    # =========================================================================
    # Passes
    # =========================================================================

    def _pass_one(self, records: List[Record]) -> None:
        self._section = None
        for line_number, kind, body in records:
            if kind == "H":
                section = self._next_section(body, line_number)
                self._sections.append(section)
                self.state.add_section(section)
                self._table = SymbolTable(section.name)
                self._table.define(section.name, section.address)
                self._tables.append(self._table)
                logger.debug("Section %s", section)
            elif kind == "D":
                self._handle_define(body, line_number)
            elif kind == "T":
                self._handle_text(body, line_number)
            elif kind == "E":
                self._handle_end(body, line_number)
            elif kind not in "RM":
                logger.debug("line %d: ignoring record type %r", line_number, kind)

    def _pass_two(self, records: List[Record]) -> None:
        self._section = None
        for line_number, kind, body in records:
            if kind == "H":
                self._next_section(body, line_number)
            elif kind == "M":
                self._handle_modify(body, line_number)

    # =========================================================================
    # Record handlers
    # =========================================================================

    def _next_section(self, body: str, line_number: int) -> ControlSection:
        tokens = body.split()
        if len(tokens) >= 2:
            name, start_and_length = tokens[0], tokens[1]
        elif len(body) >= 18:
            # Six-character name with no separating blank
            name, start_and_length = body[:6].strip(), body[6:18]
        else:
            raise ObjectFormatError("truncated header record", line_number)
        if len(start_and_length) < 12:
            raise ObjectFormatError("truncated header record", line_number)

        _parse_hex(start_and_length[0:6], "start address", line_number, 6)
        length = _parse_hex(start_and_length[6:12], "program length", line_number, 6)

        if self._section is None:
            address = self.state.base_address
        else:
            address = self._section.end
        self._section = ControlSection(name, address, length)
        return self._section

    def _current(self, line_number: int) -> ControlSection:
        if self._section is None:
            raise ObjectFormatError("record before any header", line_number)
        return self._section

    def _handle_define(self, body: str, line_number: int) -> None:
        section = self._current(line_number)
        body = body.rstrip()
        for i in range(0, len(body) - 11, 12):
            symbol = body[i:i + 6].strip()
            offset = _parse_hex(body[i + 6:i + 12], "symbol offset", line_number, 6)
            self._table.define(symbol, section.address + offset)

    def _handle_text(self, body: str, line_number: int) -> None:
        section = self._current(line_number)
        if len(body) < 8:
            raise ObjectFormatError("truncated text record", line_number)
        offset = _parse_hex(body[0:6], "text offset", line_number, 6)
        count = _parse_hex(body[6:8], "text length", line_number, 2)

        codes = body[8:8 + count * 2]
        if len(codes) < count * 2:
            raise ObjectFormatError(
                f"text record declares {count} bytes but carries {len(codes) // 2}", line_number
            )
        data = bytes(
            _parse_hex(codes[j:j + 2], "object byte", line_number, 2)
            for j in range(0, count * 2, 2)
        )
        self.state.write_bytes(section.address + offset, data)

    def _handle_modify(self, body: str, line_number: int) -> None:
        section = self._current(line_number)
        if len(body) < 10:
            raise ObjectFormatError("truncated modification record", line_number)
        offset = _parse_hex(body[0:6], "modification offset", line_number, 6)
        half_bytes = _parse_hex(body[6:8], "modification length", line_number, 2)
        sign = body[8]
        symbol = body[9:].strip()
        if sign not in "+-":
            raise ObjectFormatError(f"bad modification sign {sign!r}", line_number)

        value = self._resolve(symbol, line_number)
        address = section.address + offset
        width = (half_bytes + 1) // 2

        original = int.from_bytes(self.state.read_bytes(address, width), "big")
        adjusted = original + value if sign == "+" else original - value
        adjusted &= (1 << (8 * width)) - 1
        self.state.write_bytes(address, adjusted.to_bytes(width, "big"))
        logger.debug(
            "Modify %06X (%d half-bytes) %s%s: %X -> %X",
            address, half_bytes, sign, symbol, original, adjusted,
        )

    def _handle_end(self, body: str, line_number: int) -> None:
        section = self._current(line_number)
        operand = body.strip()[:6]
        if operand:
            self.state.entry_point = section.address + _parse_hex(operand, "entry point", line_number)
            self._explicit_entry = True
        elif not self._explicit_entry:
            # A blank End never overrides an entry point given explicitly
            self.state.entry_point = section.address

    def _resolve(self, symbol: str, line_number: int) -> int:
        for table in self._tables:
            address = table.search(symbol)
            if address is not None:
                return address
        raise UnresolvedSymbolError(symbol, line_number)
