"""File-backed devices for the SIC/XE resource model.

A device is named by two hex digits (e.g. "F1", "05") and is backed by a
file of the same name inside the device directory. Testing a device opens
an input stream and an append-mode output stream on that file; both are
held until the device table is closed.

Reads keep a per-device cursor. The first read starts at offset 0 and every
later read advances the cursor by one before reading, so single-byte reads
walk the file front to back.
"""

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Union

from .errors import DeviceNotOpenError

logger = logging.getLogger(__name__)


class DeviceManager:
    """Table of open devices.

    Attributes:
        device_dir: Directory containing the backing files
    """

    def __init__(self, device_dir: Union[str, Path] = "."):
        self.device_dir = Path(device_dir)
        self._readers: Dict[str, BinaryIO] = {}
        self._writers: Dict[str, BinaryIO] = {}
        self._offsets: Dict[str, int] = {}
        self._stack = ExitStack()

    def __enter__(self) -> "DeviceManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __contains__(self, name: str) -> bool:
        return name in self._readers

    @property
    def open_devices(self) -> list:
        """Names of the currently open devices, in open order."""
        return list(self._readers)

    def path_for(self, name: str) -> Path:
        return self.device_dir / name

    def open(self, name: str) -> bool:
        """Open the input and output streams of a device.

        Opening an already open device is a no-op.

        Returns:
            True when the device is usable, False when its file could not
            be created or opened
        """
        if name in self._readers:
            return True

        path = self.path_for(name)
        try:
            with ExitStack() as stack:
                path.touch(exist_ok=True)
                reader = stack.enter_context(path.open("rb"))
                writer = stack.enter_context(path.open("ab"))
                self._stack.enter_context(stack.pop_all())
        except OSError as e:
            logger.warning("Cannot open device %s (%s): %s", name, path, e)
            return False

        self._readers[name] = reader
        self._writers[name] = writer
        logger.debug("Opened device %s at %s", name, path)
        return True

    def read(self, name: str, count: int) -> Optional[bytes]:
        """Read count bytes at the device cursor.

        Returns:
            The bytes read, or None when fewer than count bytes remain

        Raises:
            DeviceNotOpenError: If the device was never opened
        """
        reader = self._readers.get(name)
        if reader is None:
            raise DeviceNotOpenError(name)

        if name in self._offsets:
            self._offsets[name] += 1
        else:
            self._offsets[name] = 0

        reader.seek(self._offsets[name])
        data = reader.read(count)
        if len(data) < count:
            logger.debug("Short read on device %s: wanted %d, got %d", name, count, len(data))
            return None
        return data

    def write(self, name: str, data: bytes, count: int) -> None:
        """Append count bytes of data to the device and flush.

        Raises:
            DeviceNotOpenError: If the device was never opened
        """
        writer = self._writers.get(name)
        if writer is None:
            raise DeviceNotOpenError(name)

        writer.write(bytes(data[:count]))
        writer.flush()

    def close(self) -> None:
        """Flush and close every open device. Safe to call repeatedly."""
        if self._readers:
            logger.debug("Closing devices: %s", ", ".join(self._readers))
        for writer in self._writers.values():
            writer.flush()
        self._stack.close()
        self._readers.clear()
        self._writers.clear()
        self._offsets.clear()
