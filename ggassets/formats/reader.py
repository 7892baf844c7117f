"""Bounds-checked little-endian field reader for binary payloads."""

import struct

from .errors import TruncatedData


class ByteReader:
    """Sequential reader over an in-memory buffer.

    Every read checks the remaining length first and raises TruncatedData
    instead of returning short data.

    Example:
        reader = ByteReader(data)
        width = reader.u16()
        height = reader.u16()
    """

    def __init__(self, data: bytes | bytearray | memoryview, offset: int = 0) -> None:
        self._data = memoryview(data)
        self._offset = offset

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return max(0, len(self._data) - self._offset)

    def seek(self, offset: int) -> None:
        """Move to an absolute offset within the buffer."""
        if offset < 0 or offset > len(self._data):
            raise TruncatedData(f"Offset {offset} outside buffer of {len(self._data)} bytes")
        self._offset = offset

    def _unpack(self, fmt: str) -> int:
        size = struct.calcsize(fmt)
        if self.remaining < size:
            raise TruncatedData(
                f"Need {size} bytes at offset {self._offset}, only {self.remaining} available"
            )
        (value,) = struct.unpack_from(fmt, self._data, self._offset)
        self._offset += size
        return value

    def u16(self) -> int:
        return self._unpack("<H")

    def i16(self) -> int:
        return self._unpack("<h")

    def u32(self) -> int:
        return self._unpack("<I")

    def u64(self) -> int:
        return self._unpack("<Q")

    def raw(self, size: int) -> bytes:
        """Read exactly size bytes."""
        if size < 0 or self.remaining < size:
            raise TruncatedData(
                f"Need {size} bytes at offset {self._offset}, only {self.remaining} available"
            )
        value = self._data[self._offset : self._offset + size].tobytes()
        self._offset += size
        return value
