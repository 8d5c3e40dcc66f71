"""Big-endian binary buffer used for the wire protocol."""

from __future__ import annotations

import struct

__all__ = ["ByteBuffer", "ByteBufferError", "MAX_STRING_LENGTH"]

MAX_STRING_LENGTH = 0xFFFF
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class ByteBufferError(ValueError):
    """Raised when a buffer cannot be read or written as asked."""


class ByteBuffer:
    """A growable byte buffer with sequential big-endian reads and writes.

    Writes always append to the end; reads consume from a cursor that starts
    at the beginning of the buffer.
    """

    def __init__(self, data: bytes | bytearray | memoryview = b"") -> None:
        self._buffer = bytearray(data)
        self._position = 0

    def data(self) -> bytes:
        """Return every byte held, whether read yet or not."""
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def __bytes__(self) -> bytes:
        return self.data()

    @property
    def position(self) -> int:
        """Offset of the next byte to be read."""
        return self._position

    @property
    def remaining(self) -> int:
        """Number of bytes not yet read."""
        return len(self._buffer) - self._position

    # -- writing ---------------------------------------------------------

    def _write_int(self, value: int, size: int, signed: bool) -> None:
        try:
            self._buffer += int(value).to_bytes(size, "big", signed=signed)
        except OverflowError as exc:
            kind = "int" if signed else "uint"
            raise OverflowError(f"{value} does not fit in {kind}{size * 8}") from exc

    def write_uint8(self, value: int) -> None:
        self._write_int(value, 1, False)

    def write_uint16(self, value: int) -> None:
        self._write_int(value, 2, False)

    def write_uint32(self, value: int) -> None:
        self._write_int(value, 4, False)

    def write_uint64(self, value: int) -> None:
        self._write_int(value, 8, False)

    def write_int8(self, value: int) -> None:
        self._write_int(value, 1, True)

    def write_int16(self, value: int) -> None:
        self._write_int(value, 2, True)

    def write_int32(self, value: int) -> None:
        self._write_int(value, 4, True)

    def write_int64(self, value: int) -> None:
        self._write_int(value, 8, True)

    def write_float(self, value: float) -> None:
        """Append a 32-bit IEEE 754 float."""
        self._buffer += struct.pack(">f", value)

    def write_double(self, value: float) -> None:
        """Append a 64-bit IEEE 754 float."""
        self._buffer += struct.pack(">d", value)

    def write_bool(self, value: bool) -> None:
        self.write_uint8(1 if value else 0)

    def write_string(self, value: str | bytes) -> None:
        """Append a string prefixed by its byte length as uint16."""
        raw = value.encode(_ENCODING, _ERRORS) if isinstance(value, str) else bytes(value)
        if len(raw) > MAX_STRING_LENGTH:
            raise ByteBufferError("String too long for uint16 length prefix")
        self.write_uint16(len(raw))
        self._buffer += raw

    # -- reading ---------------------------------------------------------

    def _take(self, size: int) -> bytes:
        if self._position + size > len(self._buffer):
            raise ByteBufferError("ByteBuffer: Not enough data to read")
        chunk = bytes(self._buffer[self._position:self._position + size])
        self._position += size
        return chunk

    def _read_int(self, size: int, signed: bool) -> int:
        return int.from_bytes(self._take(size), "big", signed=signed)

    def read_uint8(self) -> int:
        return self._read_int(1, False)

    def read_uint16(self) -> int:
        return self._read_int(2, False)

    def read_uint32(self) -> int:
        return self._read_int(4, False)

    def read_uint64(self) -> int:
        return self._read_int(8, False)

    def read_int8(self) -> int:
        return self._read_int(1, True)

    def read_int16(self) -> int:
        return self._read_int(2, True)

    def read_int32(self) -> int:
        return self._read_int(4, True)

    def read_int64(self) -> int:
        return self._read_int(8, True)

    def read_float(self) -> float:
        (value,) = struct.unpack(">f", self._take(4))
        return value

    def read_double(self) -> float:
        (value,) = struct.unpack(">d", self._take(8))
        return value

    def read_bool(self) -> bool:
        return self.read_uint8() != 0

    def read_string(self) -> str:
        """Read a uint16 length-prefixed string."""
        length = self.read_uint16()
        return self._take(length).decode(_ENCODING, _ERRORS)

    def __repr__(self) -> str:
        return f"ByteBuffer({self.data()!r}, position={self._position})"