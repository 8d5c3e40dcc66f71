"""Packets and opcodes of the length-framed wire protocol."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from .bytebuffer import ByteBuffer, ByteBufferError

__all__ = ["Opcode", "Packet", "PacketError", "HEADER_SIZE", "parse_header"]

HEADER_SIZE = 2


class Opcode(enum.IntEnum):
    MESSAGE = 1
    CMSG_PING = 2
    SMSG_PONG = 3
    CMSG_HELLO = 4
    SMSG_HELLO_RES = 5


class PacketError(ByteBufferError):
    """Raised when bytes cannot form a packet."""


def _to_opcode(value: int) -> Opcode | int:
    try:
        return Opcode(value)
    except ValueError:
        return value


@dataclass
class Packet:
    """An opcode followed by a payload.

    ``opcode`` is an :class:`Opcode` when the value is known, otherwise the
    raw integer received.
    """

    opcode: Opcode | int
    buffer: ByteBuffer = field(default_factory=ByteBuffer)

    def serialize(self) -> bytes:
        """Return the body: the opcode as uint16 followed by the payload."""
        out = ByteBuffer()
        out.write_uint16(int(self.opcode))
        return out.data() + self.buffer.data()

    @classmethod
    def deserialize(cls, data: bytes | bytearray) -> Packet:
        """Build a packet from a body produced by :meth:`serialize`."""
        if len(data) < 2:
            raise PacketError("Packet too short to contain opcode")
        opcode = ByteBuffer(data[:2]).read_uint16()
        return cls(_to_opcode(opcode), ByteBuffer(data[2:]))

    def frame(self) -> bytes:
        """Return the body prefixed by its length as uint16."""
        body = self.serialize()
        header = ByteBuffer()
        header.write_uint16(len(body))
        return header.data() + body


def parse_header(header: bytes | bytearray) -> int:
    """Return the body length announced by a two-byte frame header."""
    if len(header) != HEADER_SIZE:
        raise PacketError(f"Frame header must be {HEADER_SIZE} bytes, got {len(header)}")
    return ByteBuffer(header).read_uint16()