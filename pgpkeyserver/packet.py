"""OpenPGP packet framing, packet states and packet errors."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator

TAG_SIGNATURE = 2
TAG_PUBLIC_KEY = 6
TAG_USER_ID = 13
TAG_PUBLIC_SUBKEY = 14
TAG_USER_ATTRIBUTE = 17

NEVER_EXPIRES = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


class PacketState(enum.IntFlag):
    """Validity and policy flags of stored key material.

    The lower 16 bits are neutral policy or positive validation markers;
    the upper bits mark validation failures.
    """

    OK = 0
    REGISTERED = 1 << 0
    CLOAKED = 1 << 1
    SIG_OK = 1 << 2
    SPAM = 1 << 16
    ABANDONED = 1 << 17
    NO_SELF_SIG = 1 << 18
    NO_BINDING_SIG = 1 << 19
    UNSUPP_PUBKEY = 1 << 20


class InvalidPacketType(ValueError):
    """A packet is not of the type the record expects."""

    def __init__(self, message: str = "Invalid packet type") -> None:
        super().__init__(message)


class PacketRecordState(ValueError):
    """A packet record has not been initialized with parsed packet data."""

    def __init__(
        self, message: str = "Packet record state has not been properly initialized"
    ) -> None:
        super().__init__(message)


@dataclass(frozen=True)
class OpaquePacket:
    """A raw packet: its tag and undecoded contents."""

    tag: int
    contents: bytes

    def serialize(self) -> bytes:
        """Return the packet with a new-format header."""
        if not 0 <= self.tag < 64:
            raise ValueError(f"packet tag {self.tag} out of range")
        return _new_format_header(self.tag, len(self.contents)) + self.contents


def _new_format_header(tag: int, length: int) -> bytes:
    first = 0xC0 | tag
    if length < 192:
        return bytes([first, length])
    if length < 8384:
        rest = length - 192
        return bytes([first, 192 + (rest >> 8), rest & 0xFF])
    return bytes([first, 255]) + length.to_bytes(4, "big")


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ValueError("unexpected end of packet data")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def rest(self) -> bytes:
        chunk = self._data[self._pos:]
        self._pos = len(self._data)
        return chunk


def _read_new_length(cursor: _Cursor) -> tuple[int, bool]:
    first = cursor.byte()
    if first < 192:
        return first, False
    if first < 224:
        return ((first - 192) << 8) + cursor.byte() + 192, False
    if first < 255:
        return 1 << (first & 0x1F), True
    return int.from_bytes(cursor.take(4), "big"), False


def _read_packet(cursor: _Cursor) -> OpaquePacket:
    first = cursor.byte()
    if not first & 0x80:
        raise ValueError("tag byte does not have MSB set")
    if first & 0x40:
        tag = first & 0x3F
        chunks = []
        partial = True
        while partial:
            length, partial = _read_new_length(cursor)
            chunks.append(cursor.take(length))
        return OpaquePacket(tag, b"".join(chunks))
    tag = (first >> 2) & 0x0F
    length_type = first & 0x03
    if length_type == 3:
        return OpaquePacket(tag, cursor.rest())
    length = int.from_bytes(cursor.take((1, 2, 4)[length_type]), "big")
    return OpaquePacket(tag, cursor.take(length))


def read_opaque_packets(data: bytes) -> Iterator[OpaquePacket]:
    """Yield the packets framed in data, raising ValueError on bad framing."""
    cursor = _Cursor(bytes(data))
    while not cursor.exhausted:
        yield _read_packet(cursor)


def to_opaque_packet(data: bytes) -> OpaquePacket:
    """Return the first packet framed in data."""
    for packet in read_opaque_packets(data):
        return packet
    raise ValueError("no packet data")


def sks_packet_key(packet: OpaquePacket) -> tuple[int, bytes]:
    """Sort key that orders packets by tag, then by contents."""
    return packet.tag, packet.contents