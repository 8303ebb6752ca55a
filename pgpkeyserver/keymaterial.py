"""Public key and public subkey packet parsing."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone

from pgpkeyserver.packet import TAG_PUBLIC_KEY, TAG_PUBLIC_SUBKEY, InvalidPacketType

# Public-key algorithm -> number of MPIs in the key material.
_V4_KEY_MPIS = {1: 2, 2: 2, 3: 2, 16: 3, 17: 4}
_V3_KEY_MPIS = {1: 2, 2: 2, 3: 2}


def _mpi_bytes(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


@dataclass(frozen=True)
class PublicKeyPacket:
    """Decoded contents of a version 3 or 4 public key or subkey packet."""

    tag: int
    version: int
    creation_time: datetime
    pub_key_algo: int
    mpis: tuple[int, ...]
    contents: bytes
    days_to_expire: int = 0

    @property
    def is_subkey(self) -> bool:
        return self.tag == TAG_PUBLIC_SUBKEY

    def fingerprint(self) -> str:
        """Lower-case hex fingerprint: SHA-1 for v4 keys, MD5 for v3 keys."""
        if self.version >= 4:
            h = hashlib.sha1()
            h.update(bytes([0x99]) + len(self.contents).to_bytes(2, "big"))
            h.update(self.contents)
            return h.hexdigest()
        n, e = self.mpis[:2]
        return hashlib.md5(_mpi_bytes(n) + _mpi_bytes(e)).hexdigest()

    @property
    def key_id(self) -> int:
        if self.version >= 4:
            return int(self.fingerprint()[-16:], 16)
        return self.mpis[0] & 0xFFFFFFFFFFFFFFFF

    def bit_length(self) -> int:
        """Bit length of the key's primary parameter (modulus or prime)."""
        return self.mpis[0].bit_length()


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ValueError("public key packet truncated")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")

    def mpi(self) -> int:
        bits = self.uint(2)
        return int.from_bytes(self.take((bits + 7) // 8), "big")


def parse_public_key(tag: int, contents: bytes) -> PublicKeyPacket:
    """Decode a public key (tag 6) or subkey (tag 14) packet body."""
    if tag not in (TAG_PUBLIC_KEY, TAG_PUBLIC_SUBKEY):
        raise InvalidPacketType()
    contents = bytes(contents)
    reader = _Reader(contents)
    version = reader.uint(1)
    created = datetime.fromtimestamp(reader.uint(4), timezone.utc)
    if version == 4:
        days = 0
        table = _V4_KEY_MPIS
    elif version in (2, 3):
        days = reader.uint(2)
        table = _V3_KEY_MPIS
    else:
        raise ValueError(f"unsupported public key packet version {version}")
    algo = reader.uint(1)
    if algo not in table:
        raise ValueError(f"unsupported public key algorithm {algo}")
    mpis = tuple(reader.mpi() for _ in range(table[algo]))
    return PublicKeyPacket(
        tag=tag,
        version=version,
        creation_time=created,
        pub_key_algo=algo,
        mpis=mpis,
        contents=contents,
        days_to_expire=days,
    )