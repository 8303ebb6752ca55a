"""Signature packet parsing and the signature record."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pgpkeyserver.packet import (
    NEVER_EXPIRES,
    TAG_SIGNATURE,
    InvalidPacketType,
    OpaquePacket,
    to_opaque_packet,
)
from pgpkeyserver.util import reverse

_EPOCH = datetime.fromtimestamp(0, timezone.utc)

# Public-key algorithm -> number of MPIs in the signature.
_V4_SIG_MPIS = {1: 1, 3: 1, 17: 2, 19: 2}
_V3_SIG_MPIS = {1: 1, 3: 1, 17: 2}

_HASH_ALGORITHMS = {
    1: "md5",
    2: "sha1",
    3: "ripemd160",
    8: "sha256",
    9: "sha384",
    10: "sha512",
    11: "sha224",
}

_SUB_CREATION_TIME = 2
_SUB_SIG_EXPIRATION = 3
_SUB_KEY_EXPIRATION = 9
_SUB_ISSUER = 16
_SUB_PRIMARY_USER_ID = 25
_KNOWN_SUBPACKETS = frozenset({2, 3, 9, 11, 16, 21, 22, 25, 27, 29, 30})


@dataclass(frozen=True)
class SignaturePacket:
    """Decoded contents of a version 3 or 4 signature packet."""

    version: int
    sig_type: int
    pub_key_algo: int
    hash_algo: int
    creation_time: datetime
    hash_tag: bytes
    mpis: tuple[int, ...]
    issuer_key_id: Optional[int] = None
    sig_lifetime_secs: Optional[int] = None
    key_lifetime_secs: Optional[int] = None
    is_primary_id: Optional[bool] = None
    hashed_subpackets: bytes = b""
    unhashed_subpackets: bytes = b""

    @property
    def hash_name(self) -> str:
        return _HASH_ALGORITHMS[self.hash_algo]


class _Buffer:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ValueError("signature packet truncated")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")

    def mpi(self) -> int:
        bits = self.uint(2)
        return int.from_bytes(self.take((bits + 7) // 8), "big")


def _check_hash(hash_algo: int) -> None:
    if hash_algo not in _HASH_ALGORITHMS:
        raise ValueError(f"unsupported hash function {hash_algo}")


def _timestamp(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, timezone.utc)


def _subpacket_length(buf: _Buffer) -> int:
    first = buf.byte()
    if first < 192:
        return first
    if first < 255:
        return ((first - 192) << 8) + buf.byte() + 192
    return buf.uint(4)


def _fixed(data: bytes, size: int, what: str) -> int:
    if len(data) != size:
        raise ValueError(f"{what} signature subpacket with bad length")
    return int.from_bytes(data, "big")


def _parse_subpackets(area: bytes, hashed: bool, fields: dict) -> None:
    buf = _Buffer(area)
    while not buf.exhausted:
        length = _subpacket_length(buf)
        if length < 1:
            raise ValueError("zero length signature subpacket")
        body = buf.take(length)
        kind, data = body[0] & 0x7F, body[1:]
        critical = bool(body[0] & 0x80)
        if kind == _SUB_CREATION_TIME:
            if not hashed:
                raise ValueError("signature creation time in non-hashed area")
            fields["creation_time"] = _timestamp(_fixed(data, 4, "creation time"))
        elif kind == _SUB_ISSUER:
            fields["issuer_key_id"] = _fixed(data, 8, "issuer")
        elif not hashed:
            continue
        elif kind == _SUB_SIG_EXPIRATION:
            fields["sig_lifetime_secs"] = _fixed(data, 4, "signature expiration") or None
        elif kind == _SUB_KEY_EXPIRATION:
            fields["key_lifetime_secs"] = _fixed(data, 4, "key expiration") or None
        elif kind == _SUB_PRIMARY_USER_ID:
            fields["is_primary_id"] = _fixed(data, 1, "primary user id") > 0
        elif kind not in _KNOWN_SUBPACKETS and critical:
            raise ValueError(f"unknown critical signature subpacket type {kind}")


def _parse_v4(contents: bytes) -> SignaturePacket:
    buf = _Buffer(contents)
    version = buf.byte()
    if version != 4:
        raise ValueError(f"unsupported signature packet version {version}")
    sig_type = buf.byte()
    algo = buf.byte()
    if algo not in _V4_SIG_MPIS:
        raise ValueError(f"unsupported public key algorithm {algo}")
    hash_algo = buf.byte()
    _check_hash(hash_algo)
    fields: dict = {}
    hashed = buf.take(buf.uint(2))
    _parse_subpackets(hashed, True, fields)
    if "creation_time" not in fields:
        raise ValueError("no creation time in signature")
    unhashed = buf.take(buf.uint(2))
    _parse_subpackets(unhashed, False, fields)
    hash_tag = buf.take(2)
    mpis = tuple(buf.mpi() for _ in range(_V4_SIG_MPIS[algo]))
    return SignaturePacket(
        version=version,
        sig_type=sig_type,
        pub_key_algo=algo,
        hash_algo=hash_algo,
        hash_tag=hash_tag,
        mpis=mpis,
        hashed_subpackets=hashed,
        unhashed_subpackets=unhashed,
        **fields,
    )


def _parse_v3(contents: bytes) -> SignaturePacket:
    buf = _Buffer(contents)
    version = buf.byte()
    if version not in (2, 3):
        raise ValueError(f"unsupported signature packet version {version}")
    if buf.byte() != 5:
        raise ValueError("invalid hashed material length")
    sig_type = buf.byte()
    creation_time = _timestamp(buf.uint(4))
    issuer_key_id = buf.uint(8)
    algo = buf.byte()
    if algo not in _V3_SIG_MPIS:
        raise ValueError(f"unsupported public key algorithm {algo}")
    hash_algo = buf.byte()
    _check_hash(hash_algo)
    hash_tag = buf.take(2)
    mpis = tuple(buf.mpi() for _ in range(_V3_SIG_MPIS[algo]))
    return SignaturePacket(
        version=version,
        sig_type=sig_type,
        pub_key_algo=algo,
        hash_algo=hash_algo,
        creation_time=creation_time,
        hash_tag=hash_tag,
        mpis=mpis,
        issuer_key_id=issuer_key_id,
    )


def parse_signature_packet(contents: bytes) -> SignaturePacket:
    """Decode the body of a signature packet, raising ValueError if malformed."""
    if not contents:
        raise ValueError("empty signature packet")
    if contents[0] < 4:
        return _parse_v3(contents)
    return _parse_v4(contents)


def to_ascii85_string(data: bytes) -> str:
    """Encode data as ascii85 without delimiters."""
    return base64.a85encode(data).decode("ascii")


@dataclass(eq=False)
class Signature:
    """A signature record, as stored and scoped within a public key."""

    scoped_digest: str = ""
    creation: datetime = _EPOCH
    expiration: datetime = _EPOCH
    state: int = 0
    packet: bytes = b""
    sig_type: int = 0
    r_issuer_key_id: str = ""
    r_issuer_fingerprint: Optional[str] = None
    rev_sig_digest: Optional[str] = None
    pubkey_uuid: Optional[str] = None
    subkey_uuid: Optional[str] = None
    uid_uuid: Optional[str] = None
    uat_uuid: Optional[str] = None
    sig_uuid: Optional[str] = None
    rev_sig: Optional["Signature"] = field(default=None, repr=False)
    signature: Optional[SignaturePacket] = field(default=None, repr=False)

    def issuer_key_id(self) -> str:
        return reverse(self.r_issuer_key_id)

    def issuer_short_id(self) -> str:
        return self.issuer_key_id()[8:16]

    def issuer_fingerprint(self) -> str:
        return reverse(self.r_issuer_fingerprint or "")

    def calc_scoped_digest(self, pubkey, scope: str) -> str:
        """Digest of this packet scoped to a public key and a target scope."""
        h = hashlib.sha256()
        h.update(pubkey.r_fingerprint.encode())
        h.update(b"{sig}")
        h.update(scope.encode())
        h.update(b"{sig}")
        h.update(self.packet)
        return to_ascii85_string(h.digest())

    def serialize(self) -> bytes:
        return self.packet

    def uuid(self) -> str:
        return self.scoped_digest

    def opaque_packet(self) -> OpaquePacket:
        return to_opaque_packet(self.packet)

    def read(self) -> None:
        """Parse the stored packet bytes into the signature field."""
        op = to_opaque_packet(self.packet)
        if op.tag != TAG_SIGNATURE:
            raise InvalidPacketType()
        self.signature = parse_signature_packet(op.contents)

    def visit(self, visitor: Callable[[object], None]) -> None:
        visitor(self)

    def is_primary(self) -> bool:
        return (
            self.signature is not None
            and self.signature.version >= 4
            and bool(self.signature.is_primary_id)
        )

    def _init_from_packet(self) -> None:
        parsed = self.signature
        if parsed.issuer_key_id is None:
            raise ValueError("Signature missing issuer key ID")
        self.creation = parsed.creation_time
        self.expiration = NEVER_EXPIRES
        self.sig_type = parsed.sig_type
        self.r_issuer_key_id = reverse(f"{parsed.issuer_key_id:016x}")
        if parsed.version >= 4 and parsed.sig_lifetime_secs is not None:
            self.expiration = parsed.creation_time + timedelta(
                seconds=parsed.sig_lifetime_secs
            )


def new_signature(op: OpaquePacket) -> Signature:
    """Build a signature record from a raw signature packet."""
    if op.tag != TAG_SIGNATURE:
        raise InvalidPacketType()
    sig = Signature(packet=op.serialize())
    sig.signature = parse_signature_packet(op.contents)
    sig._init_from_packet()
    return sig