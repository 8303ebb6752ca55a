"""User attribute records."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pgpkeyserver.packet import (
    NEVER_EXPIRES,
    TAG_USER_ATTRIBUTE,
    InvalidPacketType,
    OpaquePacket,
    PacketState,
    to_opaque_packet,
)
from pgpkeyserver.signature import Signature, to_ascii85_string

_EPOCH = datetime.fromtimestamp(0, timezone.utc)


def _unix(dt: datetime) -> int:
    return int(dt.timestamp())


def _verified(check, *args) -> bool:
    try:
        check(*args)
    except ValueError:
        return False
    return True


def _parse_subpackets(contents: bytes) -> tuple[tuple[int, bytes], ...]:
    result = []
    pos = 0
    while pos < len(contents):
        first = contents[pos]
        if first < 192:
            length, pos = first, pos + 1
        elif first < 255:
            if pos + 1 >= len(contents):
                raise ValueError("user attribute subpacket truncated")
            length = ((first - 192) << 8) + contents[pos + 1] + 192
            pos += 2
        else:
            length = int.from_bytes(contents[pos + 1:pos + 5], "big")
            pos += 5
        if length < 1 or pos + length > len(contents):
            raise ValueError("bad user attribute subpacket length")
        result.append((contents[pos], bytes(contents[pos + 1:pos + length])))
        pos += length
    return tuple(result)


@dataclass(eq=False)
class UserAttribute:
    """A user attribute packet record with its signatures."""

    scoped_digest: str = ""
    creation: datetime = _EPOCH
    expiration: datetime = _EPOCH
    state: int = 0
    packet: bytes = b""
    pubkey_rfp: str = ""
    rev_sig_digest: Optional[str] = None
    rev_sig: Optional[Signature] = field(default=None, repr=False)
    self_signature: Optional[Signature] = field(default=None, repr=False)
    signatures: list = field(default_factory=list, repr=False)
    user_attribute: Optional[tuple] = field(default=None, repr=False)

    def calc_scoped_digest(self, pubkey) -> str:
        h = hashlib.sha256()
        h.update(pubkey.r_fingerprint.encode())
        h.update(b"{uat}")
        h.update(self.packet)
        return to_ascii85_string(h.digest())

    def serialize(self) -> bytes:
        return self.packet

    def uuid(self) -> str:
        return self.scoped_digest

    def opaque_packet(self) -> OpaquePacket:
        return to_opaque_packet(self.packet)

    def _set_packet(self, op: OpaquePacket) -> None:
        if op.tag != TAG_USER_ATTRIBUTE:
            raise InvalidPacketType()
        self.user_attribute = _parse_subpackets(op.contents)

    def read(self) -> None:
        """Parse the stored packet bytes into its (type, data) subpackets."""
        self._set_packet(to_opaque_packet(self.packet))

    def visit(self, visitor: Callable[[object], None]) -> None:
        visitor(self)
        for sig in tuple(self.signatures):
            sig.visit(visitor)

    def add_signature(self, sig: Signature) -> None:
        self.signatures.append(sig)

    def remove_signature(self, sig: Signature) -> None:
        self.signatures = [s for s in self.signatures if s is not sig]

    def link_self_sigs(self, pubkey) -> None:
        """Find the revocation and most recent valid self-signature."""
        own = [s for s in self.signatures if pubkey.r_fingerprint.startswith(s.r_issuer_key_id)]
        for sig in own:
            if sig.sig_type != 0x30:
                continue
            if self.rev_sig is None or _unix(sig.creation) > _unix(self.rev_sig.creation):
                if _verified(pubkey.verify_user_attr_self_sig, self, sig):
                    self.rev_sig = sig
                    self.rev_sig_digest = sig.scoped_digest
        now = _unix(datetime.now(timezone.utc))
        for sig in own:
            if now > _unix(sig.expiration):
                continue
            if not 0x10 <= sig.sig_type <= 0x13:
                continue
            if not _verified(pubkey.verify_user_attr_self_sig, self, sig):
                continue
            parsed = sig.signature
            if (
                _unix(sig.expiration) == _unix(NEVER_EXPIRES)
                and parsed is not None
                and parsed.version >= 4
                and parsed.key_lifetime_secs is not None
            ):
                sig.expiration = pubkey.creation + timedelta(seconds=parsed.key_lifetime_secs)
            if self.self_signature is None or _unix(sig.creation) > _unix(self.self_signature.creation):
                self.self_signature = sig
            if self.rev_sig is not None and _unix(sig.creation) > _unix(self.self_signature.creation):
                self.rev_sig = None
                self.rev_sig_digest = None
        if self.self_signature is None:
            self.state |= PacketState.NO_SELF_SIG


def new_user_attribute(op: OpaquePacket) -> UserAttribute:
    """Build a user attribute record from a raw user attribute packet."""
    uat = UserAttribute(packet=op.serialize())
    uat._set_packet(op)
    uat.creation = NEVER_EXPIRES
    uat.expiration = _EPOCH
    return uat