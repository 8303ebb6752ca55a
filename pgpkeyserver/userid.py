"""User ID records."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pgpkeyserver.packet import (
    NEVER_EXPIRES,
    TAG_USER_ID,
    InvalidPacketType,
    OpaquePacket,
    PacketState,
    to_opaque_packet,
)
from pgpkeyserver.signature import Signature, to_ascii85_string
from pgpkeyserver.util import clean_utf8

_EPOCH = datetime.fromtimestamp(0, timezone.utc)


def _unix(dt: datetime) -> int:
    return int(dt.timestamp())


def _verified(check, *args) -> bool:
    try:
        check(*args)
    except ValueError:
        return False
    return True


@dataclass(eq=False)
class UserId:
    """A user ID packet record with its signatures."""

    scoped_digest: str = ""
    creation: datetime = _EPOCH
    expiration: datetime = _EPOCH
    state: int = 0
    packet: bytes = b""
    pubkey_rfp: str = ""
    rev_sig_digest: Optional[str] = None
    keywords: str = ""
    rev_sig: Optional[Signature] = field(default=None, repr=False)
    self_signature: Optional[Signature] = field(default=None, repr=False)
    signatures: list = field(default_factory=list, repr=False)
    user_id: Optional[str] = None

    def calc_scoped_digest(self, pubkey) -> str:
        h = hashlib.sha256()
        h.update(pubkey.r_fingerprint.encode())
        h.update(b"{uid}")
        h.update(self.packet)
        return to_ascii85_string(h.digest())

    def serialize(self) -> bytes:
        return self.packet

    def uuid(self) -> str:
        return self.scoped_digest

    def opaque_packet(self) -> OpaquePacket:
        return to_opaque_packet(self.packet)

    def _set_packet(self, op: OpaquePacket) -> None:
        if op.tag != TAG_USER_ID:
            raise InvalidPacketType()
        self.user_id = op.contents.decode("utf-8", "surrogateescape")

    def read(self) -> None:
        """Parse the stored packet bytes into the user_id field."""
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
                if _verified(pubkey.verify_user_id_self_sig, self, sig):
                    self.rev_sig = sig
                    self.rev_sig_digest = sig.scoped_digest
        now = _unix(datetime.now(timezone.utc))
        for sig in own:
            if now > _unix(sig.expiration):
                continue
            if not 0x10 <= sig.sig_type <= 0x13:
                continue
            if not _verified(pubkey.verify_user_id_self_sig, self, sig):
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


def new_user_id(op: OpaquePacket) -> UserId:
    """Build a user ID record from a raw user ID packet."""
    uid = UserId(packet=op.serialize())
    uid._set_packet(op)
    uid.creation = NEVER_EXPIRES
    uid.expiration = _EPOCH
    uid.keywords = clean_utf8(uid.user_id)
    return uid