"""Public subkey records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pgpkeyserver.keymaterial import PublicKeyPacket, parse_public_key
from pgpkeyserver.packet import (
    NEVER_EXPIRES,
    InvalidPacketType,
    OpaquePacket,
    PacketState,
    to_opaque_packet,
)
from pgpkeyserver.signature import Signature
from pgpkeyserver.util import reverse

log = logging.getLogger(__name__)

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
class Subkey:
    """A public subkey packet record with its signatures."""

    r_fingerprint: str = ""
    creation: datetime = _EPOCH
    expiration: datetime = _EPOCH
    state: int = 0
    packet: bytes = b""
    pubkey_rfp: str = ""
    rev_sig_digest: Optional[str] = None
    algorithm: int = 0
    bit_len: int = 0
    signatures: list = field(default_factory=list, repr=False)
    rev_sig: Optional[Signature] = field(default=None, repr=False)
    binding_sig: Optional[Signature] = field(default=None, repr=False)
    public_key: Optional[PublicKeyPacket] = field(default=None, repr=False)

    def fingerprint(self) -> str:
        return reverse(self.r_fingerprint)

    def key_id(self) -> str:
        return reverse(self.r_fingerprint[:16])

    def short_id(self) -> str:
        return reverse(self.r_fingerprint[:8])

    def serialize(self) -> bytes:
        return self.packet

    def uuid(self) -> str:
        return self.r_fingerprint

    def opaque_packet(self) -> OpaquePacket:
        return to_opaque_packet(self.packet)

    def _set_packet(self, op: OpaquePacket) -> None:
        key = parse_public_key(op.tag, op.contents)
        if not key.is_subkey:
            raise InvalidPacketType()
        self.public_key = key

    def read(self) -> None:
        """Parse the stored packet bytes into the public_key field."""
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
        """Find the earliest revocation and binding signature by the primary key."""
        now = _unix(datetime.now(timezone.utc))
        for sig in self.signatures:
            if not pubkey.r_fingerprint.startswith(sig.r_issuer_key_id):
                continue
            if sig.sig_type == 0x20:
                if self.rev_sig is None or _unix(sig.creation) < _unix(self.rev_sig.creation):
                    if _verified(pubkey.verify_public_key_self_sig, self, sig):
                        self.rev_sig = sig
                        self.rev_sig_digest = sig.scoped_digest
            elif sig.sig_type == 0x18 and now < _unix(sig.expiration):
                if not _verified(pubkey.verify_public_key_self_sig, self, sig):
                    continue
                parsed = sig.signature
                if (
                    _unix(sig.expiration) == _unix(NEVER_EXPIRES)
                    and parsed is not None
                    and parsed.version >= 4
                    and parsed.key_lifetime_secs is not None
                ):
                    sig.expiration = self.creation + timedelta(seconds=parsed.key_lifetime_secs)
                if self.binding_sig is None or _unix(sig.creation) < _unix(self.binding_sig.creation):
                    self.binding_sig = sig
                    self.pubkey_rfp = pubkey.r_fingerprint
        if self.binding_sig is None:
            self.state |= PacketState.NO_BINDING_SIG


def new_subkey(op: OpaquePacket) -> Subkey:
    """Build a subkey record from a raw public subkey packet."""
    subkey = Subkey(packet=op.serialize())
    subkey._set_packet(op)
    key = subkey.public_key
    if key.version < 4:
        log.warning("Expected primary public key packet, got sub-key")
        raise InvalidPacketType()
    subkey.r_fingerprint = reverse(key.fingerprint())
    subkey.creation = key.creation_time
    subkey.expiration = NEVER_EXPIRES
    subkey.algorithm = key.pub_key_algo
    subkey.bit_len = key.bit_length()
    return subkey