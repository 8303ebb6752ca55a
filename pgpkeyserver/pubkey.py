"""Primary public key records and self-signature verification."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from pgpkeyserver.keymaterial import PublicKeyPacket, parse_public_key
from pgpkeyserver.packet import (
    NEVER_EXPIRES,
    InvalidPacketType,
    OpaquePacket,
    PacketRecordState,
    PacketState,
    read_opaque_packets,
    to_opaque_packet,
)
from pgpkeyserver.signature import Signature, SignaturePacket
from pgpkeyserver.util import reverse

log = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, timezone.utc)

_RSA_ALGOS = (1, 3)
_DSA_ALGO = 17

# ASN.1 DigestInfo prefixes used in PKCS#1 v1.5 signature padding.
_DIGEST_INFO = {
    "md5": bytes.fromhex("3020300c06082a864886f70d020505000410"),
    "sha1": bytes.fromhex("3021300906052b0e03021a05000414"),
    "ripemd160": bytes.fromhex("3021300906052b2403020105000414"),
    "sha224": bytes.fromhex("302d300d06096086480165030402040500041c"),
    "sha256": bytes.fromhex("3031300d060960864801650304020105000420"),
    "sha384": bytes.fromhex("3041300d060960864801650304020205000430"),
    "sha512": bytes.fromhex("3051300d060960864801650304020305000440"),
}


class SignatureVerificationError(ValueError):
    """A signature does not verify against the key material."""


def _unix(dt: datetime) -> int:
    return int(dt.timestamp())


def _verified(check, *args) -> bool:
    try:
        check(*args)
    except ValueError:
        return False
    return True


def _new_hash(sig: SignaturePacket):
    try:
        return hashlib.new(sig.hash_name)
    except (KeyError, ValueError) as exc:
        raise ValueError("unsupported hash function") from exc


def _key_material(contents: bytes) -> bytes:
    length = len(contents)
    return bytes([0x99, (length >> 8) & 0xFF, length & 0xFF]) + contents


def _hash_suffix(sig: SignaturePacket) -> bytes:
    if sig.version >= 4:
        hashed = (
            bytes([sig.version, sig.sig_type, sig.pub_key_algo, sig.hash_algo])
            + len(sig.hashed_subpackets).to_bytes(2, "big")
            + sig.hashed_subpackets
        )
        return hashed + bytes([4, 0xFF]) + len(hashed).to_bytes(4, "big")
    created = _unix(sig.creation_time) & 0xFFFFFFFF
    return bytes([sig.sig_type]) + created.to_bytes(4, "big")


def _verify_rsa(key: PublicKeyPacket, sig: SignaturePacket, digest: bytes) -> None:
    n, e = key.mpis[:2]
    (s,) = sig.mpis[:1]
    if s >= n:
        raise SignatureVerificationError("RSA verification failure")
    size = (n.bit_length() + 7) // 8
    prefix = _DIGEST_INFO.get(sig.hash_name)
    if prefix is None:
        raise ValueError("unsupported hash function")
    payload = prefix + digest
    if size < len(payload) + 11:
        raise SignatureVerificationError("RSA verification failure")
    expected = b"\x00\x01" + b"\xff" * (size - len(payload) - 3) + b"\x00" + payload
    if pow(s, e, n).to_bytes(size, "big") != expected:
        raise SignatureVerificationError("RSA verification failure")


def _verify_dsa(key: PublicKeyPacket, sig: SignaturePacket, digest: bytes) -> None:
    p, q, g, y = key.mpis[:4]
    r, s = sig.mpis[:2]
    digest = digest[: (q.bit_length() + 7) // 8]
    if not (0 < r < q and 0 < s < q) or q.bit_length() % 8:
        raise SignatureVerificationError("DSA verification failure")
    w = pow(s, -1, q)
    z = int.from_bytes(digest, "big")
    u1 = z * w % q
    u2 = r * w % q
    if pow(g, u1, p) * pow(y, u2, p) % p % q != r:
        raise SignatureVerificationError("DSA verification failure")


def _verify(key: PublicKeyPacket, sig: SignaturePacket, h) -> None:
    if key.pub_key_algo != sig.pub_key_algo:
        raise SignatureVerificationError(
            "public key and signature use different algorithms"
        )
    if key.pub_key_algo not in _RSA_ALGOS and key.pub_key_algo != _DSA_ALGO:
        raise SignatureVerificationError("public key cannot generate signatures")
    h.update(_hash_suffix(sig))
    digest = h.digest()
    if digest[:2] != sig.hash_tag:
        raise SignatureVerificationError("hash tag doesn't match")
    if key.pub_key_algo in _RSA_ALGOS:
        _verify_rsa(key, sig, digest)
    else:
        _verify_dsa(key, sig, digest)


@dataclass(eq=False)
class Pubkey:
    """A primary public key record with its user IDs, attributes and subkeys."""

    r_fingerprint: str = ""
    creation: datetime = _EPOCH
    expiration: datetime = _EPOCH
    state: int = 0
    packet: bytes = b""
    ctime: datetime = _EPOCH
    mtime: datetime = _EPOCH
    md5: str = ""
    sha256: str = ""
    rev_sig_digest: Optional[str] = None
    primary_uid: Optional[str] = None
    primary_uat: Optional[str] = None
    algorithm: int = 0
    bit_len: int = 0
    unsupported: bytes = b""
    signatures: list = field(default_factory=list, repr=False)
    subkeys: list = field(default_factory=list, repr=False)
    user_ids: list = field(default_factory=list, repr=False)
    user_attributes: list = field(default_factory=list, repr=False)
    rev_sig: Optional[Signature] = field(default=None, repr=False)
    primary_uid_record: Optional[object] = field(default=None, repr=False)
    primary_uid_sig: Optional[Signature] = field(default=None, repr=False)
    primary_uat_record: Optional[object] = field(default=None, repr=False)
    primary_uat_sig: Optional[Signature] = field(default=None, repr=False)
    public_key: Optional[PublicKeyPacket] = field(default=None, repr=False)
    verify_sigs: bool = False

    def fingerprint(self) -> str:
        return reverse(self.r_fingerprint)

    def key_id(self) -> str:
        if self.public_key is not None and self.public_key.version < 4:
            return f"{self.public_key.key_id:016x}"
        return reverse(self.r_fingerprint[:16])

    def short_id(self) -> str:
        if self.public_key is not None and self.public_key.version < 4:
            return f"{self.public_key.key_id & 0xFFFFFFFF:08x}"
        return reverse(self.r_fingerprint[:8])

    def serialize(self) -> bytes:
        return self.packet

    def uuid(self) -> str:
        return self.r_fingerprint

    def opaque_packet(self) -> OpaquePacket:
        return to_opaque_packet(self.packet)

    def _set_packet(self, key: PublicKeyPacket) -> None:
        if key.is_subkey:
            raise InvalidPacketType()
        self.public_key = key

    def read(self) -> None:
        """Parse the stored packet bytes into the public_key field.

        Packets of keys flagged as unsupported are left unparsed.
        """
        try:
            op = to_opaque_packet(self.packet)
            key = parse_public_key(op.tag, op.contents)
        except InvalidPacketType:
            raise
        except ValueError:
            if self.state & PacketState.UNSUPP_PUBKEY:
                return
            raise
        self._set_packet(key)

    def unsupported_packets(self) -> Iterator[OpaquePacket]:
        """Yield the packets held aside as unsupported, up to the first bad one."""
        packets = read_opaque_packets(self.unsupported)
        while True:
            try:
                packet = next(packets)
            except (StopIteration, ValueError):
                return
            yield packet

    def _init_unsupported(self, op: OpaquePacket) -> None:
        self.state = PacketState.UNSUPP_PUBKEY
        fpr = hashlib.sha1(_key_material(op.contents)).hexdigest()
        self.r_fingerprint = reverse(fpr)

    def _init_from_key(self) -> None:
        key = self.public_key
        self.r_fingerprint = reverse(key.fingerprint())
        self.creation = key.creation_time
        self.expiration = NEVER_EXPIRES
        if key.version < 4 and key.days_to_expire > 0:
            self.expiration = self.creation + timedelta(days=key.days_to_expire)
        self.algorithm = key.pub_key_algo
        self.bit_len = key.bit_length()

    def visit(self, visitor: Callable[[object], None]) -> None:
        visitor(self)
        for sig in tuple(self.signatures):
            sig.visit(visitor)
        for uid in tuple(self.user_ids):
            uid.visit(visitor)
        for uat in tuple(self.user_attributes):
            uat.visit(visitor)
        for subkey in tuple(self.subkeys):
            subkey.visit(visitor)

    def add_signature(self, sig: Signature) -> None:
        self.signatures.append(sig)

    def remove_signature(self, sig: Signature) -> None:
        self.signatures = [s for s in self.signatures if s is not sig]

    def link_self_sigs(self) -> None:
        """Keep the earliest valid revocation made by this key on itself."""
        for sig in self.signatures:
            if not self.r_fingerprint.startswith(sig.r_issuer_key_id):
                continue
            if sig.sig_type != 0x20:
                continue
            if self.rev_sig is None or _unix(sig.creation) < _unix(self.rev_sig.creation):
                if _verified(self.verify_public_key_self_sig, self, sig):
                    self.rev_sig = sig

    def verify_public_key_self_sig(self, keyrec, sig: Signature) -> None:
        """Verify a signature by this key over the key material of keyrec."""
        if not self.verify_sigs:
            return
        primary = self.public_key
        signed = keyrec.public_key
        if primary is None or signed is None:
            raise PacketRecordState()
        if (primary.version >= 4) != (signed.version >= 4):
            raise PacketRecordState()
        parsed = sig.signature
        if parsed is None or (parsed.version >= 4) != (primary.version >= 4):
            raise InvalidPacketType()
        h = _new_hash(parsed)
        h.update(_key_material(primary.contents))
        h.update(_key_material(signed.contents))
        _verify(primary, parsed, h)
        sig.state |= PacketState.SIG_OK

    def verify_user_id_self_sig(self, uid, sig: Signature) -> None:
        """Verify a certification by this key over a user ID."""
        if not self.verify_sigs:
            return
        if uid.user_id is None:
            raise PacketRecordState()
        key = self.public_key
        if key is None:
            raise PacketRecordState()
        parsed = sig.signature
        if parsed is None or (key.version < 4 and parsed.version >= 4):
            raise InvalidPacketType()
        id_bytes = uid.user_id.encode("utf-8", "surrogateescape")
        h = _new_hash(parsed)
        h.update(_key_material(key.contents))
        if parsed.version >= 4:
            h.update(b"\xb4" + len(id_bytes).to_bytes(4, "big"))
        h.update(id_bytes)
        _verify(key, parsed, h)
        if key.version >= 4:
            sig.state |= PacketState.SIG_OK

    def verify_user_attr_self_sig(self, uat, sig: Signature) -> None:
        """Verify a certification by this key over a user attribute."""
        if not self.verify_sigs:
            return
        if uat.user_attribute is None:
            raise PacketRecordState()
        key = self.public_key
        if key is None or key.version < 4:
            raise InvalidPacketType()
        parsed = sig.signature
        if parsed is None or parsed.version < 4:
            raise PacketRecordState()
        h = _new_hash(parsed)
        uat_contents = uat.opaque_packet().contents
        h.update(_key_material(self.opaque_packet().contents))
        h.update(b"\xd1" + (len(uat_contents) & 0xFFFFFFFF).to_bytes(4, "big"))
        h.update(uat_contents)
        _verify(key, parsed, h)

    def append_unsupported(self, opkt: OpaquePacket) -> None:
        self.unsupported = self.unsupported + opkt.serialize()


def new_pubkey(op: OpaquePacket) -> Pubkey:
    """Build a primary key record from a raw public key packet.

    Key material that cannot be parsed is kept, flagged as unsupported, with
    an opaque fingerprint computed over the packet contents.
    """
    pubkey = Pubkey(packet=op.serialize())
    try:
        key = parse_public_key(op.tag, op.contents)
    except InvalidPacketType:
        raise
    except ValueError:
        pubkey._init_unsupported(op)
        return pubkey
    pubkey._set_packet(key)
    try:
        pubkey._init_from_key()
    except ValueError:
        log.warning("Could not initialize public key; keeping it as unsupported")
        pubkey.public_key = None
        pubkey._init_unsupported(op)
    return pubkey