from datetime import datetime, timezone

import pytest

from pgpkeyserver.packet import NEVER_EXPIRES, InvalidPacketType, OpaquePacket, PacketState, to_opaque_packet
from pgpkeyserver.signature import new_signature
from pgpkeyserver.userid import new_user_id
from pgpkeyserver.util import reverse

ISSUER = 0x1122334455667788
NOW = int(datetime.now(timezone.utc).timestamp())


def sig(sig_type, created):
    hashed = bytes([5, 2]) + created.to_bytes(4, "big") + bytes([9, 16]) + ISSUER.to_bytes(8, "big")
    body = bytes([4, sig_type, 1, 8]) + len(hashed).to_bytes(2, "big") + hashed + b"\x00\x00\xab\xcd\x00\x01\x01"
    return new_signature(OpaquePacket(2, body))


class FakeKey:
    def __init__(self, reject=()):
        self.r_fingerprint = reverse("00" * 12 + "1122334455667788")
        self.creation = datetime.fromtimestamp(NOW - 10000, timezone.utc)
        self.reject = set(reject)

    def verify_user_id_self_sig(self, uid, s):
        if s in self.reject:
            raise ValueError("bad signature")


def make_uid(text=b"Alice <alice@example.com>"):
    return new_user_id(OpaquePacket(13, text))


def test_new_user_id_fields():
    uid = make_uid()
    assert uid.keywords == "Alice <alice@example.com>"
    assert uid.creation == NEVER_EXPIRES
    assert to_opaque_packet(uid.serialize()) == OpaquePacket(13, b"Alice <alice@example.com>")


def test_keywords_cleaned():
    assert make_uid(b"Al\x01ice\x7f").keywords == "Alice"


def test_wrong_tag():
    with pytest.raises(InvalidPacketType):
        new_user_id(OpaquePacket(17, b"x"))


def test_read_roundtrip():
    uid = make_uid()
    uid.user_id = None
    uid.read()
    assert uid.user_id == "Alice <alice@example.com>"


def test_scoped_digest_depends_on_key():
    uid = make_uid()
    a, b = FakeKey(), FakeKey()
    b.r_fingerprint = "ff" + b.r_fingerprint
    assert uid.calc_scoped_digest(a) == uid.calc_scoped_digest(FakeKey())
    assert uid.calc_scoped_digest(a) != uid.calc_scoped_digest(b)


def test_visit_and_remove():
    uid = make_uid()
    s1, s2 = sig(0x13, NOW - 100), sig(0x13, NOW - 50)
    uid.add_signature(s1)
    uid.add_signature(s2)
    seen = []
    uid.visit(seen.append)
    assert seen == [uid, s1, s2]
    uid.remove_signature(s1)
    assert uid.signatures == [s2]


def test_link_picks_latest_self_sig():
    uid = make_uid()
    old, new = sig(0x13, NOW - 500), sig(0x10, NOW - 100)
    uid.add_signature(old)
    uid.add_signature(new)
    uid.link_self_sigs(FakeKey())
    assert uid.self_signature is new
    assert not uid.state & PacketState.NO_SELF_SIG


def test_link_revocation_and_no_self_sig():
    uid = make_uid()
    rev, cert = sig(0x30, NOW - 100), sig(0x13, NOW - 50)
    rev.scoped_digest = "rev"
    uid.add_signature(rev)
    uid.add_signature(cert)
    uid.link_self_sigs(FakeKey(reject={cert}))
    assert uid.rev_sig is rev
    assert uid.rev_sig_digest == "rev"
    assert uid.self_signature is None
    assert uid.state & PacketState.NO_SELF_SIG