from datetime import datetime, timedelta, timezone

import pytest

from pgpkeyserver.packet import NEVER_EXPIRES, InvalidPacketType, OpaquePacket, PacketState, to_opaque_packet
from pgpkeyserver.signature import new_signature
from pgpkeyserver.userattribute import new_user_attribute
from pgpkeyserver.util import reverse

ISSUER = 0x1122334455667788
NOW = int(datetime.now(timezone.utc).timestamp())
CONTENTS = bytes([5, 1]) + b"jpeg"


def sig(sig_type, created, key_lifetime=None):
    hashed = bytes([5, 2]) + created.to_bytes(4, "big") + bytes([9, 16]) + ISSUER.to_bytes(8, "big")
    if key_lifetime:
        hashed += bytes([5, 9]) + key_lifetime.to_bytes(4, "big")
    body = bytes([4, sig_type, 1, 8]) + len(hashed).to_bytes(2, "big") + hashed + b"\x00\x00\xab\xcd\x00\x01\x01"
    return new_signature(OpaquePacket(2, body))


class FakeKey:
    def __init__(self):
        self.r_fingerprint = reverse("00" * 12 + "1122334455667788")
        self.creation = datetime.fromtimestamp(NOW - 10000, timezone.utc)

    def verify_user_attr_self_sig(self, uat, s):
        return None


def test_new_user_attribute():
    uat = new_user_attribute(OpaquePacket(17, CONTENTS))
    assert uat.user_attribute == ((1, b"jpeg"),)
    assert uat.creation == NEVER_EXPIRES
    assert to_opaque_packet(uat.serialize()) == OpaquePacket(17, CONTENTS)
    assert uat.opaque_packet().tag == 17


def test_errors():
    with pytest.raises(InvalidPacketType):
        new_user_attribute(OpaquePacket(13, CONTENTS))
    with pytest.raises(ValueError):
        new_user_attribute(OpaquePacket(17, bytes([9, 1])))


def test_read_and_uuid():
    uat = new_user_attribute(OpaquePacket(17, CONTENTS))
    uat.user_attribute = None
    uat.read()
    assert uat.user_attribute == ((1, b"jpeg"),)
    uat.scoped_digest = uat.calc_scoped_digest(FakeKey())
    assert uat.uuid() == uat.scoped_digest


def test_link_self_sig_with_key_lifetime():
    uat = new_user_attribute(OpaquePacket(17, CONTENTS))
    key = FakeKey()
    s = sig(0x13, NOW - 100, key_lifetime=999999)
    uat.add_signature(s)
    uat.link_self_sigs(key)
    assert uat.self_signature is s
    assert s.expiration == key.creation + timedelta(seconds=999999)


def test_no_self_sig_flag():
    uat = new_user_attribute(OpaquePacket(17, CONTENTS))
    s = sig(0x13, NOW - 100)
    s.r_issuer_key_id = "ffff"
    uat.add_signature(s)
    uat.link_self_sigs(FakeKey())
    assert uat.state & PacketState.NO_SELF_SIG
    seen = []
    uat.visit(seen.append)
    assert seen == [uat, s]