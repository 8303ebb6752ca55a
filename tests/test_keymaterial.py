import pytest

from pgpkeyserver.keymaterial import parse_public_key
from pgpkeyserver.packet import InvalidPacketType

N = (1 << 1023) | 0x1234567890ABCDEF1
E = 65537


def mpi(v):
    return v.bit_length().to_bytes(2, "big") + v.to_bytes((v.bit_length() + 7) // 8, "big")


def v4_body(created=1_400_000_000):
    return bytes([4]) + created.to_bytes(4, "big") + bytes([1]) + mpi(N) + mpi(E)


def v3_body(days=0):
    return bytes([3]) + (1_000_000).to_bytes(4, "big") + days.to_bytes(2, "big") + bytes([1]) + mpi(N) + mpi(E)


def test_v4_fields():
    pk = parse_public_key(6, v4_body())
    assert pk.version == 4
    assert pk.mpis == (N, E)
    assert pk.bit_length() == N.bit_length()
    assert not pk.is_subkey
    assert int(pk.creation_time.timestamp()) == 1_400_000_000


def test_v4_fingerprint_and_key_id():
    pk = parse_public_key(14, v4_body())
    fp = pk.fingerprint()
    assert len(fp) == 40
    assert pk.key_id == int(fp[-16:], 16)
    assert pk.is_subkey
    assert parse_public_key(14, v4_body(5)).fingerprint() != fp


def test_v3_fingerprint_and_key_id():
    pk = parse_public_key(6, v3_body(days=7))
    assert pk.days_to_expire == 7
    assert len(pk.fingerprint()) == 32
    assert pk.key_id == N & 0xFFFFFFFFFFFFFFFF


def test_wrong_tag():
    with pytest.raises(InvalidPacketType):
        parse_public_key(13, v4_body())


def test_unknown_algorithm_and_truncation():
    body = bytearray(v4_body())
    body[5] = 99
    with pytest.raises(ValueError):
        parse_public_key(6, bytes(body))
    with pytest.raises(ValueError):
        parse_public_key(6, v4_body()[:20])