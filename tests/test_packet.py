import pytest

from pgpkeyserver.packet import (
    TAG_PUBLIC_KEY,
    TAG_SIGNATURE,
    TAG_USER_ID,
    InvalidPacketType,
    OpaquePacket,
    PacketRecordState,
    PacketState,
    read_opaque_packets,
    sks_packet_key,
    to_opaque_packet,
)


@pytest.mark.parametrize("size", [0, 5, 191, 192, 200, 8383, 8384, 9000])
def test_serialize_round_trip(size):
    packet = OpaquePacket(TAG_USER_ID, bytes(range(256)) * (size // 256) + bytes(size % 256))
    assert len(packet.contents) == size
    assert list(read_opaque_packets(packet.serialize())) == [packet]


def test_serialize_short_header_bytes():
    packet = OpaquePacket(TAG_USER_ID, b"Alice <alice@example.com>")
    data = packet.serialize()
    assert data[0] == 0xCD
    assert data[1] == len(packet.contents)
    assert data[2:] == packet.contents


def test_serialize_rejects_large_tag():
    with pytest.raises(ValueError):
        OpaquePacket(64, b"x").serialize()


def test_old_format_header():
    packet = to_opaque_packet(b"\x99\x00\x03abc")
    assert packet.tag == TAG_PUBLIC_KEY
    assert packet.contents == b"abc"


def test_old_format_indeterminate_length():
    packet = to_opaque_packet(bytes([0x80 | (TAG_SIGNATURE << 2) | 3]) + b"rest")
    assert packet.tag == TAG_SIGNATURE
    assert packet.contents == b"rest"


def test_partial_body_lengths_are_joined():
    data = bytes([0xC0 | TAG_USER_ID, 0xE1]) + b"ab" + bytes([1]) + b"c"
    packet = to_opaque_packet(data)
    assert packet.tag == TAG_USER_ID
    assert packet.contents == b"abc"


def test_multiple_packets_in_order():
    first = OpaquePacket(TAG_PUBLIC_KEY, b"key")
    second = OpaquePacket(TAG_USER_ID, b"bob@example.com")
    data = first.serialize() + second.serialize()
    assert list(read_opaque_packets(data)) == [first, second]
    assert to_opaque_packet(data) == first


def test_missing_msb_raises():
    with pytest.raises(ValueError, match="MSB"):
        list(read_opaque_packets(b"\x01\x00"))


def test_truncated_packet_raises():
    data = OpaquePacket(TAG_USER_ID, b"truncated").serialize()[:-2]
    with pytest.raises(ValueError):
        list(read_opaque_packets(data))


def test_to_opaque_packet_empty_raises():
    with pytest.raises(ValueError):
        to_opaque_packet(b"")


def test_sks_packet_key_orders_by_tag_then_contents():
    packets = [
        OpaquePacket(TAG_USER_ID, b"b"),
        OpaquePacket(TAG_SIGNATURE, b"z"),
        OpaquePacket(TAG_USER_ID, b"a"),
        OpaquePacket(TAG_PUBLIC_KEY, b"k"),
    ]
    ordered = sorted(packets, key=sks_packet_key)
    assert [(p.tag, p.contents) for p in ordered] == [
        (TAG_SIGNATURE, b"z"),
        (TAG_PUBLIC_KEY, b"k"),
        (TAG_USER_ID, b"a"),
        (TAG_USER_ID, b"b"),
    ]


def test_packet_state_flags_combine():
    state = PacketState(0) | PacketState.NO_SELF_SIG | PacketState.SIG_OK
    assert state == PacketState((1 << 18) | (1 << 2))
    assert PacketState.NO_SELF_SIG in state
    assert PacketState.SPAM not in state
    assert int(state) == (1 << 18) | (1 << 2)


def test_errors_carry_messages():
    invalid = InvalidPacketType()
    assert "Invalid packet type" in str(invalid)
    unset = PacketRecordState()
    assert "not been properly initialized" in str(unset)
    with pytest.raises(ValueError):
        raise invalid