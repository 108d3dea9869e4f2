import struct

import pytest

import dissect_netwayste as dn


def test_ipv4_udp(udp_frame):
    h = dn.decode_frame(udp_frame(src="192.168.1.5", sport=2016, dst="192.168.1.9", dport=5555, payload=b"hello"))
    assert h.ip.version == 4
    assert h.ip.src == "192.168.1.5"
    assert h.ip.dst == "192.168.1.9"
    assert h.udp == dn.UdpSlice(src_port=2016, dst_port=5555, payload=b"hello")


def test_ethernet_padding_is_trimmed(udp_frame):
    frame = udp_frame(payload=b"ab") + b"\x00" * 16
    assert dn.decode_frame(frame).udp.payload == b"ab"


def test_vlan_tagged_frame(udp_frame):
    h = dn.decode_frame(udp_frame(vlan=42, payload=b"v"))
    assert h.udp.payload == b"v"
    assert h.ip.src == "10.0.0.1"


def test_ipv6_udp_has_no_ipv4_slice(udp_frame):
    h = dn.decode_frame(udp_frame(src="fe80::1", dst="fe80::2", v6=True, payload=b"six"))
    assert h.ip.version == 6
    assert h.ip.src == "fe80::1"
    assert h.udp.payload == b"six"


def test_tcp_has_no_udp_slice(tcp_frame):
    h = dn.decode_frame(tcp_frame())
    assert h.ip is not None
    assert h.udp is None


def test_unknown_ethertype_is_not_an_error():
    frame = b"\x02" * 12 + struct.pack("!H", 0x0806) + b"\x00" * 28  # ARP
    assert dn.decode_frame(frame) == dn.DecodedHeaders()


@pytest.mark.parametrize("flags_hi, offset_lo", [
    (0x20, 0x00),  # first fragment: MF set, offset 0
    (0x20, 0x01),  # middle fragment
    (0x00, 0x01),  # last fragment: MF clear, offset non-zero
])
def test_fragment_has_no_udp_slice(udp_frame, flags_hi, offset_lo):
    frame = bytearray(udp_frame(payload=b"frag"))
    # IPv4 flags/fragment offset word (ethernet header is 14 bytes)
    frame[14 + 6] |= flags_hi
    frame[14 + 7] |= offset_lo
    h = dn.decode_frame(bytes(frame))
    assert h.ip.fragmented
    assert h.udp is None


@pytest.mark.parametrize("length", [0, 5, 13])
def test_short_ethernet_header(length):
    with pytest.raises(dn.FrameDecodeError, match="Ethernet II header truncated"):
        dn.decode_frame(b"\x00" * length)


def test_truncated_ipv4_header(udp_frame):
    frame = udp_frame()[: 14 + 12]
    with pytest.raises(dn.FrameDecodeError, match="IPv4 header truncated"):
        dn.decode_frame(frame)


def test_ipv4_total_length_beyond_capture(udp_frame):
    frame = udp_frame(payload=b"0123456789")[:-4]
    with pytest.raises(dn.FrameDecodeError, match="exceeds"):
        dn.decode_frame(frame)


def test_wrong_ip_version_for_ipv4_ethertype(udp_frame):
    frame = bytearray(udp_frame())
    frame[14] = 0x65
    with pytest.raises(dn.FrameDecodeError, match="IP version 6"):
        dn.decode_frame(bytes(frame))


def test_truncated_udp_header():
    ip = struct.pack("!BBHHHBBH4s4s", 0x45, 0, 24, 0, 0, 64, 17, 0, bytes([10, 0, 0, 1]), bytes([10, 0, 0, 2]))
    frame = b"\x02" * 12 + struct.pack("!H", 0x0800) + ip + b"\x07\xe0\x9c\x40"
    with pytest.raises(dn.FrameDecodeError, match="UDP header truncated"):
        dn.decode_frame(frame)
