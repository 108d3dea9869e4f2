import struct

import pytest

from netwayste_codec import DecodeError, Opaque, Packet, decode


def _string(s: str) -> bytes:
    raw = s.encode("utf-8")
    return struct.pack("<Q", len(raw)) + raw


def test_get_status():
    pkt = decode(struct.pack("<IQ", 4, 42))
    assert pkt == Packet(kind="GetStatus", fields={"ping": 42})
    assert str(pkt) == "GetStatus(ping=42)"


def test_request_with_options_and_opaque_action():
    payload = (
        struct.pack("<IQ", 0, 7)
        + b"\x01" + struct.pack("<Q", 3)
        + b"\x01" + _string("c00k1e")
        + struct.pack("<I", 2) + b"\xaa\xbb"
    )
    pkt = decode(payload)
    assert pkt.kind == "Request"
    assert pkt.fields["sequence"] == 7
    assert pkt.fields["response_ack"] == 3
    assert pkt.fields["cookie"] == "c00k1e"
    assert pkt.fields["action"] == Opaque(variant=2, data=b"\xaa\xbb")
    assert str(pkt) == "Request(sequence=7, response_ack=3, cookie='c00k1e', action=<variant 2, 2 bytes>)"


def test_update_reply():
    payload = struct.pack("<I", 3) + _string("abc") + b"\x00" + b"\x01" + struct.pack("<Q", 9) + b"\x00"
    pkt = decode(payload)
    assert pkt.kind == "UpdateReply"
    assert pkt.fields == {"cookie": "abc", "last_chat_seq": None, "last_game_update_seq": 9, "last_full_gen": None}


def test_trailing_bytes_are_accepted():
    assert decode(struct.pack("<IQ", 4, 1) + b"junk").fields == {"ping": 1}


@pytest.mark.parametrize(
    "payload, needle",
    [
        (b"", "unexpected end of payload"),
        (struct.pack("<I", 6), "variant index"),
        (struct.pack("<I", 0xFFFFFFFF), "variant index"),
        (struct.pack("<I", 4) + b"\x01\x02", "ping.nonce"),
        (struct.pack("<IQ", 0, 1) + b"\x02", "invalid Option tag 2"),
        (struct.pack("<I", 3) + struct.pack("<Q", 2) + b"\xff\xfe", "invalid utf-8"),
    ],
)
def test_malformed_payloads(payload, needle):
    with pytest.raises(DecodeError) as ei:
        decode(payload)
    assert needle in str(ei.value)


def test_update_keeps_body_opaque():
    pkt = decode(struct.pack("<IQ", 2, 3) + b"\x00" * 10)
    assert pkt.fields == {"chat_count": 3, "body": Opaque(variant=None, data=b"\x00" * 10)}
    assert str(pkt) == "Update(chat_count=3, body=<10 bytes>)"
