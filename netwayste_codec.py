#!/usr/bin/env python3
"""
netwayste_codec.py

Decoder for Netwayste datagrams (bincode-serialized `Packet` values).

Wire format (bincode, default options):
  - integers are fixed width, little-endian
  - enum variant index is a u32
  - Option<T> is a u8 tag (0 = None, 1 = Some) followed by T
  - String / Vec are a u64 length followed by the elements

Only the leading scalar fields of each variant are decoded by name. Nested
structured fields (actions, response codes, universe updates, ...) are kept as
an opaque tail so a newer peer never makes an otherwise valid datagram fail.
Trailing bytes are accepted, like bincode's own deserializer.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

DEFAULT_PORT = 2016


class DecodeError(Exception):
    """Payload is not a Netwayste packet."""


# =============================================================================
# bincode reader
# =============================================================================

class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.off = 0

    def _take(self, n: int, what: str) -> bytes:
        if self.off + n > len(self.data):
            raise DecodeError(
                f"unexpected end of payload reading {what} "
                f"(need {n} bytes at offset {self.off}, have {len(self.data) - self.off})"
            )
        b = self.data[self.off:self.off + n]
        self.off += n
        return b

    def u8(self, what: str) -> int:
        return self._take(1, what)[0]

    def u32(self, what: str) -> int:
        return struct.unpack("<I", self._take(4, what))[0]

    def u64(self, what: str) -> int:
        return struct.unpack("<Q", self._take(8, what))[0]

    def string(self, what: str) -> str:
        n = self.u64(what + " length")
        raw = self._take(n, what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid utf-8 in {what}: {e}") from e

    def option(self, what: str, inner: Callable[[str], Any]) -> Any:
        tag = self.u8(what + " tag")
        if tag == 0:
            return None
        if tag == 1:
            return inner(what)
        raise DecodeError(f"invalid Option tag {tag} for {what}")

    def rest(self) -> bytes:
        b = self.data[self.off:]
        self.off = len(self.data)
        return b


@dataclass(frozen=True)
class Opaque:
    """A nested field kept undecoded: its enum variant index (if any) and bytes."""
    variant: Optional[int]
    data: bytes

    def __str__(self) -> str:
        if self.variant is None:
            return f"<{len(self.data)} bytes>"
        return f"<variant {self.variant}, {len(self.data)} bytes>"


def _opaque_enum(r: _Reader, what: str) -> Opaque:
    variant = r.u32(what + " variant")
    return Opaque(variant=variant, data=r.rest())


# =============================================================================
# Packet model
# =============================================================================

@dataclass
class Packet:
    kind: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"{k}={_fmt_value(v)}" for k, v in self.fields.items()]
        return f"{self.kind}({', '.join(parts)})"


def _fmt_value(v: Any) -> str:
    if isinstance(v, str):
        return repr(v)
    return str(v)


def _request(r: _Reader) -> Dict[str, Any]:
    return {
        "sequence": r.u64("sequence"),
        "response_ack": r.option("response_ack", r.u64),
        "cookie": r.option("cookie", r.string),
        "action": _opaque_enum(r, "action"),
    }


def _response(r: _Reader) -> Dict[str, Any]:
    return {
        "sequence": r.u64("sequence"),
        "request_ack": r.option("request_ack", r.u64),
        "code": _opaque_enum(r, "code"),
    }


def _update(r: _Reader) -> Dict[str, Any]:
    # chats are not decoded; their count is enough to follow the stream
    return {
        "chat_count": r.u64("chats length"),
        "body": Opaque(variant=None, data=r.rest()),
    }


def _update_reply(r: _Reader) -> Dict[str, Any]:
    return {
        "cookie": r.string("cookie"),
        "last_chat_seq": r.option("last_chat_seq", r.u64),
        "last_game_update_seq": r.option("last_game_update_seq", r.u64),
        "last_full_gen": r.option("last_full_gen", r.u64),
    }


def _get_status(r: _Reader) -> Dict[str, Any]:
    return {"ping": r.u64("ping.nonce")}


def _status(r: _Reader) -> Dict[str, Any]:
    out: Dict[str, Any] = {"pong": r.u64("pong.nonce")}
    tail = r.rest()
    if tail:
        out["info"] = Opaque(variant=None, data=tail)
    return out


# Variant order is the declaration order of the Packet enum.
VARIANTS: List[Tuple[str, Callable[[_Reader], Dict[str, Any]]]] = [
    ("Request", _request),
    ("Response", _response),
    ("Update", _update),
    ("UpdateReply", _update_reply),
    ("GetStatus", _get_status),
    ("Status", _status),
]


def decode(payload: bytes) -> Packet:
    """Decode one UDP payload; raises DecodeError when it is not a Netwayste packet."""
    r = _Reader(bytes(payload))
    idx = r.u32("packet variant")
    if idx >= len(VARIANTS):
        raise DecodeError(f"invalid value: integer `{idx}`, expected variant index 0 <= i < {len(VARIANTS)}")
    kind, parse = VARIANTS[idx]
    return Packet(kind=kind, fields=parse(r))
