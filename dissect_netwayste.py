#!/usr/bin/env python3
"""
dissect_netwayste.py

Live Netwayste traffic dissector: BPF/pcap capture + UDP decapsulation + decode.

Key features:
- Capture via scapy/libpcap on a named interface (or the system default) with a
  BPF filter. Default filter is "udp port <port>"; a custom filter replaces it.
- The device must be Ethernet (DLT_EN10MB). Every filter is dry-compiled against
  a dead (non-live) pcap context of the device link type before it is installed.
  An invalid filter never reaches the live socket.
- Frames are decapsulated by hand: Ethernet II (+ VLAN tags) -> IPv4/IPv6 -> UDP.
- Only IPv4/UDP datagrams with the Netwayste port on either side are decoded.
- Matched packets are logged one per line, colorized per traffic source.

Noise control:
- Non-IPv4, non-UDP and off-port traffic is skipped silently.
- Malformed frames and payloads that do not decode are logged (ERROR) only with
  --verbose. Arbitrary UDP traffic can share the port; those are not failures.

Colors:
- Each new source key (ip, or ip+port) takes the next palette color in
  round-robin order. Known keys keep their color for the whole run.

Shutdown:
- Runs until the capture device fails (exit 1) or Ctrl+C (exit 130).
"""

from __future__ import annotations

import argparse
import enum
import ipaddress
import json
import logging
import os
import re
import struct
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import netwayste_codec
from netwayste_codec import DEFAULT_PORT, DecodeError

# --- Scapy / libpcap ----------------------------------------------------------
try:
    from scapy.all import conf, get_if_list  # type: ignore
    from scapy.arch.common import compile_filter  # type: ignore
    from scapy.data import ARPHRD_TO_DLT, DLT_EN10MB, MTU  # type: ignore
    from scapy.error import Scapy_Exception  # type: ignore
    from scapy.interfaces import resolve_iface  # type: ignore
except Exception as e:  # pragma: no cover
    raise SystemExit(
        "Missing scapy. Install with:\n"
        "  pip install scapy\n"
        f"Original error: {e!r}"
    ) from e


LOGGER_NAME = "dissect_netwayste"

# Frames are decoded as Ethernet II; only devices of this link type are captured on.
LINKTYPE = DLT_EN10MB


# =============================================================================
# Errors
# =============================================================================

class SetupError(Exception):
    """Fatal at startup: the tool cannot capture correctly."""


class ConfigError(SetupError):
    pass


class DeviceError(SetupError):
    pass


class FilterError(SetupError):
    pass


class CaptureError(Exception):
    """The capture backend stopped yielding frames."""


class FrameDecodeError(Exception):
    """A frame is structurally malformed (truncated or inconsistent headers)."""


# =============================================================================
# Small utilities
# =============================================================================

def get_path(d: Mapping[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = d
    for part in path.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return default
        cur = cur[part]
    return cur


def parse_level(s: Any, default: int) -> int:
    if not s:
        return default
    level = getattr(logging, str(s).strip().upper(), None)
    return level if isinstance(level, int) else default


def fmt_payload(data: bytes) -> str:
    """Uppercase hex octets separated by spaces, e.g. "04 00 00 00"."""
    return data.hex(" ").upper()


def get_section(d: Mapping[str, Any], path: str) -> Mapping[str, Any]:
    """Object at `path`, {} when absent; ConfigError when something else is there."""
    cur: Mapping[str, Any] = d
    walked = []
    for part in path.split("."):
        walked.append(part)
        nxt = cur.get(part)
        if nxt is None:
            return {}
        if not isinstance(nxt, Mapping):
            raise ConfigError(f"Config section '{'.'.join(walked)}' must be an object, got {type(nxt).__name__}")
        cur = nxt
    return cur


def parse_bool(v: Any, what: str) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().lower() in ("true", "false"):
        return v.strip().lower() == "true"
    raise ConfigError(f"{what} must be true or false, got {v!r}")


# =============================================================================
# “json-ish” config loader (unquoted keys, comments, trailing commas)
# =============================================================================

_KEY_RE = re.compile(r'(?m)(^|\s|[{,])([A-Za-z_][A-Za-z0-9_-]*)(\s*):')
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_LINE_COMMENT_RE = re.compile(r"(?m)^\s*(//|#).*$")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


def normalize_jsonish(text: str) -> str:
    text = _BLOCK_COMMENT_RE.sub("", text)
    text = _LINE_COMMENT_RE.sub("", text)
    text = _KEY_RE.sub(lambda m: f'{m.group(1)}"{m.group(2)}"{m.group(3)}:', text)
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def load_config(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    try:
        cfg = json.loads(raw)
    except ValueError:
        norm = normalize_jsonish(raw)
        try:
            cfg = json.loads(norm)
        except ValueError as e:
            raise ConfigError(f"Config parse error for {path}:\n{e}\n\nNormalized text:\n{norm}") from e

    if not isinstance(cfg, dict):
        raise ConfigError(f"Config {path} must hold an object at the top level")
    return cfg


# =============================================================================
# Capture configuration
# =============================================================================

class ColorMode(enum.Enum):
    BY_ADDRESS_AND_PORT = "ip-port"
    BY_ADDRESS_ONLY = "ip"
    DISABLED = "none"


@dataclass(frozen=True)
class CaptureConfig:
    interface: Optional[str] = None
    port: int = DEFAULT_PORT
    custom_filter: Optional[str] = None
    verbose: bool = False
    color_mode: ColorMode = ColorMode.BY_ADDRESS_AND_PORT

    @classmethod
    def from_sources(
        cls,
        cfg: Mapping[str, Any],
        args: argparse.Namespace,
        env: Optional[Mapping[str, str]] = None,
    ) -> "CaptureConfig":
        """CLI flags win over the config file, which wins over defaults."""
        env = os.environ if env is None else env
        cap = get_section(cfg, "capture")
        out = get_section(cfg, "output")

        iface = args.interface if args.interface is not None else cap.get("iface")
        iface = str(iface).strip() if iface is not None else ""

        port_raw = args.port if args.port is not None else cap.get("port", DEFAULT_PORT)
        try:
            port = int(port_raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid port {port_raw!r}") from e
        if not 0 <= port <= 65535:
            raise ConfigError(f"Port {port} is outside 0-65535")

        custom = args.filter if args.filter is not None else cap.get("bpf-filter")
        custom = str(custom).strip() if custom is not None else ""

        verbose = args.verbose if args.verbose is not None else parse_bool(out.get("verbose", False), "output.verbose")

        color_raw = args.color if args.color is not None else out.get("color")
        if color_raw is None:
            color_mode = ColorMode.DISABLED if "NO_COLOR" in env else ColorMode.BY_ADDRESS_AND_PORT
        else:
            try:
                color_mode = ColorMode(str(color_raw).strip().lower())
            except ValueError as e:
                choices = ", ".join(m.value for m in ColorMode)
                raise ConfigError(f"Unknown color mode {color_raw!r} (expected one of: {choices})") from e

        return cls(
            interface=iface or None,
            port=port,
            custom_filter=custom or None,
            verbose=verbose,
            color_mode=color_mode,
        )


# =============================================================================
# Filter compiler
# =============================================================================

def default_filter(port: int) -> str:
    return f"udp port {port}"


def validate_filter(expr: str, linktype: int = LINKTYPE) -> None:
    """Dry-compile `expr` against a dead pcap context of `linktype`."""
    try:
        compile_filter(expr, linktype=linktype)
    except ImportError as e:
        # no libpcap: the expression cannot be checked, so it must not be used
        raise FilterError(f"Cannot validate capture filter '{expr}': {e}") from e
    except Scapy_Exception as e:
        raise FilterError(f"Invalid capture filter '{expr}': {e}") from e


def build_filter(port: int, custom: Optional[str] = None, linktype: int = LINKTYPE) -> str:
    """Return the validated filter to install: `custom` if given, else "udp port <port>"."""
    expr = custom.strip() if custom and custom.strip() else default_filter(port)
    validate_filter(expr, linktype)
    return expr


# =============================================================================
# Capture session
# =============================================================================

@dataclass(frozen=True)
class RawFrame:
    data: bytes
    ts: float


def list_devices() -> List[str]:
    return [str(name) for name in get_if_list()]


def default_device() -> Optional[str]:
    iface = conf.iface
    if not iface:
        return None
    return str(getattr(iface, "network_name", iface)) or None


def open_live(iface: str, bpf: str) -> Any:
    # Native L2 listen sockets hand over each frame as it arrives (no batching).
    return conf.L2listen(iface=iface, filter=bpf)


def resolve_device(requested: Optional[str]) -> str:
    if requested:
        try:
            names = list_devices()
        except (OSError, Scapy_Exception) as e:
            raise DeviceError(f"Could not access network interface list: {e}") from e
        if requested not in names:
            raise DeviceError(
                f"Failed to find '{requested}' in network interface list "
                f"({', '.join(names) if names else 'no devices'})"
            )
        return requested

    try:
        name = default_device()
    except (OSError, Scapy_Exception) as e:
        raise DeviceError(f"Failed to look up default device: {e}") from e
    if not name:
        raise DeviceError("Failed to look up default device: no capture device available")
    return name


def device_linktype(name: str) -> int:
    """DLT of `name`, guessed from its ARPHRD type the way compile_filter does."""
    try:
        arphrd = getattr(resolve_iface(name), "type", None)
    except (OSError, Scapy_Exception) as e:
        raise DeviceError(f"Could not query link-layer type of '{name}': {e}") from e
    dlt = ARPHRD_TO_DLT.get(arphrd) if arphrd is not None else None
    if dlt is None:
        raise DeviceError(f"Cannot determine the link-layer type of '{name}' (ARPHRD {arphrd})")
    return dlt


def require_ethernet(name: str) -> int:
    dlt = device_linktype(name)
    if dlt != LINKTYPE:
        raise DeviceError(
            f"Device '{name}' has link-layer type {dlt}; only Ethernet (DLT_EN10MB) frames can be decoded"
        )
    return dlt


class CaptureSession:
    """Owns the live capture socket for the lifetime of the process."""

    def __init__(self, *, device: str, bpf: str, sock: Any, log: logging.Logger) -> None:
        self.device = device
        self.bpf = bpf
        self.log = log
        self._sock = sock

    @classmethod
    def open(cls, *, device: str, bpf: str, log: logging.Logger) -> "CaptureSession":
        # scapy reports a rejected filter as Scapy_Exception, a missing libpcap as ImportError
        try:
            sock = open_live(device, bpf)
        except (ImportError, Scapy_Exception) as e:
            raise FilterError(f"Failed to install filter '{bpf}' on '{device}': {e}") from e
        except OSError as e:
            raise SetupError(f"Failed to open '{device}' for live capture: {e}") from e

        log.debug("live socket %s opened on %s", type(sock).__name__, device)
        log.info("Listening to device '%s' with filter '%s'", device, bpf)
        return cls(device=device, bpf=bpf, sock=sock, log=log)

    def next_frame(self) -> RawFrame:
        """Block until the next frame; CaptureError when the device stops delivering."""
        while True:
            try:
                _cls, data, ts = self._sock.recv_raw(MTU)
            except (OSError, Scapy_Exception) as e:
                raise CaptureError(str(e) or type(e).__name__) from e
            if data is None:
                # read timeout on pcap-backed sockets, or a frame the socket dropped
                continue
            return RawFrame(data=bytes(data), ts=float(ts) if ts is not None else time.time())

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> "CaptureSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# =============================================================================
# Frame decoder
# =============================================================================

ETH_HDR_LEN = 14
ETH_P_IP = 0x0800
ETH_P_IPV6 = 0x86DD
VLAN_TPIDS = (0x8100, 0x88A8, 0x9100)
MAX_VLAN_TAGS = 2

IPV4_MIN_HDR = 20
IPV6_HDR_LEN = 40
UDP_HDR_LEN = 8
IPPROTO_UDP = 17


@dataclass(frozen=True)
class NetSlice:
    version: int
    src: str
    dst: str
    proto: int
    payload: bytes
    fragmented: bool = False


@dataclass(frozen=True)
class UdpSlice:
    src_port: int
    dst_port: int
    payload: bytes


@dataclass(frozen=True)
class DecodedHeaders:
    ip: Optional[NetSlice] = None
    udp: Optional[UdpSlice] = None


def _ip4_to_str(b: bytes) -> str:
    return ".".join(str(x) for x in b)


def parse_ethernet(frame: bytes) -> Tuple[int, bytes]:
    """Return (ethertype, payload) after the Ethernet II header and any VLAN tags."""
    if len(frame) < ETH_HDR_LEN:
        raise FrameDecodeError(f"Ethernet II header truncated ({len(frame)} of {ETH_HDR_LEN} bytes)")
    eth_type = struct.unpack("!H", frame[12:14])[0]
    rest = frame[ETH_HDR_LEN:]

    tags = 0
    while eth_type in VLAN_TPIDS and tags < MAX_VLAN_TAGS:
        if len(rest) < 4:
            raise FrameDecodeError(f"VLAN tag truncated ({len(rest)} of 4 bytes)")
        eth_type = struct.unpack("!H", rest[2:4])[0]
        rest = rest[4:]
        tags += 1
    return eth_type, rest


def parse_ipv4(pkt: bytes) -> NetSlice:
    if len(pkt) < IPV4_MIN_HDR:
        raise FrameDecodeError(f"IPv4 header truncated ({len(pkt)} of {IPV4_MIN_HDR} bytes)")
    ver = pkt[0] >> 4
    if ver != 4:
        raise FrameDecodeError(f"IPv4 ethertype carries IP version {ver}")
    ihl = (pkt[0] & 0x0F) * 4
    if ihl < IPV4_MIN_HDR:
        raise FrameDecodeError(f"IPv4 header length {ihl} is below {IPV4_MIN_HDR}")
    if len(pkt) < ihl:
        raise FrameDecodeError(f"IPv4 header truncated ({len(pkt)} of {ihl} bytes)")

    total_len, flags_frag = struct.unpack("!H2xH", pkt[2:8])
    if total_len == 0:
        # outgoing frames captured before segmentation offload
        total_len = len(pkt)
    if total_len < ihl:
        raise FrameDecodeError(f"IPv4 total length {total_len} is smaller than its header ({ihl})")
    if total_len > len(pkt):
        raise FrameDecodeError(f"IPv4 total length {total_len} exceeds the {len(pkt)} captured bytes")

    more_fragments = bool(flags_frag & 0x2000)
    frag_offset = flags_frag & 0x1FFF
    return NetSlice(
        version=4,
        src=_ip4_to_str(pkt[12:16]),
        dst=_ip4_to_str(pkt[16:20]),
        proto=pkt[9],
        payload=pkt[ihl:total_len],
        fragmented=more_fragments or frag_offset != 0,
    )


def parse_ipv6(pkt: bytes) -> NetSlice:
    if len(pkt) < IPV6_HDR_LEN:
        raise FrameDecodeError(f"IPv6 header truncated ({len(pkt)} of {IPV6_HDR_LEN} bytes)")
    ver = pkt[0] >> 4
    if ver != 6:
        raise FrameDecodeError(f"IPv6 ethertype carries IP version {ver}")
    payload_len = struct.unpack("!H", pkt[4:6])[0]
    end = IPV6_HDR_LEN + payload_len if payload_len else len(pkt)
    if end > len(pkt):
        raise FrameDecodeError(f"IPv6 payload length {payload_len} exceeds the {len(pkt) - IPV6_HDR_LEN} captured bytes")
    return NetSlice(
        version=6,
        src=str(ipaddress.IPv6Address(pkt[8:24])),
        dst=str(ipaddress.IPv6Address(pkt[24:40])),
        proto=pkt[6],
        payload=pkt[IPV6_HDR_LEN:end],
    )


def parse_udp(seg: bytes) -> UdpSlice:
    if len(seg) < UDP_HDR_LEN:
        raise FrameDecodeError(f"UDP header truncated ({len(seg)} of {UDP_HDR_LEN} bytes)")
    src_port, dst_port, length = struct.unpack("!HHH", seg[:6])
    end = length if UDP_HDR_LEN <= length <= len(seg) else len(seg)
    return UdpSlice(src_port=src_port, dst_port=dst_port, payload=seg[UDP_HDR_LEN:end])


def decode_frame(frame: bytes) -> DecodedHeaders:
    """
    Decapsulate an Ethernet II frame.
    Unknown ethertypes and non-UDP payloads are not errors: the slice is simply None.
    """
    eth_type, rest = parse_ethernet(frame)
    if eth_type == ETH_P_IP:
        ip = parse_ipv4(rest)
    elif eth_type == ETH_P_IPV6:
        ip = parse_ipv6(rest)
    else:
        return DecodedHeaders()

    if ip.proto != IPPROTO_UDP or ip.fragmented:
        return DecodedHeaders(ip=ip)
    return DecodedHeaders(ip=ip, udp=parse_udp(ip.payload))


# =============================================================================
# Protocol matcher
# =============================================================================

@dataclass(frozen=True)
class Matched:
    packet: Any
    src_ip: str
    src_port: int


@dataclass(frozen=True)
class WrongProtocolOrPort:
    reason: str


@dataclass(frozen=True)
class MalformedFrame:
    reason: str


@dataclass(frozen=True)
class DecodeFailed:
    error: str
    payload: bytes
    src_ip: str
    src_port: int


DecodeOutcome = Union[Matched, WrongProtocolOrPort, MalformedFrame, DecodeFailed]


class ProtocolMatcher:
    """
    Keeps IPv4/UDP datagrams with the target port on either side, then decodes them.
    `decode` takes the UDP payload and raises DecodeError on failure.
    """

    def __init__(self, port: int, decode: Callable[[bytes], Any] = netwayste_codec.decode) -> None:
        self.port = port
        self.decode = decode

    def match(self, headers: DecodedHeaders) -> DecodeOutcome:
        udp = headers.udp
        if udp is None:
            return WrongProtocolOrPort("not UDP")
        # either direction: the server side is not known up front
        if udp.src_port != self.port and udp.dst_port != self.port:
            return WrongProtocolOrPort(f"ports {udp.src_port}->{udp.dst_port}")
        ip = headers.ip
        if ip is None or ip.version != 4:
            return WrongProtocolOrPort("not IPv4")

        try:
            packet = self.decode(udp.payload)
        except DecodeError as e:
            return DecodeFailed(error=str(e), payload=udp.payload, src_ip=ip.src, src_port=udp.src_port)
        return Matched(packet=packet, src_ip=ip.src, src_port=udp.src_port)


def process_frame(frame: RawFrame, matcher: ProtocolMatcher) -> DecodeOutcome:
    try:
        headers = decode_frame(frame.data)
    except FrameDecodeError as e:
        return MalformedFrame(str(e))
    return matcher.match(headers)


# =============================================================================
# Color assignment
# =============================================================================

@dataclass(frozen=True)
class Color:
    name: str
    code: str  # ANSI SGR parameter


CYAN = Color("cyan", "36")
YELLOW = Color("yellow", "33")
RED = Color("red", "31")
GREEN = Color("green", "32")
MAGENTA = Color("magenta", "35")
BLUE = Color("blue", "34")
BRIGHT_CYAN = Color("bright-cyan", "96")
BRIGHT_YELLOW = Color("bright-yellow", "93")
BRIGHT_RED = Color("bright-red", "91")
BRIGHT_GREEN = Color("bright-green", "92")
BRIGHT_MAGENTA = Color("bright-magenta", "95")
BRIGHT_BLUE = Color("bright-blue", "94")

# Neighbours differ in hue so consecutive new sources are easy to tell apart.
PALETTE: Tuple[Color, ...] = (
    CYAN, YELLOW, RED, GREEN, MAGENTA, BLUE,
    BRIGHT_CYAN, BRIGHT_YELLOW, BRIGHT_RED, BRIGHT_GREEN, BRIGHT_MAGENTA, BRIGHT_BLUE,
)

SourceKey = Tuple[Any, ...]


def source_key(mode: ColorMode, src_ip: str, src_port: int) -> Optional[SourceKey]:
    if mode is ColorMode.BY_ADDRESS_AND_PORT:
        return (src_ip, src_port)
    if mode is ColorMode.BY_ADDRESS_ONLY:
        return (src_ip,)
    return None


def colorize(s: str, color: Color) -> str:
    return f"\x1b[{color.code}m{s}\x1b[0m"


@dataclass
class ColorManager:
    """
    Round-robin color table. A new key takes the palette color under the cursor
    and the cursor advances (wrapping); a known key always gets its first color.
    Entries are never evicted.
    """
    palette: Tuple[Color, ...] = PALETTE
    _next: int = 0
    _map: Dict[SourceKey, Color] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.palette:
            raise ValueError("color palette must not be empty")

    def color_for(self, key: SourceKey) -> Color:
        color = self._map.get(key)
        if color is not None:
            return color
        color = self.palette[self._next]
        self._next = (self._next + 1) % len(self.palette)
        self._map[key] = color
        return color

    def assignments(self) -> Dict[SourceKey, Color]:
        return dict(self._map)

    def __len__(self) -> int:
        return len(self._map)


# =============================================================================
# Reporter
# =============================================================================

ADDR_WIDTH = 15
PORT_WIDTH = 5


def format_match(m: Matched) -> str:
    return f"{m.src_ip:>{ADDR_WIDTH}}:{m.src_port:<{PORT_WIDTH}} {m.packet}"


def format_decode_failure(d: DecodeFailed) -> str:
    return (
        f"Failed de-serialization from {d.src_ip}:{d.src_port}: '{d.error}' "
        f"packet contents ({len(d.payload)} bytes): [{fmt_payload(d.payload)}]"
    )


def format_malformed(m: MalformedFrame) -> str:
    return f"Failed EthernetII packet de-serialization: '{m.reason}'"


class Reporter:
    """The only place per-frame output happens."""

    def __init__(
        self,
        *,
        log: logging.Logger,
        verbose: bool,
        color_mode: ColorMode,
        colors: Optional[ColorManager] = None,
    ) -> None:
        self.log = log
        self.verbose = verbose
        self.color_mode = color_mode
        if color_mode is ColorMode.DISABLED:
            self.colors = None
        else:
            self.colors = colors if colors is not None else ColorManager()

    def report(self, outcome: DecodeOutcome) -> None:
        if isinstance(outcome, Matched):
            line = format_match(outcome)
            if self.colors is not None:
                key = source_key(self.color_mode, outcome.src_ip, outcome.src_port)
                line = colorize(line, self.colors.color_for(key))
            self.log.info("%s", line)
        elif isinstance(outcome, DecodeFailed):
            if self.verbose:
                self.log.error("%s", format_decode_failure(outcome))
        elif isinstance(outcome, MalformedFrame):
            if self.verbose:
                self.log.error("%s", format_malformed(outcome))
        # WrongProtocolOrPort: not ours, nothing to say


# =============================================================================
# Capture loop
# =============================================================================

class Dissector:
    """Single-threaded pull loop: next frame -> decode -> match -> report."""

    def __init__(
        self,
        *,
        session: CaptureSession,
        matcher: ProtocolMatcher,
        reporter: Reporter,
        log: logging.Logger,
    ) -> None:
        self.session = session
        self.matcher = matcher
        self.reporter = reporter
        self.log = log

    def run(self) -> int:
        while True:
            try:
                frame = self.session.next_frame()
            except CaptureError as e:
                self.log.error("Capture on '%s' stopped: %s", self.session.device, e)
                return 1
            self.reporter.report(process_frame(frame, self.matcher))


# =============================================================================
# Logging setup from config (+ optional CLI override)
# =============================================================================

def setup_logging_from_config(cfg: Mapping[str, Any], cli_level: Optional[str]) -> logging.Logger:
    log = logging.getLogger(LOGGER_NAME)
    log.propagate = False
    log.handlers.clear()
    log.setLevel(logging.DEBUG)  # handlers gate output

    console_cfg = get_section(cfg, "logging.console")
    file_cfg = get_section(cfg, "logging.file")

    console_level = parse_level(console_cfg.get("verbosity"), logging.INFO)
    if cli_level:
        console_level = parse_level(cli_level, console_level)

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    ch = logging.StreamHandler()
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    log.addHandler(ch)

    if parse_bool(file_cfg.get("enabled", False), "logging.file.enabled"):
        path = str(file_cfg.get("path", "dissect_netwayste.log"))
        try:
            fh = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot open log file {path}: {e}") from e
        fh.setLevel(parse_level(file_cfg.get("verbosity"), logging.INFO))
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log


# =============================================================================
# CLI + entrypoint
# =============================================================================

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Live Netwayste traffic dissector (BPF capture + UDP decode)")
    p.add_argument("-v", "--verbose", action="store_true", default=None,
                   help="Log all failed de-serialization attempts")
    p.add_argument("-i", "--interface", default=None, help="Capture device (default: system default device)")
    p.add_argument("-p", "--port", type=int, default=None, help=f"Netwayste UDP port (default: {DEFAULT_PORT})")
    p.add_argument("-f", "--filter", default=None,
                   help="Custom BPF capture filter (replaces 'udp port <port>')")
    p.add_argument("-c", "--color", default=None, choices=[m.value for m in ColorMode],
                   help="Color lines by source ip+port, by ip only, or not at all (default: ip-port)")
    p.add_argument("--config", default=None, help="Path to JSON (or json-ish) config file")
    p.add_argument("--log-level", default=None, help="Optional console override: DEBUG/INFO/WARNING/ERROR")
    p.add_argument("--list-interfaces", action="store_true", help="Print capture devices and exit")
    return p


def run(args: argparse.Namespace) -> int:
    if args.list_interfaces:
        try:
            names = list_devices()
        except (OSError, Scapy_Exception) as e:
            raise SystemExit(f"Could not access network interface list: {e}") from e
        for name in names:
            print(name)
        return 0

    try:
        cfg = load_config(args.config) if args.config else {}
        log = setup_logging_from_config(cfg, args.log_level)
        config = CaptureConfig.from_sources(cfg, args)
        device = resolve_device(config.interface)
        linktype = require_ethernet(device)
        bpf = build_filter(config.port, config.custom_filter, linktype)
        log.debug("capture filter '%s' validated for linktype %d", bpf, linktype)
        session = CaptureSession.open(device=device, bpf=bpf, log=log)
    except SetupError as e:
        raise SystemExit(f"dissect-netwayste: {e}") from e

    reporter = Reporter(log=log, verbose=config.verbose, color_mode=config.color_mode)
    with session:
        return Dissector(
            session=session,
            matcher=ProtocolMatcher(config.port),
            reporter=reporter,
            log=log,
        ).run()


def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)
    try:
        rc = run(args)
    except KeyboardInterrupt:
        rc = 130
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
