import logging

import pytest
from scapy.layers.inet import IP, TCP, UDP
from scapy.layers.inet6 import IPv6
from scapy.layers.l2 import Dot1Q, Ether
from scapy.packet import Raw

SRC_MAC = "02:00:00:00:00:01"
DST_MAC = "02:00:00:00:00:02"


@pytest.fixture
def udp_frame():
    def _build(src="10.0.0.1", sport=2016, dst="10.0.0.2", dport=40000, payload=b"", vlan=None, v6=False):
        l2 = Ether(src=SRC_MAC, dst=DST_MAC)
        if vlan is not None:
            l2 = l2 / Dot1Q(vlan=vlan)
        l3 = IPv6(src=src, dst=dst) if v6 else IP(src=src, dst=dst)
        return bytes(l2 / l3 / UDP(sport=sport, dport=dport) / Raw(load=payload))
    return _build


@pytest.fixture
def tcp_frame():
    def _build(src="10.0.0.1", sport=2016, dst="10.0.0.2", dport=40000, payload=b"x"):
        return bytes(Ether(src=SRC_MAC, dst=DST_MAC) / IP(src=src, dst=dst) / TCP(sport=sport, dport=dport) / Raw(load=payload))
    return _build


@pytest.fixture
def log(caplog):
    caplog.set_level(logging.DEBUG, logger="tests.dissect")
    return logging.getLogger("tests.dissect")
