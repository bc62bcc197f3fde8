"""
单元测试：本地网卡枚举
"""

import socket
from collections import namedtuple

import psutil
import pytest

from usage_aggregator.errors import ScanCycleError
from usage_aggregator.interfaces import get_local_networks

Addr = namedtuple("Addr", "family address netmask broadcast ptp")


def addr(address, netmask, family=socket.AF_INET):
    return Addr(family, address, netmask, None, None)


def test_skips_loopback_and_link_local(monkeypatch):
    monkeypatch.setattr(psutil, "net_if_addrs", lambda: {
        "lo": [addr("127.0.0.1", "255.0.0.0")],
        "eth0": [addr("192.168.1.20", "255.255.255.0"), addr("fe80::1", "ffff::", socket.AF_INET6)],
        "eth1": [addr("169.254.10.3", "255.255.0.0")],
        "wlan0": [addr("10.0.5.7", "255.255.255.0")],
    })
    networks = get_local_networks()
    assert [(n.name, n.local_address) for n in networks] == [("eth0", "192.168.1.20"), ("wlan0", "10.0.5.7")]
    assert networks[0].subnet.base_address == "192.168.1.0"


def test_skips_missing_or_invalid_netmask(monkeypatch):
    monkeypatch.setattr(psutil, "net_if_addrs", lambda: {
        "tun0": [addr("10.8.0.2", None)],
        "eth0": [addr("192.168.1.20", "255.0.255.0")],
    })
    assert get_local_networks() == []


def test_enumeration_failure(monkeypatch):
    def _fail():
        raise OSError("permission denied")

    monkeypatch.setattr(psutil, "net_if_addrs", _fail)
    with pytest.raises(ScanCycleError):
        get_local_networks()
