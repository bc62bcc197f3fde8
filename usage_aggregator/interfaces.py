"""
本地网卡枚举

每轮扫描重新枚举所有非回环、非链路本地的 IPv4 网卡并计算其子网，不做持久化。
"""

import logging
import socket
from dataclasses import dataclass
from typing import List

import psutil

from .errors import ScanCycleError, ValidationError
from .subnet import SubnetInfo, calculate_subnet

logger = logging.getLogger(__name__)

LOOPBACK_PREFIX = "127."
LINK_LOCAL_PREFIX = "169.254."


@dataclass(frozen=True)
class NetworkInterface:
    """网卡信息"""
    name: str
    local_address: str
    netmask: str
    subnet: SubnetInfo


def get_local_networks() -> List[NetworkInterface]:
    """
    获取所有可扫描的 IPv4 网卡（跳过回环和链路本地地址）

    Raises:
        ScanCycleError: 无法枚举网卡
    """
    try:
        addrs = psutil.net_if_addrs()
    except Exception as e:
        raise ScanCycleError(f"Cannot enumerate network interfaces: {e}") from e

    networks = []
    for name, entries in addrs.items():
        for entry in entries:
            if entry.family != socket.AF_INET or not entry.netmask:
                continue
            # 回环和链路本地地址（169.254.x.x）上不会有客户端
            if entry.address.startswith(LOOPBACK_PREFIX) or entry.address.startswith(LINK_LOCAL_PREFIX):
                continue
            try:
                subnet = calculate_subnet(entry.address, entry.netmask)
            except ValidationError as e:
                logger.warning(f"Skipping interface {name}: {e}")
                continue
            networks.append(NetworkInterface(
                name=name,
                local_address=entry.address,
                netmask=entry.netmask,
                subnet=subnet,
            ))
    return networks
