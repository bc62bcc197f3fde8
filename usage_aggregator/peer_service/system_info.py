"""
本机系统信息采集

通过 psutil 获取主机名、平台、CPU、内存和 IPv4 地址，随 /latest 一起返回。
"""

import platform
import socket
import sys
from typing import Any, Dict, List

import psutil


def get_ip_addresses() -> List[Dict[str, str]]:
    """非回环 IPv4 地址"""
    addresses = []
    for name, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                addresses.append({"interface": name, "address": addr.address, "netmask": addr.netmask})
    return addresses


def get_memory_info() -> Dict[str, Any]:
    mem = psutil.virtual_memory()
    return {
        "total": mem.total,
        "used": mem.used,
        "available": mem.available,
        "usagePercent": round(mem.percent, 1),
    }


async def get_system_info() -> Dict[str, Any]:
    """
    采集系统信息

    Returns:
        {hostname, platform, release, arch, cpuCount, memory, ipAddresses}
    """
    return {
        "hostname": socket.gethostname(),
        "platform": sys.platform,
        "release": platform.release(),
        "arch": platform.machine(),
        "cpuCount": psutil.cpu_count(logical=True),
        "memory": get_memory_info(),
        "ipAddresses": get_ip_addresses(),
    }
