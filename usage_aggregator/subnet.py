"""
子网计算

由网卡地址 + 子网掩码推导网络地址、CIDR 前缀长度和逐段网络号。
逐段（octet）独立计算，纯函数，无 I/O。
"""

from dataclasses import dataclass
from typing import Iterator, List, Tuple

from .errors import ValidationError


@dataclass(frozen=True)
class SubnetInfo:
    """子网信息"""
    base_address: str
    prefix_length: int
    network_octets: Tuple[int, int, int, int]


def parse_octets(address: str) -> List[int]:
    """
    解析点分十进制地址

    Raises:
        ValidationError: 不是 4 段 0~255 的十进制数
    """
    if not isinstance(address, str):
        raise ValidationError(f"Address must be a string, got {type(address).__name__}")

    parts = address.strip().split(".")
    if len(parts) != 4:
        raise ValidationError(f"Malformed IPv4 address: {address!r}")

    octets = []
    for part in parts:
        # 只接受纯数字，拒绝 "+1"、" 1"、"0x1" 之类
        if not part.isdigit() or not part.isascii():
            raise ValidationError(f"Malformed IPv4 address: {address!r}")
        value = int(part)
        if value > 255:
            raise ValidationError(f"Octet out of range in {address!r}")
        octets.append(value)
    return octets


def _mask_bits(mask_octets: List[int], netmask: str) -> int:
    """统计掩码中 1 的个数，并校验掩码是否连续"""
    bits = "".join(format(octet, "08b") for octet in mask_octets)
    if "01" in bits:
        raise ValidationError(f"Non-contiguous netmask: {netmask!r}")
    return bits.count("1")


def calculate_subnet(address: str, netmask: str) -> SubnetInfo:
    """
    计算子网

    Args:
        address: 网卡地址，如 "192.168.1.100"
        netmask: 子网掩码，如 "255.255.255.0"

    Returns:
        SubnetInfo(base_address="192.168.1.0", prefix_length=24,
                   network_octets=(192, 168, 1, 0))
    """
    ip_octets = parse_octets(address)
    mask_octets = parse_octets(netmask)
    prefix_length = _mask_bits(mask_octets, netmask)

    network_octets = tuple(ip & mask for ip, mask in zip(ip_octets, mask_octets))

    return SubnetInfo(
        base_address=".".join(str(octet) for octet in network_octets),
        prefix_length=prefix_length,
        network_octets=network_octets,
    )


def is_in_subnet(ip: str, subnet: SubnetInfo) -> bool:
    """
    判断 IP 是否属于子网

    按 /24 处理：前三段与网络号相同即视为同一子网。非法 IP 返回 False。
    """
    try:
        ip_octets = parse_octets(ip)
    except ValidationError:
        return False
    return tuple(ip_octets[:3]) == tuple(subnet.network_octets[:3])


def host_addresses(subnet: SubnetInfo) -> Iterator[str]:
    """生成子网所在 /24 的主机地址 .1 ~ .254"""
    prefix = ".".join(str(octet) for octet in subnet.network_octets[:3])
    for host in range(1, 255):
        yield f"{prefix}.{host}"
