"""
ARP 表读取

不同平台的 ARP 表来源和输出格式不同，统一封装为 ArpTableReader，
启动时按平台选择实现，扫描逻辑本身与平台无关。

- Windows: `arp -a`       192.168.1.100    aa-bb-cc-dd-ee-ff    dynamic
- Linux:   /proc/net/arp  192.168.1.100  0x1  0x2  aa:bb:cc:dd:ee:ff  *  eth0
- Linux:   `arp -n`       192.168.1.100  ether  aa:bb:cc:dd:ee:ff  C  eth0
- macOS:   `arp -an`      ? (192.168.1.100) at aa:bb:cc:dd:ee:ff on en0 ifscope [ethernet]
"""

import asyncio
import logging
import platform
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ScanCycleError, ValidationError
from .subnet import parse_octets

logger = logging.getLogger(__name__)

PROC_NET_ARP = "/proc/net/arp"


def _dedupe_valid(candidates: List[str]) -> List[str]:
    """去重并过滤非法地址，保持原有顺序"""
    seen = set()
    result = []
    for ip in candidates:
        if ip in seen:
            continue
        try:
            parse_octets(ip)
        except ValidationError:
            continue
        seen.add(ip)
        result.append(ip)
    return result


class ArpTableReader(ABC):
    """ARP 表读取接口"""

    @abstractmethod
    async def read_raw(self) -> str:
        """读取原始 ARP 表文本"""

    @abstractmethod
    def parse(self, output: str) -> List[str]:
        """从原始文本中解析出 IP 列表"""

    async def read(self) -> List[str]:
        """读取并解析 ARP 表，返回去重后的 IP 列表"""
        return _dedupe_valid(self.parse(await self.read_raw()))


class CommandArpTableReader(ArpTableReader):
    """通过执行系统命令读取 ARP 表"""

    command: Sequence[str] = ()

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def read_raw(self) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ScanCycleError(f"ARP command unavailable: {' '.join(self.command)} ({e})") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ScanCycleError(f"ARP command timed out after {self.timeout}s") from e

        if proc.returncode != 0:
            raise ScanCycleError(
                f"ARP command failed (exit {proc.returncode}): "
                f"{stderr.decode(errors='ignore').strip()}"
            )
        return stdout.decode(errors="ignore")


class WindowsArpTableReader(CommandArpTableReader):
    """Windows: arp -a"""

    command = ("arp", "-a")
    _pattern = re.compile(r"(\d+\.\d+\.\d+\.\d+)\s+([0-9a-fA-F]{2}(?:-[0-9a-fA-F]{2}){5})\s+")

    def parse(self, output: str) -> List[str]:
        hosts = []
        for line in output.splitlines():
            match = self._pattern.search(line)
            if match:
                hosts.append(match.group(1))
        return hosts


class PosixArpTableReader(CommandArpTableReader):
    """Linux 等：arp -n（第一列为 IP）"""

    command = ("arp", "-n")
    _pattern = re.compile(r"^\s*(\d+\.\d+\.\d+\.\d+)\s+")

    def parse(self, output: str) -> List[str]:
        hosts = []
        for line in output.splitlines():
            match = self._pattern.match(line)
            if match:
                hosts.append(match.group(1))
        return hosts


class BsdArpTableReader(CommandArpTableReader):
    """macOS / BSD: arp -an（IP 在括号内）"""

    command = ("arp", "-an")
    _pattern = re.compile(r"\((\d+\.\d+\.\d+\.\d+)\)")

    def parse(self, output: str) -> List[str]:
        hosts = []
        for line in output.splitlines():
            # 未解析的条目（incomplete）不会有可用的客户端
            if "incomplete" in line:
                continue
            match = self._pattern.search(line)
            if match:
                hosts.append(match.group(1))
        return hosts


class ProcNetArpTableReader(ArpTableReader):
    """Linux: 直接读取 /proc/net/arp，不依赖 net-tools"""

    def __init__(self, path: str = PROC_NET_ARP):
        self.path = Path(path)

    async def read_raw(self) -> str:
        try:
            return await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except OSError as e:
            raise ScanCycleError(f"Cannot read {self.path}: {e}") from e

    def parse(self, output: str) -> List[str]:
        hosts = []
        for line in output.splitlines()[1:]:
            fields = line.split()
            # flags 0x0 表示条目不完整
            if len(fields) >= 3 and fields[2] != "0x0":
                hosts.append(fields[0])
        return hosts


def get_arp_reader(system: Optional[str] = None, timeout: float = 10.0) -> ArpTableReader:
    """按平台选择 ARP 表读取实现"""
    system = (system or platform.system()).lower()

    if system == "windows":
        return WindowsArpTableReader(timeout=timeout)
    if system == "darwin" or system.endswith("bsd"):
        return BsdArpTableReader(timeout=timeout)
    if system == "linux" and Path(PROC_NET_ARP).exists():
        return ProcNetArpTableReader()
    return PosixArpTableReader(timeout=timeout)
