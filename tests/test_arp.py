"""
单元测试：ARP 表解析
"""

import pytest

from usage_aggregator.arp import (
    BsdArpTableReader,
    CommandArpTableReader,
    PosixArpTableReader,
    ProcNetArpTableReader,
    WindowsArpTableReader,
    get_arp_reader,
)
from usage_aggregator.errors import ScanCycleError

WINDOWS_OUTPUT = """
Interface: 192.168.1.100 --- 0xb
  Internet Address      Physical Address      Type
  192.168.1.1           aa-bb-cc-dd-ee-01     dynamic
  192.168.1.50          aa-bb-cc-dd-ee-32     dynamic
  192.168.1.255         ff-ff-ff-ff-ff-ff     static
  224.0.0.22            01-00-5e-00-00-16     static
"""

POSIX_OUTPUT = """Address                  HWtype  HWaddress           Flags Mask            Iface
192.168.1.1              ether   aa:bb:cc:dd:ee:01   C                     eth0
192.168.1.50             ether   aa:bb:cc:dd:ee:32   C                     eth0
"""

BSD_OUTPUT = """? (192.168.1.1) at aa:bb:cc:dd:ee:1 on en0 ifscope [ethernet]
? (192.168.1.50) at aa:bb:cc:dd:ee:32 on en0 ifscope [ethernet]
? (192.168.1.77) at (incomplete) on en0 ifscope [ethernet]
"""

PROC_OUTPUT = """IP address       HW type     Flags       HW address            Mask     Device
192.168.1.1      0x1         0x2         aa:bb:cc:dd:ee:01     *        eth0
192.168.1.50     0x1         0x2         aa:bb:cc:dd:ee:32     *        eth0
192.168.1.77     0x1         0x0         00:00:00:00:00:00     *        eth0
"""


class StaticReader(WindowsArpTableReader):
    """返回固定文本的读取器"""

    def __init__(self, output: str):
        super().__init__()
        self.output = output

    async def read_raw(self) -> str:
        return self.output


class TestParsers:
    """各平台输出解析测试"""

    def test_windows(self):
        hosts = WindowsArpTableReader().parse(WINDOWS_OUTPUT)
        assert "192.168.1.1" in hosts
        assert "192.168.1.50" in hosts
        # "Interface: 192.168.1.100 --- 0xb" 行不是 ARP 条目
        assert "192.168.1.100" not in hosts

    def test_posix(self):
        assert PosixArpTableReader().parse(POSIX_OUTPUT) == ["192.168.1.1", "192.168.1.50"]

    def test_bsd_skips_incomplete(self):
        assert BsdArpTableReader().parse(BSD_OUTPUT) == ["192.168.1.1", "192.168.1.50"]

    def test_proc_net_arp_skips_incomplete(self):
        assert ProcNetArpTableReader().parse(PROC_OUTPUT) == ["192.168.1.1", "192.168.1.50"]

    def test_empty_output(self):
        assert PosixArpTableReader().parse("") == []


class TestRead:
    """读取 + 去重测试"""

    @pytest.mark.asyncio
    async def test_read_dedupes(self):
        reader = StaticReader(WINDOWS_OUTPUT + WINDOWS_OUTPUT)
        hosts = await reader.read()
        assert hosts.count("192.168.1.50") == 1

    @pytest.mark.asyncio
    async def test_proc_net_arp_from_file(self, tmp_path):
        path = tmp_path / "arp"
        path.write_text(PROC_OUTPUT, encoding="utf-8")
        assert await ProcNetArpTableReader(str(path)).read() == ["192.168.1.1", "192.168.1.50"]

    @pytest.mark.asyncio
    async def test_proc_net_arp_missing_file(self, tmp_path):
        with pytest.raises(ScanCycleError):
            await ProcNetArpTableReader(str(tmp_path / "nope")).read()

    @pytest.mark.asyncio
    async def test_missing_command_raises_scan_cycle_error(self):
        """测试：ARP 命令不存在属于扫描周期失败"""
        class MissingCommand(PosixArpTableReader):
            command = ("usage-aggregator-no-such-arp-binary", "-n")

        with pytest.raises(ScanCycleError):
            await MissingCommand().read()


@pytest.mark.parametrize("system,expected", [
    ("Windows", WindowsArpTableReader),
    ("Darwin", BsdArpTableReader),
    ("FreeBSD", BsdArpTableReader),
])
def test_get_arp_reader(system, expected):
    reader = get_arp_reader(system)
    assert isinstance(reader, expected)


def test_get_arp_reader_linux():
    reader = get_arp_reader("Linux")
    assert isinstance(reader, (ProcNetArpTableReader, PosixArpTableReader))


def test_command_reader_timeout_is_configurable():
    reader = get_arp_reader("Windows", timeout=3.0)
    assert isinstance(reader, CommandArpTableReader)
    assert reader.timeout == 3.0
