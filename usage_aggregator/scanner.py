"""
网络发现扫描

每个周期：
1. 枚举本地非回环 IPv4 网卡并计算子网
2. ARP 阶段：读取 ARP 表，筛出属于该子网的候选 IP 并逐个探测
3. 子网阶段（兜底）：某网卡 ARP 候选为空时，分批（每批 ≤ 50）探测 .1 ~ .254
4. 所有网卡扫描完成后，对注册表中所有客户端做一次数据拉取
5. 发布 scan-started / scan-completed / scan-error 事件

单轮失败只发布 scan-error，不影响后续周期。
"""

import asyncio
import enum
import logging
from typing import Callable, List, Optional

import httpx

from .arp import ArpTableReader, get_arp_reader
from .config import AppConfig
from .events import EventBus, PeerDiscovered, ScanCompleted, ScanError, ScanStarted
from .interfaces import NetworkInterface, get_local_networks
from .peer_client import PeerClient
from .prober import PeerProber
from .puller import PeerDataPuller
from .registry import PeerRegistry
from .subnet import host_addresses, is_in_subnet, parse_octets
from .utils import utc_now

logger = logging.getLogger(__name__)


class ScanState(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    ARP_PHASE = "arp_phase"
    SUBNET_PHASE = "subnet_phase"


class DiscoveryScanner:
    """网络发现扫描器"""

    def __init__(
        self,
        registry: PeerRegistry,
        prober: PeerProber,
        puller: PeerDataPuller,
        arp_reader: ArpTableReader,
        bus: Optional[EventBus] = None,
        scan_interval: float = 300.0,
        subnet_batch_size: int = 50,
        max_concurrency: int = 50,
        network_provider: Callable[[], List[NetworkInterface]] = get_local_networks
    ):
        self.registry = registry
        self.prober = prober
        self.puller = puller
        self.arp_reader = arp_reader
        self.bus = bus
        self.scan_interval = scan_interval
        self.subnet_batch_size = min(subnet_batch_size, 50)
        self.max_concurrency = max_concurrency
        self.network_provider = network_provider

        self.state = ScanState.IDLE
        self.last_scan_time = None
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        # 探测器只负责发现，注册表由扫描器维护
        self.prober.on_discovered = self.handle_discovered

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        registry: PeerRegistry,
        bus: Optional[EventBus] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "DiscoveryScanner":
        discovery = config.discovery
        client = PeerClient(
            port=discovery.client_port,
            timeout=discovery.http_timeout,
            discovery_key=discovery.discovery_key,
            path_prefix=discovery.path_prefix,
            transport=transport,
        )
        return cls(
            registry=registry,
            prober=PeerProber(client, connect_timeout=discovery.connect_timeout),
            puller=PeerDataPuller(client, registry, bus, max_concurrency=discovery.max_concurrency),
            arp_reader=get_arp_reader(timeout=discovery.arp_timeout),
            bus=bus,
            scan_interval=discovery.scan_interval,
            subnet_batch_size=discovery.subnet_batch_size,
            max_concurrency=discovery.max_concurrency,
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stop_event.is_set()

    def _publish(self, event):
        if self.bus is not None:
            self.bus.publish(event)

    # =========================================================================
    # 定时调度
    # =========================================================================

    def start(self) -> asyncio.Task:
        """启动定时扫描（立即执行首轮），必须在事件循环中调用"""
        if self._task is not None and not self._task.done():
            # stop() 之后当前周期尚未结束：清除停止标志，原任务继续定时循环
            if self._stop_event.is_set():
                self._stop_event.clear()
                logger.info("Network scanner restarted")
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Network scanner started (interval={self.scan_interval}s)")
        return self._task

    def stop(self):
        """
        停止定时扫描

        正在进行的探测自然完成或超时，stop 之后不会再开始新的周期。
        """
        self._stop_event.set()
        logger.info("Network scanner stopped")

    async def wait_stopped(self):
        """等待调度任务退出"""
        if self._task is not None:
            await self._task

    async def _run(self):
        while not self._stop_event.is_set():
            await self.perform_scan()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.scan_interval)
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # 扫描周期
    # =========================================================================

    async def scan_now(self) -> bool:
        """立即执行一轮扫描（与定时周期串行）"""
        return await self.perform_scan()

    async def perform_scan(self) -> bool:
        """
        执行一轮完整扫描

        Returns:
            本轮是否成功完成
        """
        async with self._cycle_lock:
            logger.info("Starting network scan...")
            self.state = ScanState.SCANNING
            self._publish(ScanStarted(timestamp=utc_now()))

            try:
                networks = self.network_provider()
                arp_hosts = await self.arp_reader.read() if networks else []

                for network in networks:
                    await self.scan_network(network, arp_hosts)

                # 刷新所有已知客户端，而不仅是本轮新发现的
                self.state = ScanState.SCANNING
                peers = await self.registry.snapshot()
                refreshed = await self.puller.refresh_all(peers)

                self.last_scan_time = utc_now()
                logger.info(
                    f"Network scan completed: {len(self.registry)} peers known, "
                    f"{refreshed} refreshed"
                )
                self._publish(ScanCompleted(peer_count=len(self.registry), timestamp=self.last_scan_time))
                return True

            except Exception as e:
                logger.error(f"Network scan error: {e}", exc_info=True)
                self._publish(ScanError(cause=str(e), timestamp=utc_now()))
                return False

            finally:
                self.state = ScanState.IDLE

    async def scan_network(self, network: NetworkInterface, arp_hosts: List[str]) -> int:
        """
        扫描单个网卡所在子网

        Returns:
            本网卡验证通过的客户端数
        """
        logger.info(f"Scanning network: {network.local_address}/{network.subnet.prefix_length} ({network.name})")

        self.state = ScanState.ARP_PHASE
        candidates = [
            ip for ip in arp_hosts
            if ip != network.local_address and is_in_subnet(ip, network.subnet)
        ]
        if candidates:
            return await self.probe_hosts(candidates)

        self.state = ScanState.SUBNET_PHASE
        return await self.subnet_scan(network)

    async def probe_hosts(self, hosts: List[str]) -> int:
        """并发探测 ARP 候选（受 max_concurrency 限制）"""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(ip: str) -> bool:
            async with semaphore:
                return await self.prober.check_host(ip)

        results = await asyncio.gather(*(_bounded(ip) for ip in hosts), return_exceptions=True)
        return sum(1 for r in results if r is True)

    async def subnet_scan(self, network: NetworkInterface) -> int:
        """
        子网暴力探测（兜底）

        分批执行，每批最多 subnet_batch_size 个并发连接，上一批全部结束后才开始下一批。
        """
        hosts = [ip for ip in host_addresses(network.subnet) if ip != network.local_address]
        found = 0
        for start in range(0, len(hosts), self.subnet_batch_size):
            batch = hosts[start:start + self.subnet_batch_size]
            results = await asyncio.gather(
                *(self.prober.check_host(ip) for ip in batch),
                return_exceptions=True
            )
            found += sum(1 for r in results if r is True)
        return found

    # =========================================================================
    # 注册表维护
    # =========================================================================

    async def handle_discovered(self, event: PeerDiscovered):
        """探测器验证通过后写入注册表并转发事件"""
        _, created = await self.registry.upsert_discovered(
            ip=event.ip,
            client_id=event.client_id,
            department=event.department,
            is_monitoring=event.is_monitoring,
        )
        if created:
            logger.info(f"New peer discovered: {event.client_id} at {event.ip}")
        self._publish(event)

    async def add_manual_peer(self, ip: str, client_id: Optional[str] = None) -> bool:
        """
        手动添加客户端（自动发现失败时使用）

        先尝试验证；验证失败仍然加入注册表，标记为手动且离线。

        Returns:
            是否验证通过

        Raises:
            ValidationError: IP 格式非法
        """
        parse_octets(ip)
        if await self.prober.check_host(ip):
            return True
        await self.registry.add_manual(ip, client_id)
        logger.info(f"Added manual peer {ip} (unverified)")
        return False

    async def remove_peer(self, ip: str) -> bool:
        return await self.registry.remove(ip)

    def get_local_network_info(self) -> List[NetworkInterface]:
        return self.network_provider()
