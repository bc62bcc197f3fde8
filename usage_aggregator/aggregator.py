"""
聚合客户端

把注册表中的客户端转换为对外的响应模型，计算统计，
并在每轮扫描完成后把历史快照、月度成本汇总和告警写入数据库。
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from .alerts import run_alert_pass
from .config import AppConfig, get_config
from .database import AggregationStore
from .events import EventBus, ScanCompleted
from .models import (
    AggregatedStatistics,
    CostAnalysis,
    DepartmentSummary,
    Peer,
    PeerDetailResponse,
    PeerResponse,
    SoftwareInventory,
)
from .normalize import normalize_snapshot
from .registry import PeerRegistry
from .scanner import DiscoveryScanner
from .statistics import (
    UNKNOWN_DEPARTMENT,
    aggregate_departments,
    aggregate_software_inventory,
    compute_statistics,
    perform_cost_analysis,
)
from .utils import utc_now

logger = logging.getLogger(__name__)


class AggregationClient:
    """聚合客户端"""

    def __init__(
        self,
        registry: PeerRegistry,
        store: AggregationStore,
        scanner: Optional[DiscoveryScanner] = None,
        config: Optional[AppConfig] = None
    ):
        self.registry = registry
        self.store = store
        self.scanner = scanner
        self.config = config or get_config()

    @property
    def window_days(self) -> int:
        return self.config.aggregation.activity_window_days

    def to_response(self, peer: Peer, now: Optional[datetime] = None) -> PeerResponse:
        """注册表条目 -> 对外响应（快照规范化、主机名/平台取自 systemInfo）"""
        now = now or utc_now()
        usage = normalize_snapshot(peer.latest_snapshot, self.config.costs)
        system_info = (usage.system_info if usage else None) or {}
        return PeerResponse(
            client_id=peer.client_id,
            hostname=system_info.get("hostname") or peer.client_id,
            department=peer.department or UNKNOWN_DEPARTMENT,
            platform=system_info.get("platform") or "Unknown",
            ip_address=peer.ip,
            is_online=self.registry.is_online(peer, now),
            is_manual=peer.is_manual,
            first_seen=peer.first_seen,
            last_seen=peer.last_seen,
            latest_usage=usage,
        )

    # =========================================================================
    # 查询
    # =========================================================================

    async def get_all_peers(self, now: Optional[datetime] = None) -> List[PeerResponse]:
        now = now or utc_now()
        return [self.to_response(p, now) for p in await self.registry.snapshot()]

    async def get_peer(self, ip: str) -> Optional[PeerResponse]:
        peer = await self.registry.get(ip)
        return self.to_response(peer) if peer else None

    async def get_statistics(self, now: Optional[datetime] = None) -> AggregatedStatistics:
        now = now or utc_now()
        last_scan = self.scanner.last_scan_time if self.scanner else None
        return compute_statistics(await self.get_all_peers(now), last_scan, now, self.window_days)

    async def get_departments(self, now: Optional[datetime] = None) -> List[DepartmentSummary]:
        now = now or utc_now()
        return aggregate_departments(await self.get_all_peers(now), now, self.window_days)

    async def get_cost_analysis(self, now: Optional[datetime] = None) -> CostAnalysis:
        now = now or utc_now()
        return perform_cost_analysis(await self.get_all_peers(now), now, self.window_days)

    async def get_inventory(self, now: Optional[datetime] = None) -> SoftwareInventory:
        now = now or utc_now()
        return aggregate_software_inventory(await self.get_all_peers(now), now)

    async def get_client_detail(self, client_id: str) -> Optional[PeerDetailResponse]:
        """
        单个客户端详情：先拉一次最新快照，再附上最近 N 天历史

        Returns:
            找不到该 clientId 时返回 None
        """
        peer = await self.registry.get_by_client_id(client_id)
        if peer is None:
            return None

        history = []
        if self.scanner is not None:
            await self.scanner.puller.refresh(peer)
            history = await self.scanner.puller.fetch_usage_history(
                peer.ip, self.config.aggregation.history_days
            )
            peer = await self.registry.get(peer.ip) or peer

        response = self.to_response(peer)
        return PeerDetailResponse(client=response, latest_usage=response.latest_usage, history=history)

    # =========================================================================
    # 落库
    # =========================================================================

    async def aggregate_and_store(self, now: Optional[datetime] = None) -> int:
        """
        一轮聚合：历史快照 + 月度部门成本 + 告警

        Returns:
            本轮新产生的告警数
        """
        now = now or utc_now()
        peers = await self.get_all_peers(now)

        for peer in peers:
            if peer.latest_usage is not None:
                self.store.append_historical_snapshot(
                    peer.client_id, peer.department, peer.latest_usage.model_dump(mode="json")
                )

        month = now.strftime("%Y-%m")
        analysis = perform_cost_analysis(peers, now, self.window_days)
        for dept in analysis.by_department:
            self.store.upsert_monthly_cost_rollup(month, dept.name, {
                "total_cost": dept.total_cost,
                "active_licenses": dept.active_licenses,
                "unused_licenses": dept.unused_licenses,
            })

        inserted = run_alert_pass(self.store, peers, now, self.config.aggregation)
        logger.info(
            f"Aggregation completed: {len(peers)} peers, "
            f"{len(analysis.by_department)} departments, {len(inserted)} new alerts"
        )
        return len(inserted)

    async def consume_events(self, bus: EventBus):
        """订阅事件总线，每次扫描完成后执行一轮聚合"""
        queue = bus.subscribe()
        logger.info("Starting aggregation consumer")
        try:
            while True:
                event = await queue.get()
                if not isinstance(event, ScanCompleted):
                    continue
                try:
                    await self.aggregate_and_store(event.timestamp)
                except Exception as e:
                    logger.error(f"Aggregation error: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Aggregation consumer cancelled")
            raise
        finally:
            bus.unsubscribe(queue)


async def run_cleanup(store: AggregationStore, retention_days: int = 90, cleanup_hour: int = 3):
    """
    数据清理任务（每天 cleanup_hour 点执行）
    """
    logger.info(f"Starting cleanup task (hour={cleanup_hour}, retention={retention_days}d)")

    while True:
        try:
            now = utc_now()
            next_cleanup = now.replace(hour=cleanup_hour, minute=0, second=0, microsecond=0)
            if now >= next_cleanup:
                next_cleanup += timedelta(days=1)

            wait_seconds = (next_cleanup - now).total_seconds()
            logger.info(f"Next cleanup at {next_cleanup.isoformat()} (in {wait_seconds:.0f}s)")
            await asyncio.sleep(wait_seconds)

            store.cleanup_old_data(retention_days)
            logger.info(f"Cleanup completed: removed data older than {retention_days} days")

        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
            raise
        except Exception as e:
            logger.error(f"Cleanup error: {e}", exc_info=True)
            await asyncio.sleep(3600)  # 出错后等 1 小时
