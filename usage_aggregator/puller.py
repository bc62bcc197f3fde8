"""
客户端数据拉取

定期向已知客户端请求 /latest，更新快照并维护在线状态。
失败时标记离线，但保留上一次的快照（过期但仍有参考价值）。
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .errors import RefreshFailure
from .events import EventBus, PeerOffline, PeerUpdated
from .models import Peer
from .peer_client import PeerClient
from .registry import PeerRegistry

logger = logging.getLogger(__name__)


class PeerDataPuller:
    """客户端数据拉取器"""

    def __init__(
        self,
        client: PeerClient,
        registry: PeerRegistry,
        bus: Optional[EventBus] = None,
        max_concurrency: int = 50
    ):
        self.client = client
        self.registry = registry
        self.bus = bus
        self.max_concurrency = max_concurrency

    async def fetch_latest(self, ip: str) -> Dict[str, Any]:
        """
        拉取单个客户端的最新快照

        Raises:
            RefreshFailure: 超时、网络错误、非 2xx、响应无法解析
        """
        try:
            data = await self.client.fetch_latest(ip)
        except (httpx.HTTPError, ValueError) as e:
            raise RefreshFailure(ip, e) from e
        if not isinstance(data, dict):
            raise RefreshFailure(ip, ValueError(f"unexpected payload type {type(data).__name__}"))
        return data

    async def process_snapshot(self, peer: Peer, data: Dict[str, Any]):
        """处理成功拉取的快照"""
        updated = await self.registry.mark_refreshed(peer.ip, data)
        if updated is None:
            # 拉取期间被操作员移除
            return
        if self.bus is not None:
            self.bus.publish(PeerUpdated(ip=peer.ip, client_id=updated.client_id, data=data))

    async def process_failure(self, peer: Peer, error: Exception):
        """处理拉取失败：标记离线，快照保持不变"""
        logger.warning(f"Failed to update peer {peer.client_id} ({peer.ip}): {error}")
        updated = await self.registry.mark_unreachable(peer.ip)
        if updated is not None and self.bus is not None:
            self.bus.publish(PeerOffline(ip=peer.ip, client_id=peer.client_id, reason=str(error)))

    async def refresh(self, peer: Peer) -> bool:
        """
        刷新单个客户端（本轮不重试，下一轮扫描自然重试）

        Returns:
            是否刷新成功
        """
        try:
            data = await self.fetch_latest(peer.ip)
        except RefreshFailure as e:
            await self.process_failure(peer, e.cause)
            return False
        await self.process_snapshot(peer, data)
        return True

    async def refresh_all(self, peers: Iterable[Peer]) -> int:
        """
        并发刷新一组客户端（受 max_concurrency 限制）

        单个客户端的失败不会影响其他客户端。

        Returns:
            刷新成功的数量
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(peer: Peer) -> bool:
            async with semaphore:
                return await self.refresh(peer)

        results = await asyncio.gather(*(_bounded(p) for p in peers), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Unexpected refresh error: {result}", exc_info=result)
        return sum(1 for r in results if r is True)

    async def fetch_usage_history(self, ip: str, days: int = 7) -> List[Any]:
        """拉取客户端最近 N 天的历史快照，失败返回空列表"""
        try:
            data = await self.client.fetch_usage(ip, days)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Failed to fetch usage history from {ip}: {e}")
            return []
        return data if isinstance(data, list) else []
