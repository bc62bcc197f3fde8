"""
客户端注册表

以 IP 为键的唯一权威存储，发现路径和拉取路径都通过这里的方法修改。
每次修改都是整条 Peer 替换（Peer 不可变），在锁内完成。
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .models import Peer
from .utils import utc_now

logger = logging.getLogger(__name__)


class PeerRegistry:
    """
    客户端注册表

    管理：
    - _peers: {ip: Peer}
    """

    def __init__(self, liveness_window: timedelta = timedelta(minutes=10)):
        self.liveness_window = liveness_window
        self._peers: Dict[str, Peer] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._peers)

    async def upsert_discovered(
        self,
        ip: str,
        client_id: str,
        department: Optional[str] = None,
        is_monitoring: bool = False,
        now: Optional[datetime] = None
    ) -> Tuple[Peer, bool]:
        """
        写入一次成功的验证结果

        Returns:
            (peer, created) - created 表示是否为新 IP
        """
        now = now or utc_now()
        async with self._lock:
            existing = self._peers.get(ip)
            if existing is None:
                peer = Peer(
                    ip=ip,
                    client_id=client_id,
                    department=department,
                    first_seen=now,
                    last_seen=now,
                    is_monitoring=is_monitoring,
                )
            else:
                peer = existing.model_copy(update={
                    "client_id": client_id,
                    "department": department,
                    "last_seen": now,
                    "last_contact_ok": True,
                    "is_manual": False,
                    "is_monitoring": is_monitoring,
                })
            self._peers[ip] = peer
            return peer, existing is None

    async def add_manual(
        self,
        ip: str,
        client_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Peer:
        """
        手动添加未通过验证的客户端（离线状态）

        已存在的条目保持不变。
        """
        now = now or utc_now()
        async with self._lock:
            existing = self._peers.get(ip)
            if existing is not None:
                return existing
            peer = Peer(
                ip=ip,
                client_id=client_id or f"manual-{ip}",
                department="Unknown",
                first_seen=now,
                last_seen=now,
                last_contact_ok=False,
                is_manual=True,
            )
            self._peers[ip] = peer
            return peer

    async def mark_refreshed(
        self,
        ip: str,
        snapshot: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Optional[Peer]:
        """记录一次成功的数据拉取；IP 已被移除时返回 None"""
        now = now or utc_now()
        async with self._lock:
            existing = self._peers.get(ip)
            if existing is None:
                return None
            peer = existing.model_copy(update={
                "latest_snapshot": snapshot,
                "last_seen": now,
                "last_update": now,
                "last_contact_ok": True,
            })
            self._peers[ip] = peer
            return peer

    async def mark_unreachable(self, ip: str) -> Optional[Peer]:
        """记录一次失败的联系，保留 last_seen 和最后一次快照"""
        async with self._lock:
            existing = self._peers.get(ip)
            if existing is None:
                return None
            peer = existing.model_copy(update={"last_contact_ok": False})
            self._peers[ip] = peer
            return peer

    async def get(self, ip: str) -> Optional[Peer]:
        async with self._lock:
            return self._peers.get(ip)

    async def get_by_client_id(self, client_id: str) -> Optional[Peer]:
        """
        按 clientId 查找

        clientId 不保证跨 IP 唯一（DHCP 换址后旧条目仍在），
        有多个匹配时返回 last_seen 最新的一条。
        """
        async with self._lock:
            matches = [p for p in self._peers.values() if p.client_id == client_id]
        if not matches:
            return None
        return max(matches, key=lambda p: p.last_seen)

    async def remove(self, ip: str) -> bool:
        """操作员显式移除"""
        async with self._lock:
            removed = self._peers.pop(ip, None) is not None
        if removed:
            logger.info(f"Removed peer {ip}")
        return removed

    async def snapshot(self) -> List[Peer]:
        """获取所有客户端（按 IP 排序的副本）"""
        async with self._lock:
            peers = list(self._peers.values())
        return sorted(peers, key=lambda p: tuple(int(x) for x in p.ip.split(".")))

    async def online(self, now: Optional[datetime] = None) -> List[Peer]:
        now = now or utc_now()
        return [p for p in await self.snapshot() if p.is_online(now, self.liveness_window)]

    def is_online(self, peer: Peer, now: Optional[datetime] = None) -> bool:
        return peer.is_online(now or utc_now(), self.liveness_window)
