"""
客户端探测

判断某个主机上是否运行着本软件的实例：
1. TCP 连接客户端端口（短超时），连上后立即关闭
2. GET /status，响应必须是带 clientId 的 JSON

探测本身不修改注册表，验证通过后通过回调发出 PeerDiscovered 事件。
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from .events import PeerDiscovered
from .models import PeerStatus
from .peer_client import PeerClient

logger = logging.getLogger(__name__)

DiscoveredCallback = Callable[[PeerDiscovered], Awaitable[None]]


class PeerProber:
    """客户端探测器"""

    def __init__(
        self,
        client: PeerClient,
        connect_timeout: float = 2.0,
        on_discovered: Optional[DiscoveredCallback] = None
    ):
        self.client = client
        self.connect_timeout = connect_timeout
        self.on_discovered = on_discovered

    async def is_port_open(self, ip: str) -> bool:
        """TCP 连接测试，连接成功后立即关闭"""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(ip, self.client.port),
                timeout=self.connect_timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def verify(self, ip: str) -> Optional[PeerStatus]:
        """
        请求 /status 验证是否为客户端

        非 JSON、缺少 clientId、非 2xx、超时都视为“不是客户端”，返回 None。
        """
        try:
            payload = await self.client.fetch_status(ip)
            return PeerStatus.model_validate(payload)
        except (httpx.HTTPError, ValueError, PydanticValidationError) as e:
            logger.debug(f"{ip} is not a peer: {e}")
            return None

    async def check_host(self, ip: str) -> bool:
        """
        探测单个主机

        Returns:
            是否为有效客户端；任何失败都返回 False，不抛异常
        """
        if not await self.is_port_open(ip):
            return False

        status = await self.verify(ip)
        if status is None:
            return False

        logger.info(f"Found peer {status.client_id} at {ip}")
        if self.on_discovered is not None:
            await self.on_discovered(PeerDiscovered(
                ip=ip,
                client_id=status.client_id,
                department=status.department,
                is_monitoring=status.is_monitoring,
            ))
        return True
