"""
客户端 HTTP 访问

所有对其他实例的 HTTP 请求都经过这里：统一端口、超时和 X-API-Key 头。
"""

from typing import Any, Optional

import httpx


class PeerClient:
    """访问其他实例的 HTTP 接口"""

    def __init__(
        self,
        port: int = 9876,
        timeout: float = 5.0,
        discovery_key: str = "internal-scanner",
        path_prefix: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.port = port
        self.timeout = timeout
        self.discovery_key = discovery_key
        self.path_prefix = path_prefix.rstrip("/")
        self._transport = transport

    def url(self, host: str, path: str) -> str:
        return f"http://{host}:{self.port}{self.path_prefix}{path}"

    async def get_json(self, host: str, path: str) -> Any:
        """
        GET 并解析 JSON

        Raises:
            httpx.HTTPError: 连接失败、超时、非 2xx
            ValueError: 响应不是合法 JSON
        """
        headers = {"X-API-Key": self.discovery_key}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.url(host, path), headers=headers)
            response.raise_for_status()
            return response.json()

    async def fetch_status(self, host: str) -> Any:
        return await self.get_json(host, "/status")

    async def fetch_latest(self, host: str) -> Any:
        return await self.get_json(host, "/latest")

    async def fetch_usage(self, host: str, days: int) -> Any:
        return await self.get_json(host, f"/usage/{days}")
