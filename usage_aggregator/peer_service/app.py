"""
被扫描端 HTTP 服务

每个实例既是扫描方也是被扫描方。本服务在客户端端口上提供：
- GET /status        身份验证（clientId、部门、是否在监控）
- GET /latest        最新使用快照 + 实时系统信息
- GET /usage/{days}  最近 N 天的历史快照

使用数据由本机监控程序写入 usage_file（JSON），这里只负责读取和转发。
所有接口都要求 X-API-Key 等于 discovery_key。
"""

import json
import logging
import socket
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Path as PathParam

from .. import __version__
from ..config import AppConfig, get_config
from ..utils import parse_timestamp, utc_now, utc_now_iso
from .system_info import get_system_info

logger = logging.getLogger(__name__)


class UsageFile:
    """
    本机使用数据文件

    格式：
        {
            "applications": [...] 或 {...},
            "plugins": [...] 或 {...},
            "timestamp": "...",
            "history": [{..., "timestamp": "..."}, ...]
        }
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def last_modified(self) -> Optional[str]:
        if not self.exists():
            return None
        mtime = datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)
        return mtime.strftime("%Y-%m-%dT%H:%M:%SZ")

    def load(self) -> Dict[str, Any]:
        """读取文件，不存在或损坏时返回空字典"""
        if not self.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read usage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def history(self, days: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """最近 N 天的历史快照（按时间升序）"""
        cutoff = (now or utc_now()) - timedelta(days=days)
        entries = []
        for entry in self.load().get("history") or []:
            if not isinstance(entry, dict):
                continue
            ts = parse_timestamp(entry.get("timestamp"))
            if ts is not None and ts >= cutoff:
                entries.append((ts, entry))
        return [entry for _, entry in sorted(entries, key=lambda item: item[0])]


def create_peer_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    创建被扫描端应用

    Args:
        config: 配置，默认使用全局配置
    """
    config = config or get_config()
    service = config.peer_service
    usage_file = UsageFile(service.usage_file)
    client_id = service.client_id or socket.gethostname()

    app = FastAPI(
        title="Usage Aggregator Peer",
        version=__version__,
        description="局域网客户端身份与使用数据接口",
        docs_url=None,
        redoc_url=None,
    )

    def verify_discovery_key(x_api_key: Optional[str] = Header(None)) -> bool:
        """
        验证 X-API-Key

        Raises:
            HTTPException: Key 缺失或不匹配时抛出 401 错误
        """
        if not x_api_key:
            raise HTTPException(status_code=401, detail="Missing X-API-Key header")
        if x_api_key != config.discovery.discovery_key:
            raise HTTPException(status_code=401, detail="Invalid API key")
        return True

    @app.get("/status")
    async def get_status(authorized: bool = Depends(verify_discovery_key)):
        return {
            "clientId": client_id,
            "department": service.department,
            "isMonitoring": usage_file.exists(),
            "lastUpdate": usage_file.last_modified(),
        }

    @app.get("/latest")
    async def get_latest(authorized: bool = Depends(verify_discovery_key)):
        """
        最新使用快照

        systemInfo 每次请求实时采集，覆盖文件中的旧值。
        """
        data = usage_file.load()
        data.pop("history", None)
        data.setdefault("applications", [])
        data.setdefault("plugins", [])
        data.setdefault("timestamp", utc_now_iso())
        data["clientId"] = client_id
        data["systemInfo"] = await get_system_info()
        return data

    @app.get("/usage/{days}")
    async def get_usage(
        days: int = PathParam(..., ge=1, le=365),
        authorized: bool = Depends(verify_discovery_key)
    ):
        return usage_file.history(days)

    return app
