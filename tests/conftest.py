"""
测试公共夹具
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import httpx
import pytest

from usage_aggregator.config import reset_config
from usage_aggregator.database import AggregationStore, reset_db
from usage_aggregator.peer_client import PeerClient
from usage_aggregator.runtime import reset_runtime

NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def days_ago(days: float, now: datetime = NOW) -> str:
    return iso(now - timedelta(days=days))


@pytest.fixture(autouse=True)
def _reset_globals(monkeypatch, tmp_path):
    """每个测试使用独立的全局配置 / 数据库 / 运行时"""
    monkeypatch.setenv("USAGE_AGGREGATOR_CONFIG", str(tmp_path / "missing-config.yaml"))
    reset_config()
    reset_db()
    reset_runtime()
    yield
    reset_config()
    reset_db()
    reset_runtime()


@pytest.fixture
def store(tmp_path) -> AggregationStore:
    """临时测试数据库"""
    db = AggregationStore(str(tmp_path / "test_usage.db"), timeout=5)
    db.init_schema()
    return db


def peer_transport(peers: Dict[str, Dict[str, Any]]) -> httpx.MockTransport:
    """
    模拟一组客户端的 HTTP 接口

    peers: {ip: {"/status": payload | Exception | httpx.Response, "/latest": ..., ...}}
    未配置的 IP 或路径返回 404。
    """
    def handler(request: httpx.Request) -> httpx.Response:
        routes = peers.get(request.url.host)
        if routes is None or request.url.path not in routes:
            return httpx.Response(404, json={"error": "not found"})
        result = routes[request.url.path]
        if isinstance(result, Exception):
            raise result
        if isinstance(result, httpx.Response):
            return result
        if callable(result):
            return result(request)
        return httpx.Response(200, json=result)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_client() -> Callable[..., PeerClient]:
    def _make(peers: Dict[str, Dict[str, Any]], **kwargs) -> PeerClient:
        return PeerClient(transport=peer_transport(peers), **kwargs)
    return _make
