"""
测试被扫描端服务（/status、/latest、/usage/{days}）
"""

import json
import socket

import pytest
from fastapi.testclient import TestClient

from conftest import days_ago
from usage_aggregator.config import AppConfig, DiscoveryConfig, PeerServiceConfig
from usage_aggregator.peer_service import UsageFile, create_peer_app
from usage_aggregator.utils import utc_now

HEADERS = {"X-API-Key": "internal-scanner"}


def write_usage(path, history=None):
    now = utc_now()
    data = {
        "applications": [{"name": "Nuke", "lastUsed": days_ago(1, now), "totalUsage": 30}],
        "plugins": [],
        "timestamp": days_ago(0, now),
        "systemInfo": {"hostname": "stale"},
        "history": history or [],
    }
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def usage_path(tmp_path):
    return tmp_path / "usage.json"


@pytest.fixture
def client(usage_path):
    config = AppConfig(peer_service=PeerServiceConfig(
        client_id="ws-design-07",
        department="Design",
        usage_file=str(usage_path),
    ))
    return TestClient(create_peer_app(config))


class TestAuth:
    """X-API-Key 验证测试"""

    def test_missing_key(self, client):
        assert client.get("/status").status_code == 401

    def test_wrong_key(self, client):
        assert client.get("/latest", headers={"X-API-Key": "nope"}).status_code == 401

    def test_custom_discovery_key(self, usage_path):
        config = AppConfig(
            discovery=DiscoveryConfig(discovery_key="lab-key"),
            peer_service=PeerServiceConfig(usage_file=str(usage_path)),
        )
        client = TestClient(create_peer_app(config))
        assert client.get("/status", headers=HEADERS).status_code == 401
        assert client.get("/status", headers={"X-API-Key": "lab-key"}).status_code == 200


class TestStatus:
    """身份接口测试"""

    def test_without_usage_file(self, client):
        body = client.get("/status", headers=HEADERS).json()
        assert body["clientId"] == "ws-design-07"
        assert body["department"] == "Design"
        assert body["isMonitoring"] is False
        assert body["lastUpdate"] is None

    def test_with_usage_file(self, client, usage_path):
        write_usage(usage_path)
        body = client.get("/status", headers=HEADERS).json()
        assert body["isMonitoring"] is True
        assert body["lastUpdate"].endswith("Z")


class TestLatest:
    """最新快照接口测试"""

    def test_live_system_info(self, client, usage_path):
        write_usage(usage_path, history=[{"timestamp": days_ago(1, utc_now())}])
        body = client.get("/latest", headers=HEADERS).json()

        assert body["clientId"] == "ws-design-07"
        assert body["applications"][0]["name"] == "Nuke"
        assert "history" not in body
        assert body["systemInfo"]["hostname"] == socket.gethostname()
        assert 0 <= body["systemInfo"]["memory"]["usagePercent"] <= 100

    def test_defaults_without_usage_file(self, client):
        body = client.get("/latest", headers=HEADERS).json()
        assert body["applications"] == []
        assert body["plugins"] == []
        assert body["timestamp"]


class TestUsageHistory:
    """历史接口测试"""

    def test_filters_by_days(self, client, usage_path):
        now = utc_now()
        write_usage(usage_path, history=[
            {"timestamp": days_ago(10, now), "n": 1},
            {"timestamp": days_ago(1, now), "n": 3},
            {"timestamp": days_ago(3, now), "n": 2},
            {"n": 0},
            "junk",
        ])
        body = client.get("/usage/7", headers=HEADERS).json()
        assert [e["n"] for e in body] == [2, 3]

    def test_days_out_of_range(self, client):
        assert client.get("/usage/0", headers=HEADERS).status_code == 422
        assert client.get("/usage/366", headers=HEADERS).status_code == 422


class TestUsageFile:
    """使用数据文件测试"""

    def test_corrupt_file(self, usage_path):
        usage_path.write_text("{not json", encoding="utf-8")
        assert UsageFile(str(usage_path)).load() == {}

    def test_non_dict_file(self, usage_path):
        usage_path.write_text("[1, 2]", encoding="utf-8")
        assert UsageFile(str(usage_path)).load() == {}
