"""
单元测试：告警检测与去重
"""

from datetime import timedelta

from conftest import NOW, days_ago
from usage_aggregator.alerts import detect_alerts, run_alert_pass
from usage_aggregator.config import AggregationConfig
from usage_aggregator.models import PeerResponse
from usage_aggregator.normalize import normalize_snapshot


def make_peer(client_id="ws-01", raw=None, last_seen=NOW):
    return PeerResponse(
        client_id=client_id,
        hostname=client_id,
        department="Design",
        platform="win32",
        ip_address="10.0.0.1",
        is_online=True,
        first_seen=NOW,
        last_seen=last_seen,
        latest_usage=normalize_snapshot(raw) if raw else None,
    )


class TestDetect:
    """告警条件检测测试"""

    def test_offline_after_30_minutes(self):
        alerts = detect_alerts([make_peer(last_seen=NOW - timedelta(minutes=31))], NOW)
        assert [(a.type, a.subject) for a in alerts] == [("offline", "")]
        assert "31 minutes" in alerts[0].message

    def test_not_offline_within_30_minutes(self):
        assert detect_alerts([make_peer(last_seen=NOW - timedelta(minutes=29))], NOW) == []

    def test_high_memory(self):
        peer = make_peer(raw={"systemInfo": {"memory": {"usagePercent": 93.5}}})
        alerts = detect_alerts([peer], NOW)
        assert [a.type for a in alerts] == ["high_memory"]
        assert "93.5%" in alerts[0].message

    def test_high_memory_snake_case_and_threshold(self):
        peer = make_peer(raw={"system_info": {"memory": {"usage_percent": 90}}})
        assert detect_alerts([peer], NOW) == []
        peer = make_peer(raw={"system_info": {"memory": {"usage_percent": "95"}}})
        assert [a.type for a in detect_alerts([peer], NOW)] == ["high_memory"]

    def test_unused_expensive_software(self):
        raw = {"applications": [
            {"name": "Nuke", "lastUsed": days_ago(45)},        # 499，闲置 -> 告警
            {"name": "Houdini", "lastUsed": days_ago(3)},      # 269，活跃
            {"name": "Photoshop", "lastUsed": days_ago(90), "cost": 35},  # 便宜
        ]}
        alerts = detect_alerts([make_peer(raw=raw)], NOW)
        assert [(a.type, a.subject) for a in alerts] == [("unused_software", "Nuke")]
        assert "45 days" in alerts[0].message

    def test_never_used_expensive_software(self):
        alerts = detect_alerts([make_peer(raw={"applications": [{"name": "Nuke"}]})], NOW)
        assert alerts[0].subject == "Nuke"
        assert "never used" in alerts[0].message

    def test_threshold_is_configurable(self):
        raw = {"applications": [{"name": "Tool", "cost": 60, "lastUsed": days_ago(45)}]}
        assert detect_alerts([make_peer(raw=raw)], NOW) == []
        config = AggregationConfig(unused_software_min_cost=50)
        assert len(detect_alerts([make_peer(raw=raw)], NOW, config)) == 1


class TestAlertPass:
    """告警写入与幂等测试"""

    def test_two_unused_apps_then_idempotent(self, store):
        """
        场景：同一客户端两个应用（$60、$90/月）都闲置 45 天
        -> 第一轮插入两条 unused_software，第二轮不再插入
        """
        raw = {"applications": [
            {"name": "Tool A", "cost": 60, "lastUsed": days_ago(45)},
            {"name": "Tool B", "cost": 90, "lastUsed": days_ago(45)},
        ]}
        peers = [make_peer(raw=raw)]
        config = AggregationConfig(unused_software_min_cost=50)

        first = run_alert_pass(store, peers, NOW, config)
        assert len(first) == 2
        alerts = store.list_alerts(resolved=False)
        assert sorted(a["subject"] for a in alerts) == ["Tool A", "Tool B"]
        assert all(a["type"] == "unused_software" for a in alerts)

        second = run_alert_pass(store, peers, NOW, config)
        assert second == []
        assert store.count_open_alerts() == 2

    def test_repeated_pass_never_grows_open_alerts(self, store):
        peers = [
            make_peer("a", last_seen=NOW - timedelta(hours=2)),
            make_peer("b", raw={"systemInfo": {"memory": {"usagePercent": 97}}}),
        ]
        run_alert_pass(store, peers, NOW)
        count = store.count_open_alerts()
        for _ in range(3):
            run_alert_pass(store, peers, NOW)
        assert store.count_open_alerts() == count == 2

    def test_resolved_alert_can_fire_again(self, store):
        peers = [make_peer(last_seen=NOW - timedelta(hours=1))]
        [alert_id] = run_alert_pass(store, peers, NOW)
        assert store.resolve_alert(alert_id)
        assert len(run_alert_pass(store, peers, NOW)) == 1
