"""
单元测试：统计计算
"""

import pytest

from conftest import NOW, days_ago
from usage_aggregator.models import PeerResponse
from usage_aggregator.normalize import normalize_snapshot
from usage_aggregator.statistics import (
    aggregate_departments,
    aggregate_software_inventory,
    calculate_peer_cost,
    compute_statistics,
    perform_cost_analysis,
)


def make_peer(client_id, raw=None, department="Design", online=True, hostname=None):
    return PeerResponse(
        client_id=client_id,
        hostname=hostname or client_id,
        department=department,
        platform="win32",
        ip_address="10.0.0.1",
        is_online=online,
        first_seen=NOW,
        last_seen=NOW,
        latest_usage=normalize_snapshot(raw) if raw else None,
    )


RAW_A = {
    "applications": [
        {"name": "Nuke", "lastUsed": days_ago(2), "totalUsage": 100},           # 499 活跃
        {"name": "Houdini", "lastUsed": days_ago(45), "totalUsage": 10},        # 269 闲置
    ],
    "plugins": [
        {"vendor": "Boris FX", "name": "Sapphire", "lastUsed": days_ago(1)},    # 25 活跃
    ],
}

RAW_B = {
    "applications": [
        {"name": "Nuke", "lastUsed": days_ago(10), "totalUsage": 50},           # 499 活跃
        {"name": "Blender", "lastUsed": days_ago(1)},                            # 0 活跃
    ],
    "plugins": [
        {"vendor": "Red Giant", "name": "Sapphire", "lastUsed": days_ago(60), "cost": 40},  # 40 闲置
    ],
}


class TestPeerCost:
    """单客户端成本测试"""

    def test_active_and_unused_split(self):
        cost = calculate_peer_cost(normalize_snapshot(RAW_A), NOW)
        assert cost.active == 499 + 25
        assert cost.unused == 269

    def test_never_used_counts_as_unused(self):
        cost = calculate_peer_cost(normalize_snapshot({"applications": [{"name": "Nuke"}]}), NOW)
        assert cost.active == 0
        assert cost.unused == 499

    def test_window_boundary(self):
        """测试：恰好 30 天仍算活跃"""
        usage = normalize_snapshot({"applications": [{"name": "Nuke", "lastUsed": days_ago(30)}]})
        assert calculate_peer_cost(usage, NOW).active == 499

    def test_no_snapshot(self):
        assert calculate_peer_cost(None, NOW) == (0, 0)


class TestComputeStatistics:
    """全局统计测试"""

    def test_counts_and_cost(self):
        peers = [
            make_peer("a", RAW_A),
            make_peer("b", RAW_B, online=False),
            make_peer("c"),
        ]
        stats = compute_statistics(peers, last_scan=NOW, now=NOW)

        assert stats.total_clients == 3
        assert stats.online_clients == 2
        assert stats.unique_applications == 3  # Nuke, Houdini, Blender
        assert stats.unique_plugins == 1       # 按名称去重：Sapphire
        assert stats.total_monthly_cost == 499 + 25 + 499 + 0
        assert stats.potential_savings == 269 + 40
        assert stats.last_scan == NOW

    def test_empty(self):
        stats = compute_statistics([], now=NOW)
        assert stats.total_clients == 0
        assert stats.total_monthly_cost == 0


class TestDepartments:
    """部门汇总测试"""

    def test_grouping_and_name_sets(self):
        peers = [
            make_peer("a", RAW_A, department="Design"),
            make_peer("b", RAW_B, department="Design", online=False),
            make_peer("c", RAW_A, department="Finance"),
        ]
        rows = {d.department: d for d in aggregate_departments(peers, NOW)}

        design = rows["Design"]
        assert design.count == 2
        assert design.online == 1
        assert design.applications == 3  # 名称去重，不是实例数
        assert design.plugins == 1
        assert design.total_cost == 499 + 25 + 499

        assert rows["Finance"].count == 1
        assert rows["Finance"].applications == 2

    def test_missing_department_defaults_to_unknown(self):
        peers = [make_peer("a", RAW_A, department="")]
        rows = aggregate_departments(peers, NOW)
        assert [d.department for d in rows] == ["Unknown"]


class TestCostAnalysis:
    """成本分析测试"""

    def test_totals(self):
        analysis = perform_cost_analysis([make_peer("a", RAW_A), make_peer("b", RAW_B)], NOW)
        assert analysis.active_licenses == 4
        assert analysis.unused_licenses == 2
        assert analysis.total_monthly_cost == 499 + 25 + 499
        assert analysis.total_annual_cost == (499 + 25 + 499) * 12
        assert analysis.potential_savings == 269 + 40

    def test_by_department(self):
        peers = [make_peer("a", RAW_A, department="Design"), make_peer("b", RAW_B, department="Finance")]
        rows = {d.name: d for d in perform_cost_analysis(peers, NOW).by_department}
        assert rows["Design"].total_cost == 499 + 25
        assert rows["Design"].unused_licenses == 1
        assert rows["Finance"].active_licenses == 2

    def test_top_expenses_active_only_sorted(self):
        analysis = perform_cost_analysis([make_peer("a", RAW_A, hostname="ws-01")], NOW)
        assert [(e.name, e.cost) for e in analysis.top_expenses] == [("Nuke", 499), ("Sapphire", 25)]
        assert analysis.top_expenses[0].client == "ws-01"

    def test_top_expenses_limited_to_20(self):
        raw = {"applications": [{"name": f"App {i}", "lastUsed": days_ago(1), "cost": i} for i in range(30)]}
        analysis = perform_cost_analysis([make_peer("a", raw)], NOW)
        assert len(analysis.top_expenses) == 20
        assert analysis.top_expenses[0].cost == 29

    def test_peers_without_snapshot_ignored(self):
        analysis = perform_cost_analysis([make_peer("a")], NOW)
        assert analysis.by_department == []


class TestInventory:
    """软件清单测试"""

    def test_applications(self):
        inventory = aggregate_software_inventory([make_peer("a", RAW_A), make_peer("b", RAW_B)], NOW)
        apps = {i.name: i for i in inventory.applications}
        assert apps["Nuke"].installations == 2
        assert apps["Nuke"].active_installations == 1  # 10 天前不算近 7 天活跃
        assert apps["Nuke"].total_usage == 150
        assert apps["Nuke"].estimated_cost == 499

    def test_plugins_keyed_by_vendor(self):
        inventory = aggregate_software_inventory([make_peer("a", RAW_A), make_peer("b", RAW_B)], NOW)
        keys = [(i.vendor, i.name) for i in inventory.plugins]
        assert keys == [("Boris FX", "Sapphire"), ("Red Giant", "Sapphire")]
        assert inventory.plugins[1].estimated_cost == pytest.approx(40)
