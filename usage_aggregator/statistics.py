"""
统计计算

所有函数都是纯函数：输入当前客户端列表（PeerResponse，latest_usage 已规范化），
输出派生统计，不修改任何状态。

成本口径：
- 30 天内使用过的应用/插件计入月度成本
- 超过 30 天未使用的计入“潜在节省”
"""

from datetime import datetime
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Set, Tuple

from .models import (
    AggregatedStatistics,
    CostAnalysis,
    DepartmentCost,
    DepartmentSummary,
    ExpenseItem,
    InventoryItem,
    PeerResponse,
    SoftwareInventory,
    UsageSnapshot,
)
from .utils import days_inactive, utc_now

UNKNOWN_DEPARTMENT = "Unknown"
TOP_EXPENSES_LIMIT = 20


class License(NamedTuple):
    """快照中的一个应用或插件实例"""
    kind: str  # "application" | "plugin"
    vendor: Optional[str]
    name: str
    cost: float
    total_usage: float
    last_used: Optional[str]


class PeerCost(NamedTuple):
    active: float
    unused: float


def iter_licenses(usage: Optional[UsageSnapshot]) -> Iterator[License]:
    if usage is None:
        return
    for name, app in usage.applications.items():
        yield License("application", None, name, app.cost or 0, app.total_usage, app.last_used)
    for vendor, products in usage.plugins.items():
        for name, plugin in products.items():
            yield License("plugin", vendor, name, plugin.cost, plugin.total_usage, plugin.last_used)


def is_active(last_used: Optional[str], now: datetime, window_days: int) -> bool:
    return days_inactive(last_used, now) <= window_days


def software_names(usage: Optional[UsageSnapshot]) -> Tuple[Set[str], Set[str]]:
    """(应用名集合, 插件名集合)，按名称去重"""
    if usage is None:
        return set(), set()
    plugins = {name for products in usage.plugins.values() for name in products}
    return set(usage.applications), plugins


def calculate_peer_cost(
    usage: Optional[UsageSnapshot],
    now: Optional[datetime] = None,
    window_days: int = 30
) -> PeerCost:
    """单个客户端的月度成本，拆分为活跃部分和闲置部分"""
    now = now or utc_now()
    active = unused = 0.0
    for lic in iter_licenses(usage):
        if is_active(lic.last_used, now, window_days):
            active += lic.cost
        else:
            unused += lic.cost
    return PeerCost(active, unused)


def compute_statistics(
    peers: Iterable[PeerResponse],
    last_scan: Optional[datetime] = None,
    now: Optional[datetime] = None,
    window_days: int = 30
) -> AggregatedStatistics:
    """全局统计"""
    now = now or utc_now()
    peers = list(peers)
    applications: Set[str] = set()
    plugins: Set[str] = set()
    total_cost = savings = 0.0

    for peer in peers:
        apps, plugs = software_names(peer.latest_usage)
        applications |= apps
        plugins |= plugs
        cost = calculate_peer_cost(peer.latest_usage, now, window_days)
        total_cost += cost.active
        savings += cost.unused

    return AggregatedStatistics(
        total_clients=len(peers),
        online_clients=sum(1 for p in peers if p.is_online),
        unique_applications=len(applications),
        unique_plugins=len(plugins),
        total_monthly_cost=total_cost,
        potential_savings=savings,
        last_scan=last_scan,
    )


def aggregate_departments(
    peers: Iterable[PeerResponse],
    now: Optional[datetime] = None,
    window_days: int = 30
) -> List[DepartmentSummary]:
    """
    按部门汇总

    应用/插件数量是部门内去重后的名称数，不是安装实例数。
    """
    now = now or utc_now()
    groups: Dict[str, dict] = {}

    for peer in peers:
        dept = peer.department or UNKNOWN_DEPARTMENT
        group = groups.setdefault(dept, {
            "count": 0, "online": 0, "total_cost": 0.0,
            "applications": set(), "plugins": set(),
        })
        group["count"] += 1
        if peer.is_online:
            group["online"] += 1
        if peer.latest_usage is not None:
            apps, plugs = software_names(peer.latest_usage)
            group["applications"] |= apps
            group["plugins"] |= plugs
            group["total_cost"] += calculate_peer_cost(peer.latest_usage, now, window_days).active

    return [
        DepartmentSummary(
            department=dept,
            count=group["count"],
            online=group["online"],
            total_cost=group["total_cost"],
            applications=len(group["applications"]),
            plugins=len(group["plugins"]),
        )
        for dept, group in sorted(groups.items())
    ]


def perform_cost_analysis(
    peers: Iterable[PeerResponse],
    now: Optional[datetime] = None,
    window_days: int = 30
) -> CostAnalysis:
    """成本分析：活跃/闲置授权数、部门成本、最贵的活跃授权"""
    now = now or utc_now()
    analysis = CostAnalysis()
    departments: Dict[str, DepartmentCost] = {}
    expenses: List[ExpenseItem] = []

    for peer in peers:
        if peer.latest_usage is None:
            continue
        dept = peer.department or UNKNOWN_DEPARTMENT
        row = departments.setdefault(dept, DepartmentCost(name=dept))

        for lic in iter_licenses(peer.latest_usage):
            active = is_active(lic.last_used, now, window_days)
            if active:
                analysis.active_licenses += 1
                analysis.total_monthly_cost += lic.cost
                row.active_licenses += 1
                row.total_cost += lic.cost
            else:
                analysis.unused_licenses += 1
                analysis.potential_savings += lic.cost
                row.unused_licenses += 1
            expenses.append(ExpenseItem(name=lic.name, cost=lic.cost, is_active=active, client=peer.hostname))

    analysis.total_annual_cost = analysis.total_monthly_cost * 12
    analysis.by_department = [departments[name] for name in sorted(departments)]
    analysis.top_expenses = sorted(
        (e for e in expenses if e.is_active),
        key=lambda e: e.cost,
        reverse=True
    )[:TOP_EXPENSES_LIMIT]
    return analysis


def aggregate_software_inventory(
    peers: Iterable[PeerResponse],
    now: Optional[datetime] = None,
    active_days: int = 7
) -> SoftwareInventory:
    """软件清单：每个应用 / 厂商:插件 的安装数、近期活跃安装数、累计使用时长"""
    now = now or utc_now()
    applications: Dict[str, InventoryItem] = {}
    plugins: Dict[str, InventoryItem] = {}

    for peer in peers:
        for lic in iter_licenses(peer.latest_usage):
            if lic.kind == "application":
                bucket, key = applications, lic.name
            else:
                bucket, key = plugins, f"{lic.vendor}:{lic.name}"
            item = bucket.get(key)
            if item is None:
                item = bucket[key] = InventoryItem(name=lic.name, vendor=lic.vendor, estimated_cost=lic.cost)
            item.installations += 1
            if is_active(lic.last_used, now, active_days):
                item.active_installations += 1
            item.total_usage += lic.total_usage

    return SoftwareInventory(
        applications=sorted(applications.values(), key=lambda i: i.name),
        plugins=sorted(plugins.values(), key=lambda i: (i.vendor or "", i.name)),
    )
