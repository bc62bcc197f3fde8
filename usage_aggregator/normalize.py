"""
快照规范化

客户端历史上有两种字段命名（totalUsage / total_usage），applications 和 plugins
也有列表、字典两种形式。这里统一转换为 UsageSnapshot，之后的统计、告警只处理规范结构。

两种命名同时存在时优先使用驼峰形式。
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from .config import CostConfig
from .models import ApplicationUsage, PluginUsage, UsageSnapshot
from .utils import parse_timestamp


def pick(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    """按 驼峰 > 下划线 的优先级取字段"""
    value = data.get(camel)
    if value is None:
        value = data.get(snake)
    return default if value is None else value


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _timestamp_text(value: Any) -> Optional[str]:
    """lastUsed 统一保存为字符串（毫秒时间戳转为 ISO 8601）"""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    dt = parse_timestamp(value)
    return dt.isoformat() if dt else None


def _iter_applications(raw: Any) -> Iterable[Tuple[str, Dict[str, Any]]]:
    # 列表形式：[{name, totalUsage, ...}]；字典形式：{name: {...}}
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict) and item.get("name"):
                yield str(item["name"]), item
    elif isinstance(raw, dict):
        for name, item in raw.items():
            if isinstance(item, dict):
                yield str(name), item


def _iter_plugins(raw: Any) -> Iterable[Tuple[str, str, Dict[str, Any]]]:
    # 列表形式：[{vendor, name, ...}]；字典形式：{vendor: {product: {...}}}
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict) and item.get("name"):
                yield str(item.get("vendor") or "Unknown"), str(item["name"]), item
    elif isinstance(raw, dict):
        for vendor, products in raw.items():
            if not isinstance(products, dict):
                continue
            for name, item in products.items():
                if isinstance(item, dict):
                    yield str(vendor), str(name), item


def normalize_snapshot(raw: Optional[Dict[str, Any]], costs: Optional[CostConfig] = None) -> Optional[UsageSnapshot]:
    """
    把客户端上报的原始快照转换为规范结构

    Args:
        raw: /latest 响应
        costs: 价格表；应用未上报 cost 时按价格表估算

    Returns:
        UsageSnapshot，raw 为空时返回 None
    """
    if not raw or not isinstance(raw, dict):
        return None
    costs = costs or CostConfig()

    applications: Dict[str, ApplicationUsage] = {}
    for name, item in _iter_applications(raw.get("applications")):
        reported = _optional_number(item.get("cost"))
        applications[name] = ApplicationUsage(
            total_usage=_number(pick(item, "totalUsage", "total_usage", 0)),
            last_used=_timestamp_text(pick(item, "lastUsed", "last_used")),
            sessions=item.get("sessions") or [],
            cost=reported if reported is not None else costs.application_cost(name),
        )

    plugins: Dict[str, Dict[str, PluginUsage]] = {}
    for vendor, name, item in _iter_plugins(raw.get("plugins")):
        reported = _optional_number(item.get("cost"))
        plugins.setdefault(vendor, {})[name] = PluginUsage(
            total_usage=_number(pick(item, "totalUsage", "total_usage", 0)),
            last_used=_timestamp_text(pick(item, "lastUsed", "last_used")),
            sessions=item.get("sessions") or [],
            cost=reported if reported else costs.default_plugin_cost,
        )

    system_info = pick(raw, "systemInfo", "system_info")
    timestamp = raw.get("timestamp")
    if isinstance(timestamp, datetime):
        timestamp = timestamp.isoformat()
    elif timestamp is not None and not isinstance(timestamp, str):
        timestamp = _timestamp_text(timestamp)

    return UsageSnapshot(
        applications=applications,
        plugins=plugins,
        system_info=system_info if isinstance(system_info, dict) else None,
        timestamp=timestamp,
    )
