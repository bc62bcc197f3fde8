"""
告警检测模块

每轮聚合检测一次：
1. offline: 超过 30 分钟没有成功联系
2. high_memory: 上报的内存使用率超过 90%
3. unused_software: 高价应用超过 30 天未使用

写入时按 (peer_id, type, subject) 去重，重复运行不会产生重复的未处理告警。
"""

import logging
import math
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional

from .config import AggregationConfig
from .database import AggregationStore
from .models import PeerResponse
from .normalize import pick
from .utils import days_inactive, utc_now

logger = logging.getLogger(__name__)


class AlertCandidate(NamedTuple):
    peer_id: str
    type: str
    subject: str
    message: str


def memory_usage_percent(peer: PeerResponse) -> Optional[float]:
    system_info = peer.latest_usage.system_info if peer.latest_usage else None
    memory = (system_info or {}).get("memory")
    if not isinstance(memory, dict):
        return None
    value = pick(memory, "usagePercent", "usage_percent")
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def detect_alerts(
    peers: Iterable[PeerResponse],
    now: Optional[datetime] = None,
    config: Optional[AggregationConfig] = None
) -> List[AlertCandidate]:
    """检测当前客户端集合上的告警条件（不写库）"""
    now = now or utc_now()
    config = config or AggregationConfig()
    alerts = []

    for peer in peers:
        minutes_offline = (now - peer.last_seen).total_seconds() / 60
        if minutes_offline > config.offline_alert_minutes:
            alerts.append(AlertCandidate(
                peer.client_id, "offline", "",
                f"Client {peer.hostname} has been offline for {round(minutes_offline)} minutes"
            ))

        memory_pct = memory_usage_percent(peer)
        if memory_pct is not None and memory_pct > config.high_memory_pct:
            alerts.append(AlertCandidate(
                peer.client_id, "high_memory", "",
                f"Client {peer.hostname} is using {memory_pct:g}% memory"
            ))

        if peer.latest_usage is None:
            continue
        for name, app in peer.latest_usage.applications.items():
            cost = app.cost or 0
            if cost <= config.unused_software_min_cost:
                continue
            inactive = days_inactive(app.last_used, now)
            if inactive > config.activity_window_days:
                idle = "never used" if math.isinf(inactive) else f"unused for {inactive} days"
                alerts.append(AlertCandidate(
                    peer.client_id, "unused_software", name,
                    f"{name} (${cost:g}/mo) {idle} on {peer.hostname}"
                ))

    return alerts


def raise_alerts(store: AggregationStore, candidates: Iterable[AlertCandidate]) -> List[int]:
    """
    写入告警

    Returns:
        本轮新插入的告警 ID
    """
    inserted = []
    for alert in candidates:
        alert_id = store.insert_alert_if_absent(alert.peer_id, alert.type, alert.message, subject=alert.subject)
        if alert_id:
            inserted.append(alert_id)
            logger.warning(f"Alert {alert.type} for {alert.peer_id}: {alert.message}")
    return inserted


def run_alert_pass(
    store: AggregationStore,
    peers: Iterable[PeerResponse],
    now: Optional[datetime] = None,
    config: Optional[AggregationConfig] = None
) -> List[int]:
    """检测并写入告警（幂等）"""
    return raise_alerts(store, detect_alerts(peers, now, config))
