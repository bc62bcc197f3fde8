"""
运行时组装

把事件总线、注册表、扫描器、数据库和聚合客户端按配置组装在一起，
供 main 和 API 依赖注入共用同一套实例。
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx

from .aggregator import AggregationClient
from .config import AppConfig, get_config
from .database import AggregationStore, get_db
from .events import EventBus
from .registry import PeerRegistry
from .scanner import DiscoveryScanner


@dataclass
class Runtime:
    config: AppConfig
    bus: EventBus
    registry: PeerRegistry
    store: AggregationStore
    scanner: DiscoveryScanner
    aggregator: AggregationClient


def build_runtime(
    config: Optional[AppConfig] = None,
    store: Optional[AggregationStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Runtime:
    """
    按配置组装运行时

    Args:
        config: 配置，默认使用全局配置
        store: 数据库，默认使用全局数据库实例
        transport: httpx 传输层（测试时替换为 MockTransport）
    """
    config = config or get_config()
    store = store or get_db()
    bus = EventBus()
    registry = PeerRegistry(
        liveness_window=timedelta(minutes=config.aggregation.liveness_window_minutes)
    )
    scanner = DiscoveryScanner.from_config(config, registry, bus, transport=transport)
    aggregator = AggregationClient(registry, store, scanner=scanner, config=config)
    return Runtime(
        config=config,
        bus=bus,
        registry=registry,
        store=store,
        scanner=scanner,
        aggregator=aggregator,
    )


# 全局运行时（延迟创建）
_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


def set_runtime(runtime: Runtime):
    global _runtime
    _runtime = runtime


def reset_runtime():
    """重置运行时（主要用于测试）"""
    global _runtime
    _runtime = None
