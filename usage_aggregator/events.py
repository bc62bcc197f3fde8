"""
事件定义与事件总线

扫描器和拉取器把类型化事件发布到 EventBus，聚合客户端和 API 层各自
订阅一个队列消费，彼此之间没有直接调用关系。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanStarted:
    timestamp: datetime
    name: str = field(default="scan-started", init=False)


@dataclass(frozen=True)
class ScanCompleted:
    peer_count: int
    timestamp: datetime
    name: str = field(default="scan-completed", init=False)


@dataclass(frozen=True)
class ScanError:
    cause: str
    timestamp: datetime
    name: str = field(default="scan-error", init=False)


@dataclass(frozen=True)
class PeerDiscovered:
    ip: str
    client_id: str
    department: Optional[str] = None
    is_monitoring: bool = False
    name: str = field(default="peer-discovered", init=False)


@dataclass(frozen=True)
class PeerUpdated:
    ip: str
    client_id: str
    data: Dict[str, Any]
    name: str = field(default="peer-updated", init=False)


@dataclass(frozen=True)
class PeerOffline:
    ip: str
    client_id: str
    reason: str
    name: str = field(default="peer-offline", init=False)


Event = Union[ScanStarted, ScanCompleted, ScanError, PeerDiscovered, PeerUpdated, PeerOffline]


class EventBus:
    """
    进程内事件总线

    每个订阅者拥有独立的有界队列；队列满时丢弃最旧的事件，
    发布方永远不会因为慢消费者而阻塞。
    """

    def __init__(self, maxsize: int = 1000):
        self._maxsize = maxsize
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        """订阅事件，返回专属队列"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: Event):
        """发布事件到所有订阅者"""
        for queue in list(self._subscribers):
            if queue.full():
                dropped = queue.get_nowait()
                logger.warning(f"Event queue full, dropped {dropped.name}")
            queue.put_nowait(event)
