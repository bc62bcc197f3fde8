"""
单元测试：事件总线
"""

from datetime import datetime, timezone

from usage_aggregator.events import EventBus, PeerOffline, ScanCompleted, ScanStarted

NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def test_each_subscriber_gets_every_event():
    bus = EventBus()
    first, second = bus.subscribe(), bus.subscribe()
    bus.publish(ScanStarted(timestamp=NOW))
    bus.publish(ScanCompleted(peer_count=3, timestamp=NOW))

    assert [e.name for e in drain(first)] == ["scan-started", "scan-completed"]
    assert [e.name for e in drain(second)] == ["scan-started", "scan-completed"]


def test_full_queue_drops_oldest():
    bus = EventBus(maxsize=2)
    queue = bus.subscribe()
    for i in range(4):
        bus.publish(PeerOffline(ip=f"10.0.0.{i}", client_id=f"ws-{i}", reason="timeout"))

    assert [e.ip for e in drain(queue)] == ["10.0.0.2", "10.0.0.3"]


def test_unsubscribe():
    bus = EventBus()
    queue = bus.subscribe()
    bus.unsubscribe(queue)
    bus.unsubscribe(queue)
    bus.publish(ScanStarted(timestamp=NOW))
    assert queue.empty()


def test_publish_without_subscribers():
    EventBus().publish(ScanStarted(timestamp=NOW))
