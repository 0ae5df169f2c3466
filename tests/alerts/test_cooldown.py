import threading

from alerts.cooldown import CooldownTracker
from alerts.models import TriggerKind


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_suppressed_within_window_and_released_after():
    clock = FakeClock()
    tracker = CooldownTracker(window_seconds=15 * 60, clock=clock)

    assert tracker.is_suppressed("a1", TriggerKind.MARKET_CAP_HIGH) is False
    tracker.record_fired("a1", TriggerKind.MARKET_CAP_HIGH)

    clock.now += 5 * 60
    assert tracker.is_suppressed("a1", TriggerKind.MARKET_CAP_HIGH) is True

    clock.now += 11 * 60
    assert tracker.is_suppressed("a1", TriggerKind.MARKET_CAP_HIGH) is False


def test_kinds_cool_down_independently():
    tracker = CooldownTracker(window_seconds=900, clock=FakeClock())
    tracker.record_fired("a1", TriggerKind.MARKET_CAP_HIGH)

    assert tracker.is_suppressed("a1", TriggerKind.MARKET_CAP_HIGH) is True
    assert tracker.is_suppressed("a1", TriggerKind.MARKET_CAP_LOW) is False
    assert tracker.is_suppressed("a2", TriggerKind.MARKET_CAP_HIGH) is False


def test_prune_removes_only_expired_entries():
    clock = FakeClock()
    tracker = CooldownTracker(window_seconds=900, clock=clock)
    tracker.record_fired("old", TriggerKind.VOLUME)
    clock.now += 600
    tracker.record_fired("fresh", TriggerKind.VOLUME)
    clock.now += 400

    assert tracker.prune() == 1
    assert len(tracker) == 1
    assert tracker.is_suppressed("fresh", TriggerKind.VOLUME) is True


def test_concurrent_writers_do_not_lose_entries():
    tracker = CooldownTracker(window_seconds=900, clock=FakeClock())

    def writer(prefix: str) -> None:
        for i in range(200):
            tracker.record_fired(f"{prefix}-{i}", TriggerKind.PRICE_CHANGE)
            tracker.is_suppressed(f"{prefix}-{i}", TriggerKind.PRICE_CHANGE)

    threads = [threading.Thread(target=writer, args=(name,)) for name in ("a", "b", "c", "d")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(tracker) == 800


def test_key_combines_alert_and_trigger_kind():
    assert CooldownTracker.key("a1", TriggerKind.MARKET_CAP_LOW) == "a1-market_cap_low"
