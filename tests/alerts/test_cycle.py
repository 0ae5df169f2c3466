from unittest.mock import AsyncMock

import pytest

from alerts.cooldown import CooldownTracker
from alerts.cycle import AlertProcessingCycle, group_by_token
from alerts.models import (
    AlertConfig,
    ChannelFlags,
    MarketCapMetric,
    MarketSnapshot,
    PriceChangeMetric,
)
from notifications.dispatcher import NotificationDispatcher
from storage import SQLiteAlertStore
from storage.base import StoreError


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeStore:
    def __init__(self, alerts):
        self.alerts = alerts
        self.recorded = []
        self.snapshots = []

    async def list_enabled_alerts(self):
        return list(self.alerts)

    async def record_notification(self, trigger, result):
        self.recorded.append((trigger, result))

    async def update_token_snapshot(self, token_address, snapshot):
        self.snapshots.append((token_address, snapshot))

    async def get_push_chat_id(self, user_id):
        return None


class FakeMarketData:
    def __init__(self, snapshots):
        self.snapshots = snapshots
        self.calls = []

    async def fetch_snapshot(self, token_address):
        self.calls.append(token_address)
        return self.snapshots.get(token_address)


def cap_alert(alert_id="alert-1", token="TOKEN_A", user="user-1", high=1_000_000, channels=None, phone=None):
    return AlertConfig(
        id=alert_id,
        user_id=user,
        token_address=token,
        token_symbol=token[-1],
        channels=channels or ChannelFlags(push=True),
        market_cap=MarketCapMetric(enabled=True, high=high),
        user_phone=phone,
    )


def make_cycle(store, market_data, push_result=True, sms_result=True, clock=None, **kwargs):
    push = AsyncMock()
    push.send_push.return_value = push_result
    sms = AsyncMock()
    sms.send_sms.return_value = sms_result
    dispatcher = NotificationDispatcher(push_sender=push, sms_sender=sms, voice_sender=None)
    cooldown = CooldownTracker(window_seconds=900, clock=clock or FakeClock())
    cycle = AlertProcessingCycle(store, market_data, dispatcher, cooldown, token_delay=0, **kwargs)
    return cycle, push, sms, cooldown


@pytest.mark.asyncio
async def test_single_trigger_end_to_end_statistics():
    store = FakeStore([cap_alert()])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, push, _, cooldown = make_cycle(store, market_data)

    stats = await cycle.run()

    assert stats.to_dict() == {"processed": 1, "triggered": 1, "sent": 1, "errors": 0}
    push.send_push.assert_awaited_once()
    assert len(store.recorded) == 1
    _, result = store.recorded[0]
    assert (result.push_sent, result.sms_sent, result.voice_sent) == (True, False, False)
    assert len(cooldown) == 1
    assert store.snapshots[0][0] == "TOKEN_A"


@pytest.mark.asyncio
async def test_alerts_sharing_a_token_fetch_once():
    alerts = [cap_alert(alert_id=f"a{i}", user=f"user-{i}") for i in range(3)]
    store = FakeStore(alerts)
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=10)})
    cycle, _, _, _ = make_cycle(store, market_data)

    stats = await cycle.run()

    assert market_data.calls == ["TOKEN_A"]
    assert stats.processed == 3
    assert stats.triggered == 0


@pytest.mark.asyncio
async def test_cooldown_suppresses_then_releases():
    clock = FakeClock(0)
    store = FakeStore([cap_alert()])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, push, _, _ = make_cycle(store, market_data, clock=clock)

    await cycle.run()
    clock.now = 5 * 60
    second = await cycle.run()
    clock.now = 16 * 60
    third = await cycle.run()

    assert second.sent == 0
    assert second.suppressed == 1
    assert third.sent == 1
    assert push.send_push.await_count == 2


@pytest.mark.asyncio
async def test_all_channels_failing_does_not_arm_cooldown():
    store = FakeStore([cap_alert()])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, push, _, cooldown = make_cycle(store, market_data, push_result=False)

    first = await cycle.run()
    second = await cycle.run()

    assert first.to_dict() == {"processed": 1, "triggered": 1, "sent": 0, "errors": 1}
    assert second.triggered == 1
    assert push.send_push.await_count == 2
    assert len(cooldown) == 0


@pytest.mark.asyncio
async def test_partial_failure_still_arms_cooldown():
    alert = cap_alert(channels=ChannelFlags(push=True, sms=True), phone="+15551234567")
    store = FakeStore([alert])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, push, sms, cooldown = make_cycle(store, market_data)
    push.send_push.side_effect = RuntimeError("push provider down")

    stats = await cycle.run()

    _, result = store.recorded[0]
    assert (result.push_sent, result.sms_sent, result.voice_sent) == (False, True, False)
    assert stats.sent == 1
    assert stats.errors == 0
    assert len(cooldown) == 1


@pytest.mark.asyncio
async def test_unavailable_token_is_skipped_without_error():
    store = FakeStore([cap_alert(token="TOKEN_A"), cap_alert(alert_id="a2", token="TOKEN_B")])
    market_data = FakeMarketData({"TOKEN_B": MarketSnapshot("TOKEN_B", market_cap=2_000_000)})
    cycle, _, _, _ = make_cycle(store, market_data)

    stats = await cycle.run()

    assert market_data.calls == ["TOKEN_A", "TOKEN_B"]
    assert stats.to_dict() == {"processed": 1, "triggered": 1, "sent": 1, "errors": 0}


@pytest.mark.asyncio
async def test_store_load_failure_returns_early():
    store = FakeStore([])
    store.list_enabled_alerts = AsyncMock(side_effect=StoreError("database is locked"))
    market_data = FakeMarketData({})
    cycle, _, _, _ = make_cycle(store, market_data)

    stats = await cycle.run()

    assert stats.to_dict() == {"processed": 0, "triggered": 0, "sent": 0, "errors": 1}
    assert market_data.calls == []


@pytest.mark.asyncio
async def test_record_failure_counts_error_but_keeps_delivery():
    store = FakeStore([cap_alert()])
    store.record_notification = AsyncMock(side_effect=StoreError("disk full"))
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, _, _, cooldown = make_cycle(store, market_data)

    stats = await cycle.run()

    assert stats.sent == 1
    assert stats.errors == 1
    assert len(cooldown) == 1


@pytest.mark.asyncio
async def test_no_deliverable_channel_is_not_an_error():
    alert = cap_alert(channels=ChannelFlags(sms=True), phone=None)
    store = FakeStore([alert])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, _, sms, cooldown = make_cycle(store, market_data)

    stats = await cycle.run()

    assert stats.to_dict() == {"processed": 1, "triggered": 1, "sent": 0, "errors": 0}
    sms.send_sms.assert_not_awaited()
    assert len(cooldown) == 0
    assert store.recorded == []


@pytest.mark.asyncio
async def test_undeliverable_trigger_leaves_notification_log_empty(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.save_alert(cap_alert(channels=ChannelFlags(sms=True)))
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1_200_000)})
    cycle, _, sms, _ = make_cycle(store, market_data)

    for _ in range(5):
        stats = await cycle.run()
        assert stats.triggered == 1

    assert await store.fetch_notifications(limit=50) == []
    sms.send_sms.assert_not_awaited()
    await store.close()


@pytest.mark.asyncio
async def test_empty_store_returns_zero_statistics():
    cycle, _, _, _ = make_cycle(FakeStore([]), FakeMarketData({}))
    stats = await cycle.run()
    assert stats.to_dict() == {"processed": 0, "triggered": 0, "sent": 0, "errors": 0}


@pytest.mark.asyncio
async def test_concurrent_groups_process_every_token():
    alerts = [cap_alert(alert_id=f"a{i}", token=f"TOKEN_{i}") for i in range(5)]
    snapshots = {f"TOKEN_{i}": MarketSnapshot(f"TOKEN_{i}", market_cap=2_000_000) for i in range(5)}
    store = FakeStore(alerts)
    market_data = FakeMarketData(snapshots)
    cycle, _, _, _ = make_cycle(store, market_data, group_concurrency=3)

    stats = await cycle.run()

    assert sorted(market_data.calls) == sorted(snapshots)
    assert stats.to_dict() == {"processed": 5, "triggered": 5, "sent": 5, "errors": 0}


@pytest.mark.asyncio
async def test_snapshot_writeback_can_be_disabled():
    store = FakeStore([cap_alert()])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", market_cap=1)})
    cycle, _, _, _ = make_cycle(store, market_data, snapshot_writeback=False)

    await cycle.run()

    assert store.snapshots == []


def test_group_by_token_keeps_first_seen_order():
    alerts = [
        cap_alert(alert_id="1", token="B"),
        cap_alert(alert_id="2", token="A"),
        cap_alert(alert_id="3", token="B"),
    ]
    groups = group_by_token(alerts)
    assert list(groups) == ["B", "A"]
    assert [a.id for a in groups["B"]] == ["1", "3"]


@pytest.mark.asyncio
async def test_price_trigger_reaches_push_sender_with_compact_text():
    alert = AlertConfig(
        id="p1",
        user_id="u1",
        token_address="TOKEN_A",
        token_symbol="BONK",
        channels=ChannelFlags(push=True),
        price_change=PriceChangeMetric(enabled=True, threshold=20),
    )
    store = FakeStore([alert])
    market_data = FakeMarketData({"TOKEN_A": MarketSnapshot("TOKEN_A", change_24h=25.5)})
    cycle, push, _, _ = make_cycle(store, market_data)

    await cycle.run()

    push.send_push.assert_awaited_once_with("u1", "📈 BONK Price Alert: +25.50% change (up 20%)")
