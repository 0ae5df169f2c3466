from datetime import datetime

import pytest

from alerts.models import (
    AlertConfig,
    ChannelFlags,
    MarketCapMetric,
    MarketSnapshot,
    PriceChangeMetric,
    PriceDirection,
    TriggerEvent,
    TriggerKind,
    VolumeComparison,
    VolumeMetric,
)
from notifications.dispatcher import DispatchResult
from storage import SQLiteAlertStore, StoreError


def make_alert(alert_id="alert-1", user_id="user-1", token="TOKEN_A", enabled=True):
    return AlertConfig(
        id=alert_id,
        user_id=user_id,
        token_address=token,
        token_symbol="BONK",
        token_name="Bonk",
        notifications_enabled=enabled,
        channels=ChannelFlags(push=True, sms=True),
        market_cap=MarketCapMetric(enabled=True, high=1_000_000, low=100_000),
        price_change=PriceChangeMetric(enabled=True, threshold=20, direction=PriceDirection.DOWN),
        volume=VolumeMetric(enabled=True, threshold=50_000, comparison=VolumeComparison.LESS),
    )


def make_trigger(alert_id="alert-1"):
    return TriggerEvent(
        alert_id=alert_id,
        user_id="user-1",
        token_symbol="BONK",
        token_name="Bonk",
        kind=TriggerKind.MARKET_CAP_HIGH,
        message="Market cap exceeded $1.0M",
        current_value=1_200_000,
        threshold_value=1_000_000,
        channels=ChannelFlags(push=True),
    )


@pytest.mark.asyncio
async def test_save_and_list_enabled_alerts_round_trip(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.upsert_user("user-1", phone_number="+14155550100", telegram_chat_id="777")
    await store.save_alert(make_alert())
    await store.save_alert(make_alert(alert_id="alert-2", enabled=False))

    alerts = await store.list_enabled_alerts()

    assert [a.id for a in alerts] == ["alert-1"]
    alert = alerts[0]
    assert alert.user_phone == "+14155550100"
    assert alert.channels == ChannelFlags(push=True, sms=True, calls=False)
    assert alert.market_cap == MarketCapMetric(enabled=True, high=1_000_000, low=100_000)
    assert alert.price_change.direction is PriceDirection.DOWN
    assert alert.volume.comparison is VolumeComparison.LESS
    assert len(await store.list_alerts()) == 2
    assert await store.get_push_chat_id("user-1") == "777"
    assert await store.get_push_chat_id("nobody") is None

    await store.close()


@pytest.mark.asyncio
async def test_missing_metrics_row_means_all_disabled(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.save_alert(make_alert())
    store._connection.execute("DELETE FROM alert_metrics")
    store._connection.commit()

    alert = (await store.list_enabled_alerts())[0]

    assert alert.market_cap.enabled is False
    assert alert.price_change.enabled is False
    assert alert.volume.enabled is False
    assert alert.market_cap.high == 0.0

    await store.close()


@pytest.mark.asyncio
async def test_aliases_stored_by_other_writers_are_normalised(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.save_alert(make_alert())
    store._connection.execute(
        "UPDATE alert_metrics SET price_change_direction = 'pump', volume_comparison = 'decrease'"
    )
    store._connection.commit()

    alert = (await store.list_enabled_alerts())[0]

    assert alert.price_change.direction is PriceDirection.UP
    assert alert.volume.comparison is VolumeComparison.LESS

    await store.close()


@pytest.mark.asyncio
async def test_record_and_fetch_notifications(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.save_alert(make_alert())

    await store.record_notification(make_trigger(), DispatchResult(push_sent=True))
    await store.record_notification(make_trigger(), DispatchResult())

    records = await store.fetch_notifications(limit=10)

    assert len(records) == 2
    latest = records[0]
    assert latest["delivered"] is False
    assert records[1]["delivered"] is True
    assert records[1]["push_sent"] is True
    assert records[1]["trigger_kind"] == "market_cap_high"
    assert isinstance(latest["sent_at"], datetime)
    assert len(await store.fetch_notifications(limit=1)) == 1

    await store.close()


@pytest.mark.asyncio
async def test_update_token_snapshot_writes_market_values(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.save_alert(make_alert())
    await store.save_alert(make_alert(alert_id="alert-2", user_id="user-2"))
    await store.save_alert(make_alert(alert_id="alert-3", token="TOKEN_B"))

    await store.update_token_snapshot(
        "TOKEN_A",
        MarketSnapshot("TOKEN_A", price=0.5, change_24h=-3.2, market_cap=900_000, volume_24h=12_000),
    )

    rows = {row["id"]: row for row in await store.fetch_alert_rows()}
    assert rows["alert-1"]["market_cap"] == 900_000
    assert rows["alert-2"]["change_24h"] == -3.2
    assert rows["alert-3"]["market_cap"] is None
    assert rows["alert-1"]["market_cap_high"] == 1_000_000

    await store.close()


@pytest.mark.asyncio
async def test_delete_alert_cascades(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")
    await store.save_alert(make_alert())
    await store.record_notification(make_trigger(), DispatchResult(push_sent=True))

    assert await store.delete_alert("alert-1") is True
    assert await store.delete_alert("alert-1") is False
    assert await store.list_alerts() == []
    assert await store.fetch_notifications() == []
    metrics = store._connection.execute("SELECT COUNT(*) FROM alert_metrics").fetchone()[0]
    assert metrics == 0

    await store.close()


@pytest.mark.asyncio
async def test_record_for_unknown_alert_raises_store_error(tmp_path):
    store = SQLiteAlertStore(db_path=tmp_path / "alerts.db")

    with pytest.raises(StoreError):
        await store.record_notification(make_trigger("missing"), DispatchResult())

    await store.close()


def test_unopenable_database_raises_store_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    with pytest.raises(StoreError):
        SQLiteAlertStore(db_path=blocker / "alerts.db")
