"""Threshold evaluation: (alert, snapshot) -> ordered trigger events.

Pure and deterministic. Evaluation order is market-cap-high, market-cap-low,
price-change, volume, and every matching condition is returned.
"""
from __future__ import annotations

from typing import List, Optional

from alerts.models import (
    AlertConfig,
    MarketSnapshot,
    PriceDirection,
    TriggerEvent,
    TriggerKind,
    VolumeComparison,
)
from notifications.formatting import format_usd


def evaluate(alert: AlertConfig, snapshot: MarketSnapshot) -> List[TriggerEvent]:
    if not alert.notifications_enabled:
        return []

    triggers: List[TriggerEvent] = []

    market_cap = alert.market_cap
    if market_cap.enabled:
        if market_cap.high > 0 and snapshot.market_cap > market_cap.high:
            triggers.append(_build_trigger(
                alert,
                TriggerKind.MARKET_CAP_HIGH,
                f"Market cap exceeded {format_usd(market_cap.high)}",
                snapshot.market_cap,
                market_cap.high,
            ))
        # Both bounds can fire when low > high.
        if market_cap.low > 0 and snapshot.market_cap < market_cap.low:
            triggers.append(_build_trigger(
                alert,
                TriggerKind.MARKET_CAP_LOW,
                f"Market cap dropped below {format_usd(market_cap.low)}",
                snapshot.market_cap,
                market_cap.low,
            ))

    price_trigger = _evaluate_price_change(alert, snapshot)
    if price_trigger:
        triggers.append(price_trigger)

    volume_trigger = _evaluate_volume(alert, snapshot)
    if volume_trigger:
        triggers.append(volume_trigger)

    return triggers


def _evaluate_price_change(alert: AlertConfig, snapshot: MarketSnapshot) -> Optional[TriggerEvent]:
    metric = alert.price_change
    if not metric.enabled or metric.threshold <= 0:
        return None

    change = snapshot.change_24h
    direction_text = None
    if metric.direction is PriceDirection.BOTH and abs(change) >= metric.threshold:
        direction_text = "pumped" if change > 0 else "dumped"
    elif metric.direction is PriceDirection.UP and change >= metric.threshold:
        direction_text = "pumped"
    elif metric.direction is PriceDirection.DOWN and change < 0 and abs(change) >= metric.threshold:
        direction_text = "dumped"

    if direction_text is None:
        return None
    return _build_trigger(
        alert,
        TriggerKind.PRICE_CHANGE,
        f"Price {direction_text} by {abs(change):.2f}%",
        change,
        metric.threshold,
    )


def _evaluate_volume(alert: AlertConfig, snapshot: MarketSnapshot) -> Optional[TriggerEvent]:
    metric = alert.volume
    if not metric.enabled or metric.threshold <= 0:
        return None

    volume = snapshot.volume_24h
    if metric.comparison is VolumeComparison.GREATER and volume > metric.threshold:
        comparison_text = "exceeded"
    elif metric.comparison is VolumeComparison.LESS and volume < metric.threshold:
        comparison_text = "dropped below"
    else:
        return None
    return _build_trigger(
        alert,
        TriggerKind.VOLUME,
        f"Volume {comparison_text} {format_usd(metric.threshold)}",
        volume,
        metric.threshold,
    )


def _build_trigger(
    alert: AlertConfig,
    kind: TriggerKind,
    message: str,
    current_value: float,
    threshold_value: float,
) -> TriggerEvent:
    return TriggerEvent(
        alert_id=alert.id,
        user_id=alert.user_id,
        token_symbol=alert.token_symbol,
        token_name=alert.display_name,
        kind=kind,
        message=message,
        current_value=current_value,
        threshold_value=threshold_value,
        channels=alert.channels,
        user_phone=alert.user_phone,
    )
