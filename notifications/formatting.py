"""Channel-specific message text for trigger events."""
from __future__ import annotations

from alerts.models import TriggerEvent, TriggerKind


def format_compact(value: float) -> str:
    """1_200_000 -> '1.2M'. Used for SMS, push and evaluator messages."""
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.0f}K"
    return f"{value:.2f}"


def format_usd(value: float) -> str:
    return f"${format_compact(value)}"


def _plain_number(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def format_spoken_usd(value: float) -> str:
    """1_200_000 -> '1.2 million dollars'. No symbols, safe for text-to-speech."""
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f} billion dollars"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f} million dollars"
    if value >= 1_000:
        return f"{value / 1_000:.0f} thousand dollars"
    return f"{_plain_number(value)} dollars"


def _relation(trigger: TriggerEvent) -> str:
    return "above" if trigger.current_value > trigger.threshold_value else "below"


def format_alert_message(trigger: TriggerEvent) -> str:
    """Compact text for SMS and push."""
    symbol = trigger.token_symbol
    if trigger.kind.is_market_cap:
        return (
            f"🚨 {symbol} Market Cap Alert: {format_usd(trigger.current_value)} "
            f"({_relation(trigger)} {format_usd(trigger.threshold_value)})"
        )
    if trigger.kind is TriggerKind.PRICE_CHANGE:
        change = trigger.current_value
        sign = "+" if change >= 0 else ""
        direction = "up" if change >= 0 else "down"
        return (
            f"📈 {symbol} Price Alert: {sign}{change:.2f}% change "
            f"({direction} {abs(trigger.threshold_value):g}%)"
        )
    if trigger.kind is TriggerKind.VOLUME:
        return (
            f"📊 {symbol} Volume Alert: {format_usd(trigger.current_value)} in 24h "
            f"({_relation(trigger)} {format_usd(trigger.threshold_value)})"
        )
    return f"🔔 {symbol}: {trigger.message}"


def format_voice_message(trigger: TriggerEvent) -> str:
    """Spoken text for voice calls."""
    symbol = trigger.token_symbol
    if trigger.kind.is_market_cap:
        return (
            f"Alert for {symbol}. Market cap is now {format_spoken_usd(trigger.current_value)}, "
            f"which is {_relation(trigger)} your threshold of {format_spoken_usd(trigger.threshold_value)}."
        )
    if trigger.kind is TriggerKind.PRICE_CHANGE:
        verb = "increased" if trigger.current_value >= 0 else "decreased"
        return (
            f"Alert for {symbol}. Price has {verb} by {abs(trigger.current_value):.1f} percent "
            f"in the last 24 hours."
        )
    if trigger.kind is TriggerKind.VOLUME:
        return (
            f"Alert for {symbol}. Trading volume has reached {format_spoken_usd(trigger.current_value)} "
            f"in the last 24 hours."
        )
    return f"You have an alert for {symbol}. Please check your dashboard for details."
