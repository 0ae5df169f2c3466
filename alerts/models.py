"""Dataclasses describing alert subscriptions, market snapshots and trigger events."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TriggerKind(str, Enum):
    MARKET_CAP_HIGH = "market_cap_high"
    MARKET_CAP_LOW = "market_cap_low"
    PRICE_CHANGE = "price_change"
    VOLUME = "volume"

    @property
    def is_market_cap(self) -> bool:
        return self in (TriggerKind.MARKET_CAP_HIGH, TriggerKind.MARKET_CAP_LOW)


class PriceDirection(str, Enum):
    BOTH = "both"
    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PriceDirection":
        aliases = {"pump": cls.UP, "dump": cls.DOWN}
        key = (value or "").strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            return cls.BOTH


class VolumeComparison(str, Enum):
    GREATER = "greater"
    LESS = "less"

    @classmethod
    def parse(cls, value: Optional[str]) -> "VolumeComparison":
        aliases = {"increase": cls.GREATER, "decrease": cls.LESS}
        key = (value or "").strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            return cls.GREATER


@dataclass(slots=True)
class MarketCapMetric:
    enabled: bool = False
    high: float = 0.0
    low: float = 0.0


@dataclass(slots=True)
class PriceChangeMetric:
    enabled: bool = False
    threshold: float = 0.0
    direction: PriceDirection = PriceDirection.BOTH


@dataclass(slots=True)
class VolumeMetric:
    enabled: bool = False
    threshold: float = 0.0
    comparison: VolumeComparison = VolumeComparison.GREATER
    period: str = "24h"


@dataclass(slots=True)
class ChannelFlags:
    push: bool = False
    sms: bool = False
    calls: bool = False


@dataclass(slots=True)
class AlertConfig:
    """A user's subscription to threshold monitoring of one token."""
    id: str
    user_id: str
    token_address: str
    token_symbol: str
    token_name: Optional[str] = None
    notifications_enabled: bool = True
    channels: ChannelFlags = field(default_factory=ChannelFlags)
    market_cap: MarketCapMetric = field(default_factory=MarketCapMetric)
    price_change: PriceChangeMetric = field(default_factory=PriceChangeMetric)
    volume: VolumeMetric = field(default_factory=VolumeMetric)
    user_phone: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.token_name or self.token_symbol


@dataclass(slots=True)
class MarketSnapshot:
    token_address: str
    price: float = 0.0
    change_24h: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    liquidity_usd: float = 0.0
    dex_id: Optional[str] = None
    pair_address: Optional[str] = None


@dataclass(slots=True)
class TriggerEvent:
    alert_id: str
    user_id: str
    token_symbol: str
    token_name: str
    kind: TriggerKind
    message: str
    current_value: float
    threshold_value: float
    channels: ChannelFlags
    user_phone: Optional[str] = None


@dataclass(slots=True)
class CycleStatistics:
    processed: int = 0
    triggered: int = 0
    sent: int = 0
    errors: int = 0
    suppressed: int = 0

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "triggered": self.triggered,
            "sent": self.sent,
            "errors": self.errors,
        }


@dataclass(slots=True)
class MonitorStatistics:
    """Totals accumulated by the scheduler across cycles."""
    cycles_run: int = 0
    alerts_processed: int = 0
    triggers_fired: int = 0
    notifications_sent: int = 0
    errors: int = 0
    skipped_ticks: int = 0
    last_run: Optional[datetime] = None

    def add(self, stats: CycleStatistics, finished_at: datetime) -> None:
        self.cycles_run += 1
        self.alerts_processed += stats.processed
        self.triggers_fired += stats.triggered
        self.notifications_sent += stats.sent
        self.errors += stats.errors
        self.last_run = finished_at


__all__ = [
    "AlertConfig",
    "ChannelFlags",
    "CycleStatistics",
    "MarketCapMetric",
    "MarketSnapshot",
    "MonitorStatistics",
    "PriceChangeMetric",
    "PriceDirection",
    "TriggerEvent",
    "TriggerKind",
    "VolumeComparison",
    "VolumeMetric",
]
