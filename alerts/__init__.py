"""Alert evaluation engine: models, evaluator, cooldown, cycle and scheduler."""

from .models import (
    AlertConfig,
    ChannelFlags,
    CycleStatistics,
    MarketCapMetric,
    MarketSnapshot,
    MonitorStatistics,
    PriceChangeMetric,
    PriceDirection,
    TriggerEvent,
    TriggerKind,
    VolumeComparison,
    VolumeMetric,
)
from .evaluator import evaluate
from .cooldown import CooldownTracker

__all__ = [
    "AlertConfig",
    "ChannelFlags",
    "CooldownTracker",
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
    "evaluate",
]
