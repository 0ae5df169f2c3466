"""Data-access interface consumed by the alert engine."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from alerts.models import AlertConfig, MarketSnapshot, TriggerEvent


class StoreError(Exception):
    """Raised when the backing store cannot complete an operation."""


class AlertStore(ABC):
    @abstractmethod
    async def list_enabled_alerts(self) -> List[AlertConfig]:
        """Alerts whose master notification flag is on, with user phone resolved."""

    @abstractmethod
    async def record_notification(self, trigger: TriggerEvent, result) -> None:
        """Appends one dispatch outcome to the notification log."""

    async def update_token_snapshot(self, token_address: str, snapshot: MarketSnapshot) -> None:
        """Stores the latest market values on every alert for the token."""

    async def get_push_chat_id(self, user_id: str) -> Optional[str]:
        return None

    async def close(self) -> None:
        pass
