"""Storage package providing persistence for alerts and notification history."""

from .base import AlertStore, StoreError
from .sqlite_store import SQLiteAlertStore

__all__ = ["AlertStore", "SQLiteAlertStore", "StoreError"]
