"""In-memory cooldown gate keyed by (alert id, trigger kind)."""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional

from alerts.models import TriggerKind
from constants import ALERT_COOLDOWN_SECONDS


class CooldownTracker:
    """Suppresses re-notification for the same alert and trigger kind.

    The window runs from the last successful dispatch. State lives only in
    this process and is lost on restart.
    """

    def __init__(
        self,
        window_seconds: float = ALERT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_fired: Dict[str, float] = {}

    @staticmethod
    def key(alert_id: str, kind: TriggerKind) -> str:
        return f"{alert_id}-{kind.value}"

    def is_suppressed(self, alert_id: str, kind: TriggerKind, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        with self._lock:
            last = self._last_fired.get(self.key(alert_id, kind))
        if last is None:
            return False
        return (now - last) < self.window_seconds

    def record_fired(self, alert_id: str, kind: TriggerKind, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        with self._lock:
            self._last_fired[self.key(alert_id, kind)] = now

    def prune(self, now: Optional[float] = None) -> int:
        """Drops entries whose window has elapsed. Returns how many were removed."""
        now = self._clock() if now is None else now
        with self._lock:
            expired = [k for k, ts in self._last_fired.items() if (now - ts) >= self.window_seconds]
            for key in expired:
                del self._last_fired[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_fired)
