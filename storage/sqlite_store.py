"""SQLite-backed alert store: subscriptions, users and the notification log."""
from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, TypeVar

from alerts.models import (
    AlertConfig,
    ChannelFlags,
    MarketCapMetric,
    MarketSnapshot,
    PriceChangeMetric,
    PriceDirection,
    TriggerEvent,
    VolumeComparison,
    VolumeMetric,
)
from constants import DEFAULT_DB_PATH
from storage.base import AlertStore, StoreError

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

T = TypeVar("T")


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


def _float(value) -> float:
    return float(value) if value is not None else 0.0


class SQLiteAlertStore(AlertStore):
    """Provides async-friendly access to alerts and notification history."""

    def __init__(self, db_path: Path | str = Path(DEFAULT_DB_PATH)) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            if self.db_path != Path(":memory:"):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._connection.row_factory = sqlite3.Row
            self._configure()
            self._create_schema()
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"Could not open alert store at {self.db_path}: {exc}") from exc

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                phone_number TEXT,
                telegram_chat_id TEXT,
                wallet_address TEXT
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS alerts (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                token_address TEXT NOT NULL,
                token_symbol TEXT NOT NULL,
                token_name TEXT,
                notifications_enabled INTEGER NOT NULL DEFAULT 1,
                push_enabled INTEGER NOT NULL DEFAULT 0,
                sms_enabled INTEGER NOT NULL DEFAULT 0,
                calls_enabled INTEGER NOT NULL DEFAULT 0,
                price REAL,
                market_cap REAL,
                change_24h REAL,
                volume_24h REAL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS alert_metrics (
                alert_id TEXT PRIMARY KEY,
                market_cap_enabled INTEGER NOT NULL DEFAULT 0,
                price_change_enabled INTEGER NOT NULL DEFAULT 0,
                volume_enabled INTEGER NOT NULL DEFAULT 0,
                market_cap_high REAL NOT NULL DEFAULT 0,
                market_cap_low REAL NOT NULL DEFAULT 0,
                price_change_threshold REAL NOT NULL DEFAULT 0,
                price_change_direction TEXT NOT NULL DEFAULT 'both',
                volume_threshold REAL NOT NULL DEFAULT 0,
                volume_period TEXT NOT NULL DEFAULT '24h',
                volume_comparison TEXT NOT NULL DEFAULT 'greater',
                FOREIGN KEY (alert_id) REFERENCES alerts(id) ON DELETE CASCADE
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS notification_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                token_symbol TEXT NOT NULL,
                trigger_kind TEXT NOT NULL,
                message TEXT NOT NULL,
                current_value REAL,
                threshold_value REAL,
                push_sent INTEGER NOT NULL DEFAULT 0,
                sms_sent INTEGER NOT NULL DEFAULT 0,
                voice_sent INTEGER NOT NULL DEFAULT 0,
                delivered INTEGER NOT NULL DEFAULT 0,
                sent_at TEXT NOT NULL,
                FOREIGN KEY (alert_id) REFERENCES alerts(id) ON DELETE CASCADE
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_alerts_token
                ON alerts(token_address);
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_notification_log_time
                ON notification_log(sent_at);
            """,
        ]

        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def _run(self, func: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    # --- Engine-facing reads and writes ---

    async def list_enabled_alerts(self) -> list[AlertConfig]:
        return await self._run(self._list_alerts_sync, True)

    async def list_alerts(self) -> list[AlertConfig]:
        return await self._run(self._list_alerts_sync, False)

    def _list_alerts_sync(self, enabled_only: bool) -> list[AlertConfig]:
        query = """
            SELECT
                a.*,
                u.phone_number,
                m.alert_id AS metrics_alert_id,
                m.market_cap_enabled,
                m.price_change_enabled,
                m.volume_enabled,
                m.market_cap_high,
                m.market_cap_low,
                m.price_change_threshold,
                m.price_change_direction,
                m.volume_threshold,
                m.volume_period,
                m.volume_comparison
            FROM alerts a
            LEFT JOIN users u ON u.id = a.user_id
            LEFT JOIN alert_metrics m ON m.alert_id = a.id
            WHERE (? = 0 OR a.notifications_enabled = 1)
            ORDER BY a.created_at, a.id
        """
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(query, (1 if enabled_only else 0,))
            rows = cursor.fetchall()
            cursor.close()
        return [self._row_to_alert(row) for row in rows]

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> AlertConfig:
        alert = AlertConfig(
            id=row["id"],
            user_id=row["user_id"],
            token_address=row["token_address"],
            token_symbol=row["token_symbol"],
            token_name=row["token_name"],
            notifications_enabled=bool(row["notifications_enabled"]),
            channels=ChannelFlags(
                push=bool(row["push_enabled"]),
                sms=bool(row["sms_enabled"]),
                calls=bool(row["calls_enabled"]),
            ),
            user_phone=row["phone_number"],
        )
        # No metrics row: every metric stays disabled with zero thresholds.
        if row["metrics_alert_id"] is None:
            return alert
        alert.market_cap = MarketCapMetric(
            enabled=bool(row["market_cap_enabled"]),
            high=_float(row["market_cap_high"]),
            low=_float(row["market_cap_low"]),
        )
        alert.price_change = PriceChangeMetric(
            enabled=bool(row["price_change_enabled"]),
            threshold=_float(row["price_change_threshold"]),
            direction=PriceDirection.parse(row["price_change_direction"]),
        )
        alert.volume = VolumeMetric(
            enabled=bool(row["volume_enabled"]),
            threshold=_float(row["volume_threshold"]),
            comparison=VolumeComparison.parse(row["volume_comparison"]),
            period=row["volume_period"] or "24h",
        )
        return alert

    async def record_notification(self, trigger: TriggerEvent, result) -> None:
        await self._run(self._record_notification_sync, trigger, result)

    def _record_notification_sync(self, trigger: TriggerEvent, result) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO notification_log (
                    alert_id, user_id, token_symbol, trigger_kind, message,
                    current_value, threshold_value, push_sent, sms_sent,
                    voice_sent, delivered, sent_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trigger.alert_id,
                    trigger.user_id,
                    trigger.token_symbol,
                    trigger.kind.value,
                    trigger.message,
                    trigger.current_value,
                    trigger.threshold_value,
                    int(result.push_sent),
                    int(result.sms_sent),
                    int(result.voice_sent),
                    int(result.any_sent),
                    _utc_now(),
                ),
            )
            self._connection.commit()
            cursor.close()

    async def update_token_snapshot(self, token_address: str, snapshot: MarketSnapshot) -> None:
        await self._run(self._update_token_snapshot_sync, token_address, snapshot)

    def _update_token_snapshot_sync(self, token_address: str, snapshot: MarketSnapshot) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE alerts
                SET price = ?, market_cap = ?, change_24h = ?, volume_24h = ?, updated_at = ?
                WHERE token_address = ?
                """,
                (
                    snapshot.price,
                    snapshot.market_cap,
                    snapshot.change_24h,
                    snapshot.volume_24h,
                    _utc_now(),
                    token_address,
                ),
            )
            self._connection.commit()
            cursor.close()

    async def get_push_chat_id(self, user_id: str) -> Optional[str]:
        return await self._run(self._get_push_chat_id_sync, user_id)

    def _get_push_chat_id_sync(self, user_id: str) -> Optional[str]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT telegram_chat_id FROM users WHERE id = ?", (user_id,))
            row = cursor.fetchone()
            cursor.close()
        return row["telegram_chat_id"] if row else None

    # --- Operator and test helpers ---

    async def upsert_user(
        self,
        user_id: str,
        *,
        phone_number: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> None:
        await self._run(self._upsert_user_sync, user_id, phone_number, telegram_chat_id, wallet_address)

    def _upsert_user_sync(
        self,
        user_id: str,
        phone_number: Optional[str],
        telegram_chat_id: Optional[str],
        wallet_address: Optional[str],
    ) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO users (id, phone_number, telegram_chat_id, wallet_address)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    phone_number = excluded.phone_number,
                    telegram_chat_id = excluded.telegram_chat_id,
                    wallet_address = excluded.wallet_address
                """,
                (user_id, phone_number, telegram_chat_id, wallet_address),
            )
            self._connection.commit()
            cursor.close()

    async def save_alert(self, alert: AlertConfig) -> None:
        """Inserts or replaces the alert and its metric configuration."""
        await self._run(self._save_alert_sync, alert)

    def _save_alert_sync(self, alert: AlertConfig) -> None:
        now = _utc_now()
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute(
                    "INSERT OR IGNORE INTO users (id) VALUES (?)",
                    (alert.user_id,),
                )
                cursor.execute(
                    """
                    INSERT INTO alerts (
                        id, user_id, token_address, token_symbol, token_name,
                        notifications_enabled, push_enabled, sms_enabled, calls_enabled,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        user_id = excluded.user_id,
                        token_address = excluded.token_address,
                        token_symbol = excluded.token_symbol,
                        token_name = excluded.token_name,
                        notifications_enabled = excluded.notifications_enabled,
                        push_enabled = excluded.push_enabled,
                        sms_enabled = excluded.sms_enabled,
                        calls_enabled = excluded.calls_enabled,
                        updated_at = excluded.updated_at
                    """,
                    (
                        alert.id,
                        alert.user_id,
                        alert.token_address,
                        alert.token_symbol,
                        alert.token_name,
                        int(alert.notifications_enabled),
                        int(alert.channels.push),
                        int(alert.channels.sms),
                        int(alert.channels.calls),
                        now,
                        now,
                    ),
                )
                cursor.execute(
                    """
                    INSERT OR REPLACE INTO alert_metrics (
                        alert_id, market_cap_enabled, price_change_enabled, volume_enabled,
                        market_cap_high, market_cap_low, price_change_threshold,
                        price_change_direction, volume_threshold, volume_period,
                        volume_comparison
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        alert.id,
                        int(alert.market_cap.enabled),
                        int(alert.price_change.enabled),
                        int(alert.volume.enabled),
                        alert.market_cap.high,
                        alert.market_cap.low,
                        alert.price_change.threshold,
                        alert.price_change.direction.value,
                        alert.volume.threshold,
                        alert.volume.period,
                        alert.volume.comparison.value,
                    ),
                )
                self._connection.commit()
            except sqlite3.Error:
                self._connection.rollback()
                raise
            finally:
                cursor.close()

    async def delete_alert(self, alert_id: str) -> bool:
        """Removes the alert; metrics and notification history cascade."""
        return await self._run(self._delete_alert_sync, alert_id)

    def _delete_alert_sync(self, alert_id: str) -> bool:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
            deleted = cursor.rowcount > 0
            self._connection.commit()
            cursor.close()
        return deleted

    async def fetch_alert_rows(self) -> list[dict]:
        """Alerts with their last stored market values, for the CLI overview."""
        return await self._run(self._fetch_alert_rows_sync)

    def _fetch_alert_rows_sync(self) -> list[dict]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT a.id, a.user_id, a.token_symbol, a.notifications_enabled,
                       a.push_enabled, a.sms_enabled, a.calls_enabled, a.price,
                       a.market_cap, a.change_24h, a.volume_24h, a.updated_at,
                       m.market_cap_enabled, m.market_cap_high, m.market_cap_low,
                       m.price_change_enabled, m.price_change_threshold,
                       m.price_change_direction, m.volume_enabled,
                       m.volume_threshold, m.volume_comparison
                FROM alerts a
                LEFT JOIN alert_metrics m ON m.alert_id = a.id
                ORDER BY a.created_at, a.id
                """
            )
            rows = cursor.fetchall()
            cursor.close()
        return [dict(row) for row in rows]

    async def fetch_notifications(self, *, limit: int = 10) -> list[dict]:
        return await self._run(self._fetch_notifications_sync, limit)

    def _fetch_notifications_sync(self, limit: int) -> list[dict]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT * FROM notification_log
                ORDER BY sent_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            )
            rows = cursor.fetchall()
            cursor.close()

        records: list[dict] = []
        for row in rows:
            records.append({
                "sent_at": datetime.strptime(row["sent_at"], ISO_FORMAT),
                "alert_id": row["alert_id"],
                "user_id": row["user_id"],
                "token_symbol": row["token_symbol"],
                "trigger_kind": row["trigger_kind"],
                "message": row["message"],
                "current_value": row["current_value"],
                "threshold_value": row["threshold_value"],
                "push_sent": bool(row["push_sent"]),
                "sms_sent": bool(row["sms_sent"]),
                "voice_sent": bool(row["voice_sent"]),
                "delivered": bool(row["delivered"]),
            })
        return records

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            self._connection.commit()
            self._connection.close()


__all__ = ["SQLiteAlertStore"]
