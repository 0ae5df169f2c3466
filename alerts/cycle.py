"""One pass over every enabled alert: fetch, evaluate, gate, dispatch, log."""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from alerts.cooldown import CooldownTracker
from alerts.evaluator import evaluate
from alerts.models import AlertConfig, CycleStatistics, MarketSnapshot, TriggerEvent
from constants import TOKEN_GROUP_DELAY_SECONDS
from notifications.dispatcher import NotificationDispatcher
from storage.base import AlertStore

logger = logging.getLogger(__name__)


def group_by_token(alerts: List[AlertConfig]) -> Dict[str, List[AlertConfig]]:
    """Token address -> alerts, in first-seen order."""
    groups: Dict[str, List[AlertConfig]] = OrderedDict()
    for alert in alerts:
        groups.setdefault(alert.token_address, []).append(alert)
    return groups


class AlertProcessingCycle:
    """Runs a single alert cycle and returns its statistics.

    Token groups are processed one at a time with ``token_delay`` seconds
    between them. With ``group_concurrency`` above 1, up to that many groups
    run at once; the market data client still spaces its own outbound calls.
    ``run`` never raises except on cancellation.
    """

    def __init__(
        self,
        store: AlertStore,
        market_data,
        dispatcher: NotificationDispatcher,
        cooldown: CooldownTracker,
        *,
        token_delay: float = TOKEN_GROUP_DELAY_SECONDS,
        group_concurrency: int = 1,
        snapshot_writeback: bool = True,
    ) -> None:
        self.store = store
        self.market_data = market_data
        self.dispatcher = dispatcher
        self.cooldown = cooldown
        self.token_delay = token_delay
        self.group_concurrency = max(1, group_concurrency)
        self.snapshot_writeback = snapshot_writeback

    async def run(self) -> CycleStatistics:
        stats = CycleStatistics()
        try:
            alerts = await self.store.list_enabled_alerts()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Failed to load enabled alerts; aborting cycle")
            stats.errors += 1
            return stats

        alerts = [alert for alert in alerts if alert.notifications_enabled]
        if not alerts:
            logger.debug("No enabled alerts to process")
            return stats

        groups = group_by_token(alerts)
        logger.info("Processing %d alerts across %d tokens", len(alerts), len(groups))

        if self.group_concurrency == 1:
            for index, (token_address, group) in enumerate(groups.items()):
                if index > 0 and self.token_delay > 0:
                    await asyncio.sleep(self.token_delay)
                await self._process_group_safely(token_address, group, stats)
        else:
            semaphore = asyncio.Semaphore(self.group_concurrency)

            async def worker(token_address: str, group: List[AlertConfig]) -> None:
                async with semaphore:
                    await self._process_group_safely(token_address, group, stats)
                    if self.token_delay > 0:
                        await asyncio.sleep(self.token_delay)

            await asyncio.gather(*(worker(token, group) for token, group in groups.items()))

        logger.info(
            "Cycle complete: processed=%d triggered=%d sent=%d errors=%d suppressed=%d",
            stats.processed, stats.triggered, stats.sent, stats.errors, stats.suppressed,
        )
        return stats

    async def _process_group_safely(
        self,
        token_address: str,
        group: List[AlertConfig],
        stats: CycleStatistics,
    ) -> None:
        try:
            await self._process_group(token_address, group, stats)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Unexpected error processing token %s", token_address)
            stats.errors += 1

    async def _fetch(self, token_address: str) -> Optional[MarketSnapshot]:
        try:
            return await self.market_data.fetch_snapshot(token_address)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Market data unavailable for %s: %s", token_address, exc)
            return None

    async def _process_group(
        self,
        token_address: str,
        group: List[AlertConfig],
        stats: CycleStatistics,
    ) -> None:
        snapshot = await self._fetch(token_address)
        if snapshot is None:
            logger.info("No market data for %s; skipping %d alert(s)", token_address, len(group))
            return

        if self.snapshot_writeback:
            try:
                await self.store.update_token_snapshot(token_address, snapshot)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to store snapshot for %s", token_address)
                stats.errors += 1

        for alert in group:
            stats.processed += 1
            for trigger in evaluate(alert, snapshot):
                await self._handle_trigger(trigger, stats)

    async def _handle_trigger(self, trigger: TriggerEvent, stats: CycleStatistics) -> None:
        key = CooldownTracker.key(trigger.alert_id, trigger.kind)
        if self.cooldown.is_suppressed(trigger.alert_id, trigger.kind):
            logger.debug("Trigger %s suppressed by cooldown", key)
            stats.suppressed += 1
            return

        stats.triggered += 1
        logger.info("Alert %s triggered: %s", trigger.alert_id, trigger.message)
        try:
            result = await self.dispatcher.dispatch(trigger)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Dispatch failed for %s", key)
            stats.errors += 1
            return

        if result.any_sent:
            self.cooldown.record_fired(trigger.alert_id, trigger.kind)
            stats.sent += 1
        elif result.was_attempted:
            logger.warning("Every channel failed for %s; will retry next cycle", key)
            stats.errors += 1
        else:
            logger.info("Alert %s has no deliverable channel", trigger.alert_id)
            return

        try:
            await self.store.record_notification(trigger, result)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Failed to record notification for %s", key)
            stats.errors += 1
