"""Trigger API operations returning (status code, JSON payload) pairs.

Kept free of any web framework so the HTTP routes, the Telegram commands
and the CLI can share one implementation.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from alerts.models import ChannelFlags, TriggerEvent, TriggerKind
from constants import GENERIC_ERROR_MESSAGE, TEST_ALERT_ID, TEST_NOTIFICATION_VALUES
from notifications.channels import is_valid_e164
from notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, Any]]

TEST_ALERT_TYPES = {
    'market_cap': TriggerKind.MARKET_CAP_HIGH,
    'market_cap_high': TriggerKind.MARKET_CAP_HIGH,
    'market_cap_low': TriggerKind.MARKET_CAP_LOW,
    'price_change': TriggerKind.PRICE_CHANGE,
    'volume': TriggerKind.VOLUME,
}

REQUIRED_TEST_FIELDS = ('userId', 'tokenSymbol', 'alertType')


def _sample_values(alert_type: str) -> Tuple[float, float]:
    if alert_type.startswith('market_cap'):
        return TEST_NOTIFICATION_VALUES['market_cap']
    return TEST_NOTIFICATION_VALUES[alert_type]


class TriggerAPI:
    """External entry points: run a cycle now, or send a test notification."""

    def __init__(self, scheduler, dispatcher: NotificationDispatcher) -> None:
        self.scheduler = scheduler
        self.dispatcher = dispatcher

    def health(self) -> Response:
        return 200, {
            'status': 'Alert processing endpoint is active',
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    async def process_now(self) -> Response:
        logger.info("Manual alert processing triggered")
        try:
            stats = await self.scheduler.run_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Manual alert processing failed")
            return 500, {'error': GENERIC_ERROR_MESSAGE}
        return 200, {
            'success': True,
            'stats': stats.to_dict(),
            'message': 'Alert processing completed successfully',
        }

    async def send_test_notification(self, body: Optional[Dict[str, Any]]) -> Response:
        """Dispatches a synthetic trigger; evaluation and cooldown are bypassed."""
        if not isinstance(body, dict):
            return 400, {'error': 'Request body must be a JSON object'}

        missing = [name for name in REQUIRED_TEST_FIELDS if not body.get(name)]
        if missing:
            return 400, {'error': f"Missing required fields: {', '.join(REQUIRED_TEST_FIELDS)}"}

        alert_type = str(body['alertType'])
        kind = TEST_ALERT_TYPES.get(alert_type)
        if kind is None:
            return 400, {'error': f"Unknown alertType '{alert_type}'"}

        user_phone = body.get('userPhone') or None
        if user_phone is not None and not is_valid_e164(str(user_phone)):
            return 400, {'error': 'userPhone must be in E.164 format'}

        channels = body.get('channels') or {}
        if not isinstance(channels, dict):
            return 400, {'error': 'channels must be an object'}

        token_symbol = str(body['tokenSymbol'])
        display_name = body.get('tokenName') or token_symbol
        current_value, threshold_value = _sample_values(alert_type)
        trigger = TriggerEvent(
            alert_id=body.get('alertId') or TEST_ALERT_ID,
            user_id=str(body['userId']),
            token_symbol=token_symbol,
            token_name=display_name,
            kind=kind,
            message=f"Test {alert_type.replace('_', ' ')} alert for {display_name}",
            current_value=current_value,
            threshold_value=threshold_value,
            channels=ChannelFlags(
                push=bool(channels.get('push', False)),
                sms=bool(channels.get('sms', False)),
                calls=bool(channels.get('calls', False)),
            ),
            user_phone=user_phone,
        )

        try:
            result = await self.dispatcher.dispatch(trigger)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Test notification failed")
            return 500, {'error': GENERIC_ERROR_MESSAGE}

        return 200, {
            'success': True,
            'results': result.to_dict(),
            'message': 'Test notification sent successfully',
        }
