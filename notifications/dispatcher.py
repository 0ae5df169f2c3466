"""Concurrent fan-out of a trigger event to push, SMS and voice senders."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Optional

from alerts.models import TriggerEvent
from constants import CHANNEL_TIMEOUT_SECONDS
from notifications.channels import (
    ChannelKind,
    PushSender,
    SmsSender,
    VoiceSender,
    is_valid_e164,
)
from notifications.formatting import format_alert_message, format_voice_message

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    push_sent: bool = False
    sms_sent: bool = False
    voice_sent: bool = False
    attempted: List[ChannelKind] = field(default_factory=list)
    errors: Dict[ChannelKind, str] = field(default_factory=dict)

    @property
    def any_sent(self) -> bool:
        return self.push_sent or self.sms_sent or self.voice_sent

    @property
    def was_attempted(self) -> bool:
        return bool(self.attempted)

    def to_dict(self) -> dict:
        return {
            "push": self.push_sent,
            "sms": self.sms_sent,
            "voice": self.voice_sent,
        }


class NotificationDispatcher:
    """Runs every eligible channel at once; one failing channel never blocks another.

    Senders may be None when a channel has no credentials configured. Such a
    channel is still attempted when the alert enables it and reports False.
    """

    def __init__(
        self,
        push_sender: Optional[PushSender] = None,
        sms_sender: Optional[SmsSender] = None,
        voice_sender: Optional[VoiceSender] = None,
        channel_timeout: float = CHANNEL_TIMEOUT_SECONDS,
    ) -> None:
        self.push_sender = push_sender
        self.sms_sender = sms_sender
        self.voice_sender = voice_sender
        self.channel_timeout = channel_timeout

    async def dispatch(self, trigger: TriggerEvent) -> DispatchResult:
        result = DispatchResult()
        calls: Dict[ChannelKind, Awaitable[bool]] = {}

        channels = trigger.channels
        phone = trigger.user_phone
        phone_ok = is_valid_e164(phone)
        if (channels.sms or channels.calls) and phone and not phone_ok:
            logger.warning("Alert %s has an invalid phone number; skipping SMS/voice", trigger.alert_id)

        if channels.push:
            calls[ChannelKind.PUSH] = self._send_push(trigger)
        if channels.sms and phone_ok:
            calls[ChannelKind.SMS] = self._send_sms(phone, trigger)
        if channels.calls and phone_ok:
            calls[ChannelKind.VOICE] = self._send_voice(phone, trigger)

        if not calls:
            return result

        kinds = list(calls.keys())
        result.attempted = kinds
        outcomes = await asyncio.gather(
            *(self._guarded(kind, coro) for kind, coro in calls.items()),
            return_exceptions=True,
        )

        for kind, outcome in zip(kinds, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                result.errors[kind] = str(outcome) or type(outcome).__name__
                logger.warning("%s channel failed for alert %s: %r", kind.value, trigger.alert_id, outcome)
                sent = False
            else:
                sent = bool(outcome)
                if not sent and kind not in result.errors:
                    result.errors[kind] = "not delivered"
            if kind is ChannelKind.PUSH:
                result.push_sent = sent
            elif kind is ChannelKind.SMS:
                result.sms_sent = sent
            else:
                result.voice_sent = sent

        return result

    async def _guarded(self, kind: ChannelKind, coro: Awaitable[bool]) -> bool:
        try:
            return await asyncio.wait_for(coro, timeout=self.channel_timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"{kind.value} timed out after {self.channel_timeout}s") from exc

    async def _send_push(self, trigger: TriggerEvent) -> bool:
        if self.push_sender is None:
            logger.warning("Push requested for alert %s but no push sender is configured", trigger.alert_id)
            return False
        return await self.push_sender.send_push(trigger.user_id, format_alert_message(trigger))

    async def _send_sms(self, phone: str, trigger: TriggerEvent) -> bool:
        if self.sms_sender is None:
            logger.warning("SMS requested for alert %s but Twilio is not configured", trigger.alert_id)
            return False
        return await self.sms_sender.send_sms(phone, format_alert_message(trigger))

    async def _send_voice(self, phone: str, trigger: TriggerEvent) -> bool:
        if self.voice_sender is None:
            logger.warning("Voice call requested for alert %s but Twilio is not configured", trigger.alert_id)
            return False
        return await self.voice_sender.send_voice(phone, format_voice_message(trigger))
