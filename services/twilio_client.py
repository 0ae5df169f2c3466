"""SMS and voice delivery through the Twilio REST API."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional
from xml.sax.saxutils import escape

import aiohttp

from constants import TWILIO_API_BASE_URL
from notifications.channels import SmsSender, VoiceSender, is_valid_e164

logger = logging.getLogger(__name__)


def build_say_twiml(spoken_message: str, voice: str = "alice") -> str:
    return f'<Response><Say voice="{voice}">{escape(spoken_message)}</Say></Response>'


class TwilioClient(SmsSender, VoiceSender):
    """Posts to the Messages and Calls resources of one Twilio account."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 15.0,
    ) -> None:
        self.session = session
        self.account_sid = account_sid
        self.from_number = from_number
        self._auth = aiohttp.BasicAuth(account_sid, auth_token)
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _resource_url(self, resource: str) -> str:
        return f"{TWILIO_API_BASE_URL}/Accounts/{self.account_sid}/{resource}.json"

    async def _post(self, resource: str, form: dict) -> Optional[dict]:
        try:
            async with self.session.post(
                self._resource_url(resource),
                data=form,
                auth=self._auth,
                timeout=self._timeout,
            ) as response:
                payload = await response.json(content_type=None)
                if response.status >= 400:
                    logger.warning(
                        "Twilio %s request failed (%s): %s",
                        resource,
                        response.status,
                        (payload or {}).get("message") if isinstance(payload, dict) else payload,
                    )
                    return None
                return payload
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Twilio %s request error: %s", resource, exc)
            return None

    async def send_sms(self, phone: str, message: str) -> bool:
        if not is_valid_e164(phone):
            logger.warning("Refusing to send SMS to non-E.164 number %r", phone)
            return False
        payload = await self._post("Messages", {"To": phone, "From": self.from_number, "Body": message})
        if payload is None:
            return False
        logger.info("SMS sent to %s (sid=%s)", phone, payload.get("sid"))
        return True

    async def send_voice(self, phone: str, spoken_message: str) -> bool:
        if not is_valid_e164(phone):
            logger.warning("Refusing to call non-E.164 number %r", phone)
            return False
        payload = await self._post(
            "Calls",
            {"To": phone, "From": self.from_number, "Twiml": build_say_twiml(spoken_message)},
        )
        if payload is None:
            return False
        logger.info("Voice call initiated to %s (sid=%s)", phone, payload.get("sid"))
        return True
