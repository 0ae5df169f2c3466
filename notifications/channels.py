"""Sender interfaces for the three notification channels."""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

E164_PATTERN = re.compile(r"\+[0-9]{1,15}")


class ChannelKind(str, Enum):
    PUSH = "push"
    SMS = "sms"
    VOICE = "voice"


def is_valid_e164(phone: Optional[str]) -> bool:
    """True for '+' followed by 1-15 digits."""
    if not phone:
        return False
    return E164_PATTERN.fullmatch(phone) is not None


class PushSender(ABC):
    @abstractmethod
    async def send_push(self, user_id: str, message: str) -> bool:
        """Delivers a push message to the user. Returns True on success."""


class SmsSender(ABC):
    @abstractmethod
    async def send_sms(self, phone: str, message: str) -> bool:
        """Sends an SMS to an E.164 number. Returns True on success."""


class VoiceSender(ABC):
    @abstractmethod
    async def send_voice(self, phone: str, spoken_message: str) -> bool:
        """Places a voice call reading the message. Returns True on success."""
