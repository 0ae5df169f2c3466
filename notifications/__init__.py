"""Notification formatting, channel interfaces and dispatch."""

from .channels import ChannelKind, PushSender, SmsSender, VoiceSender, is_valid_e164
from .dispatcher import DispatchResult, NotificationDispatcher

__all__ = [
    "ChannelKind",
    "DispatchResult",
    "NotificationDispatcher",
    "PushSender",
    "SmsSender",
    "VoiceSender",
    "is_valid_e164",
]
