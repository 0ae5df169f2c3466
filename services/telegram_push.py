"""Push channel delivered as a Telegram message."""
from __future__ import annotations

import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from notifications.channels import PushSender

logger = logging.getLogger(__name__)


class TelegramPushSender(PushSender):
    """Sends push alerts to the user's linked chat, or to the default chat."""

    def __init__(self, bot: Bot, store=None, default_chat_id: Optional[str] = None) -> None:
        self.bot = bot
        self.store = store
        self.default_chat_id = default_chat_id

    async def _resolve_chat_id(self, user_id: str) -> Optional[str]:
        if self.store is not None:
            chat_id = await self.store.get_push_chat_id(user_id)
            if chat_id:
                return chat_id
        return self.default_chat_id

    async def send_push(self, user_id: str, message: str) -> bool:
        chat_id = await self._resolve_chat_id(user_id)
        if not chat_id:
            logger.warning("No Telegram chat configured for user %s", user_id)
            return False
        try:
            await self.bot.send_message(chat_id=chat_id, text=message)
        except TelegramError as exc:
            logger.warning("Telegram push to %s failed: %s", chat_id, exc)
            return False
        return True
