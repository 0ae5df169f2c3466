from unittest.mock import AsyncMock

import pytest
from telegram.error import NetworkError

from services.telegram_push import TelegramPushSender


@pytest.mark.asyncio
async def test_uses_linked_chat_when_available():
    bot = AsyncMock()
    store = AsyncMock()
    store.get_push_chat_id.return_value = "12345"
    sender = TelegramPushSender(bot, store, default_chat_id="999")

    assert await sender.send_push("user-1", "hello") is True
    bot.send_message.assert_awaited_once_with(chat_id="12345", text="hello")


@pytest.mark.asyncio
async def test_falls_back_to_default_chat():
    bot = AsyncMock()
    store = AsyncMock()
    store.get_push_chat_id.return_value = None
    sender = TelegramPushSender(bot, store, default_chat_id="999")

    assert await sender.send_push("user-1", "hello") is True
    bot.send_message.assert_awaited_once_with(chat_id="999", text="hello")


@pytest.mark.asyncio
async def test_no_chat_configured_returns_false():
    bot = AsyncMock()
    sender = TelegramPushSender(bot)

    assert await sender.send_push("user-1", "hello") is False
    bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_telegram_error_returns_false():
    bot = AsyncMock()
    bot.send_message.side_effect = NetworkError("flood")
    sender = TelegramPushSender(bot, default_chat_id="999")

    assert await sender.send_push("user-1", "hello") is False
