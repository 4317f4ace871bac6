"""Tests for the Telegram notifier adapter and the notifier factory."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from telegram.error import NetworkError

from planwise.adapters.notifier_factory import create_notifier
from planwise.adapters.telegram_notifier import TelegramNotifier
from planwise.ports.notification_port import NotificationError


def _bot(**kwargs):
    bot = MagicMock()
    bot.send_message = AsyncMock(**kwargs)
    return bot


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_maps_user_to_chat(self):
        bot = _bot()
        await TelegramNotifier(bot, {"dana": 1001}).send_message("dana", "hi")
        bot.send_message.assert_awaited_once_with(chat_id=1001, text="hi")

    @pytest.mark.asyncio
    async def test_numeric_user_id_is_a_chat_id(self):
        bot = _bot()
        await TelegramNotifier(bot).send_message("42", "hi")
        bot.send_message.assert_awaited_once_with(chat_id=42, text="hi")

    @pytest.mark.asyncio
    async def test_unknown_user_raises(self):
        bot = _bot()
        with pytest.raises(NotificationError, match="No Telegram chat"):
            await TelegramNotifier(bot).send_message("dana", "hi")
        bot.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_telegram_failure_wrapped(self):
        bot = _bot(side_effect=NetworkError("timed out"))
        with pytest.raises(NotificationError, match="timed out"):
            await TelegramNotifier(bot, {"dana": 1001}).send_message("dana", "hi")


class TestCreateNotifier:
    @patch("planwise.adapters.notifier_factory.settings")
    def test_no_token_no_notifier(self, mock_settings):
        mock_settings.TELEGRAM_BOT_TOKEN = ""
        assert create_notifier() is None

    @patch("planwise.adapters.notifier_factory.settings")
    def test_builds_telegram_notifier(self, mock_settings):
        mock_settings.TELEGRAM_BOT_TOKEN = "123:abc"
        mock_settings.TELEGRAM_CHAT_IDS = {"dana": 1001}
        with patch("telegram.Bot") as mock_bot:
            notifier = create_notifier()
        assert isinstance(notifier, TelegramNotifier)
        mock_bot.assert_called_once_with(token="123:abc")
        assert notifier.chat_id_for("dana") == 1001
