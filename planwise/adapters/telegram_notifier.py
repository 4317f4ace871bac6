"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
Planwise user ids are mapped to Telegram chat ids through TELEGRAM_CHAT_IDS;
a purely numeric user id is taken to be a chat id already.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

from planwise.ports.notification_port import NotificationError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, chat_ids: dict[str, int] | None = None) -> None:
        self._bot = bot
        self._chat_ids = dict(chat_ids or {})

    def chat_id_for(self, user_id: str) -> int:
        if user_id in self._chat_ids:
            return self._chat_ids[user_id]
        try:
            return int(user_id)
        except ValueError:
            raise NotificationError(f"No Telegram chat known for user {user_id!r}") from None

    async def send_message(self, user_id: str, text: str) -> None:
        chat_id = self.chat_id_for(user_id)
        try:
            await self._bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as exc:
            logger.error("Telegram delivery to %s failed: %s", user_id, exc)
            raise NotificationError(f"Telegram delivery to {user_id} failed: {exc}") from exc
        logger.debug("Telegram message sent to %s", user_id)
