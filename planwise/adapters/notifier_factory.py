"""Notifier factory — builds the reminder channel from config."""

from __future__ import annotations

from planwise.config import settings
from planwise.ports.notification_port import NotificationPort


def create_notifier() -> NotificationPort | None:
    """Return a Telegram notifier, or None when no bot token is configured."""
    if not settings.TELEGRAM_BOT_TOKEN:
        return None

    from telegram import Bot

    from planwise.adapters.telegram_notifier import TelegramNotifier

    return TelegramNotifier(Bot(token=settings.TELEGRAM_BOT_TOKEN), settings.TELEGRAM_CHAT_IDS)
