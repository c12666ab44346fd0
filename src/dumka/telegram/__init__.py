"""Telegram interface."""

from .bot import TelegramBot, TelegramChannel

__all__ = ["TelegramBot", "TelegramChannel"]
