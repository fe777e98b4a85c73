"""Notification delivery module."""

from crowdwatch.services.notifications.commands import (
    CommandHandler,
    TelegramCommandPoller,
    parse_command,
)
from crowdwatch.services.notifications.dispatcher import NotificationDispatcher
from crowdwatch.services.notifications.schemas import (
    DispatcherStats,
    NotificationRecord,
    NotificationStatus,
)
from crowdwatch.services.notifications.senders import (
    LogSender,
    NotificationSender,
    TelegramSender,
    build_sender,
)

__all__ = [
    # Dispatcher
    "NotificationDispatcher",
    # Schemas
    "DispatcherStats",
    "NotificationRecord",
    "NotificationStatus",
    # Senders
    "NotificationSender",
    "LogSender",
    "TelegramSender",
    "build_sender",
    # Commands
    "CommandHandler",
    "TelegramCommandPoller",
    "parse_command",
]
