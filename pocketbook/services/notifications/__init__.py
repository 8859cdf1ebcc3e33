"""Notification services package."""

from pocketbook.services.notifications.notifier import (
    CollectingNotifier,
    LoggingNotifier,
    NotificationInterface,
)

__all__ = [
    "CollectingNotifier",
    "LoggingNotifier",
    "NotificationInterface",
]
