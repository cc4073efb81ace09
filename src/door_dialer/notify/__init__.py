"""Text message notifications."""

from door_dialer.notify.dispatcher import NotificationDispatcher
from door_dialer.notify.in_memory_dispatcher import InMemoryDispatcher, SentMessage
from door_dialer.notify.notifier import (
    ADMIN_SUMMARY_MESSAGE,
    LET_IN_MESSAGE,
    MISSED_MESSAGE,
    Notifier,
)

__all__ = [
    "ADMIN_SUMMARY_MESSAGE",
    "InMemoryDispatcher",
    "LET_IN_MESSAGE",
    "MISSED_MESSAGE",
    "NotificationDispatcher",
    "Notifier",
    "SentMessage",
]
