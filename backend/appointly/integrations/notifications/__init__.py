from appointly.integrations.notifications.base import (
    BookingConfirmation,
    Message,
    NotificationChannel,
    WaitlistNotice,
)
from appointly.integrations.notifications.notifier import Notifier, notifier
from appointly.integrations.notifications.registry import register_channel, resolve_channel

__all__ = [
    "BookingConfirmation",
    "Message",
    "NotificationChannel",
    "WaitlistNotice",
    "Notifier",
    "notifier",
    "register_channel",
    "resolve_channel",
]
