from __future__ import annotations

from appointly.integrations.notifications.base import NotificationChannel
from appointly.integrations.notifications.channels import EmailChannel, SmsChannel, WhatsAppChannel


_CHANNELS: dict[str, NotificationChannel] = {
    "email": EmailChannel(),
    "sms": SmsChannel(),
    "whatsapp": WhatsAppChannel(),
}


def resolve_channel(name: str) -> NotificationChannel | None:
    return _CHANNELS.get(name)


def register_channel(channel: NotificationChannel) -> None:
    _CHANNELS[channel.name] = channel
