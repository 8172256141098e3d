from __future__ import annotations

import asyncio

from appointly.integrations import email_client
from appointly.integrations.notifications.base import Message
from appointly.integrations.twilio_client import TwilioClient, twilio_client


class EmailChannel:
    name = "email"

    @property
    def configured(self) -> bool:
        return email_client.email_configured()

    async def send(self, message: Message) -> None:
        await asyncio.to_thread(
            email_client.send_email,
            message.to,
            message.subject or "",
            message.body,
            message.html,
        )


class SmsChannel:
    name = "sms"

    def __init__(self, client: TwilioClient | None = None):
        self.client = client or twilio_client

    @property
    def configured(self) -> bool:
        return self.client.configured and bool(self.client.phone_number)

    async def send(self, message: Message) -> None:
        await asyncio.to_thread(self.client.send_sms, message.to, message.body)


class WhatsAppChannel:
    name = "whatsapp"

    def __init__(self, client: TwilioClient | None = None):
        self.client = client or twilio_client

    @property
    def configured(self) -> bool:
        return self.client.configured and bool(self.client.whatsapp_number)

    async def send(self, message: Message) -> None:
        await asyncio.to_thread(self.client.send_whatsapp, message.to, message.body)
