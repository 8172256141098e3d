"""Best-effort customer notifications.

Delivery runs in background tasks started after the database commit; the
booking and waitlist paths never wait for it and never see its failures.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

from appointly.integrations.notifications import templates
from appointly.integrations.notifications.base import (
    BookingConfirmation,
    Message,
    NotificationChannel,
    WaitlistNotice,
)
from appointly.integrations.notifications.registry import resolve_channel

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, channels: Optional[Mapping[str, NotificationChannel]] = None):
        self._channels = dict(channels) if channels is not None else None
        self._tasks: set[asyncio.Task] = set()

    def _channel(self, name: str) -> Optional[NotificationChannel]:
        if self._channels is not None:
            return self._channels.get(name)
        return resolve_channel(name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, messages: list[Message]) -> Optional[asyncio.Task]:
        if not messages:
            return None
        task = asyncio.get_running_loop().create_task(self._deliver(messages))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, messages: list[Message]) -> None:
        for message in messages:
            channel = self._channel(message.channel)
            if channel is None:
                logger.warning(f"No notification channel named '{message.channel}'")
                continue
            if not channel.configured:
                logger.info(f"[{message.channel}] not configured, would send to {message.to}")
                continue
            try:
                await channel.send(message)
                logger.info(f"[{message.channel}] notification sent to {message.to}")
            except Exception:
                logger.exception(f"[{message.channel}] failed to notify {message.to}")

    async def drain(self) -> None:
        """Wait for every delivery started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==================== BOOKINGS ====================

    def send_booking_confirmation(self, confirmation: BookingConfirmation) -> Optional[asyncio.Task]:
        messages = []
        if confirmation.customer_email:
            messages.append(
                Message(
                    channel="email",
                    to=confirmation.customer_email,
                    subject=templates.booking_confirmation_subject(confirmation),
                    body=templates.booking_confirmation_text(confirmation),
                )
            )
        if confirmation.customer_phone and confirmation.sms_consent:
            messages.append(
                Message(
                    channel="sms",
                    to=templates.international_phone(confirmation.customer_phone),
                    body=templates.booking_confirmation_sms(confirmation),
                )
            )
        return self.dispatch(messages)

    # ==================== WAITLIST ====================

    def send_waitlist_notice(self, notice: WaitlistNotice) -> Optional[str]:
        """Start delivery and return a prepared wa.me link for staff, if a phone is known."""
        text = templates.waitlist_notice_text(notice)
        messages = []
        if notice.customer_email and "email" in notice.channels:
            messages.append(
                Message(
                    channel="email",
                    to=notice.customer_email,
                    subject=templates.waitlist_notice_subject(notice),
                    body=text,
                )
            )
        if notice.customer_phone:
            for channel in ("sms", "whatsapp"):
                if channel in notice.channels:
                    messages.append(
                        Message(
                            channel=channel,
                            to=templates.international_phone(notice.customer_phone),
                            body=text,
                        )
                    )
        self.dispatch(messages)

        if not notice.customer_phone:
            return None
        return templates.whatsapp_link(notice.customer_phone, text)


notifier = Notifier()
