from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional, Protocol


@dataclass
class Message:
    channel: str  # email | sms | whatsapp
    to: str
    body: str
    subject: Optional[str] = None
    html: Optional[str] = None


@dataclass
class BookingConfirmation:
    """Snapshot of a committed booking, detached from the database session."""

    appointment_id: str
    business_name: str
    service_name: str
    employee_name: Optional[str]
    start_at: datetime
    confirmation_token: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    sms_consent: bool = False
    business_address: Optional[str] = None


@dataclass
class WaitlistNotice:
    entry_id: str
    business_name: str
    business_slug: str
    service_name: str
    proposed_day: date
    proposed_time: time
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    channels: list[str] = field(default_factory=lambda: ["email", "sms"])


class NotificationChannel(Protocol):
    name: str

    @property
    def configured(self) -> bool:
        ...

    async def send(self, message: Message) -> None:
        ...
