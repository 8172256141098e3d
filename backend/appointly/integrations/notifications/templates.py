"""Message texts for customer notifications."""

from __future__ import annotations

import re
from datetime import date, datetime, time
from urllib.parse import quote

from appointly.core.config import DEFAULT_PHONE_COUNTRY_CODE, PUBLIC_APP_URL
from appointly.integrations.notifications.base import BookingConfirmation, WaitlistNotice

_PHONE_STRIP_RE = re.compile(r"[\s\-\(\)]")


def human_datetime(value: datetime) -> str:
    return value.strftime("%A %d %b %Y at %I:%M %p")


def human_date(value: date) -> str:
    return value.strftime("%A %d %b %Y")


def human_time(value: time) -> str:
    return value.strftime("%I:%M %p")


def confirmation_url(token: str) -> str:
    return f"{PUBLIC_APP_URL.rstrip('/')}/confirm/{token}"


def booking_url(business_slug: str) -> str:
    return f"{PUBLIC_APP_URL.rstrip('/')}/book/{business_slug}"


def international_phone(phone: str, country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> str:
    """Turn a local or international number into "+<country><number>"."""
    phone = _PHONE_STRIP_RE.sub("", phone)
    if phone.startswith("00"):
        return "+" + phone[2:]
    if phone.startswith("0"):
        return f"+{country_code}{phone[1:]}"
    if not phone.startswith("+"):
        return "+" + phone
    return phone


def whatsapp_link(phone: str, message: str) -> str:
    number = international_phone(phone).lstrip("+")
    return f"https://wa.me/{number}?text={quote(message, safe='')}"


def booking_confirmation_subject(confirmation: BookingConfirmation) -> str:
    return f"Your appointment at {confirmation.business_name}"


def booking_confirmation_text(confirmation: BookingConfirmation) -> str:
    lines = [
        f"Hi {confirmation.customer_name}!",
        "",
        f"Your {confirmation.service_name} appointment at {confirmation.business_name} "
        f"is booked for {human_datetime(confirmation.start_at)}.",
    ]
    if confirmation.employee_name:
        lines.append(f"With: {confirmation.employee_name}")
    if confirmation.business_address:
        lines.append(f"Address: {confirmation.business_address}")
    lines += [
        "",
        "Please confirm your appointment:",
        confirmation_url(confirmation.confirmation_token),
    ]
    return "\n".join(lines)


def booking_confirmation_sms(confirmation: BookingConfirmation) -> str:
    return (
        f"Hi {confirmation.customer_name}! Your {confirmation.service_name} appointment at "
        f"{confirmation.business_name} is booked for {human_datetime(confirmation.start_at)}. "
        f"Confirm here: {confirmation_url(confirmation.confirmation_token)}"
    )


def waitlist_notice_subject(notice: WaitlistNotice) -> str:
    return f"A slot opened up at {notice.business_name}"


def waitlist_notice_text(notice: WaitlistNotice) -> str:
    return (
        f"Hi {notice.customer_name}! A {notice.service_name} slot at {notice.business_name} "
        f"is free on {human_date(notice.proposed_day)} at {human_time(notice.proposed_time)}. "
        f"Book it here before someone else does: {booking_url(notice.business_slug)}"
    )
