"""Shared request parsing and response shaping for the v1 routers."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel

from appointly.core.errors import ValidationError
from appointly.models import Appointment, CustomerPackage, PackageRedemption, WaitlistEntry


class _BaseArgs(BaseModel):
    """Common base for request bodies; unknown fields are ignored."""

    class Config:
        extra = "ignore"


def _parse_date(value: Optional[str], field: str = "date") -> date:
    if not value:
        raise ValidationError(f"{field} is required")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}; expected YYYY-MM-DD") from None


def _parse_time(value: Optional[str], field: str = "time") -> time:
    if not value:
        raise ValidationError(f"{field} is required")
    # Support "HH:MM" and "HH:MM:SS" 24h formats
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid {field}; expected HH:MM (24h)")


def _parse_optional_time(value: Optional[str], field: str) -> Optional[time]:
    return _parse_time(value, field) if value else None


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}; expected an ISO 8601 timestamp") from None


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _id(value: Optional[Any]) -> Optional[str]:
    return str(value) if value is not None else None


def appointment_to_dict(appointment: Appointment) -> Dict[str, Any]:
    return {
        "id": str(appointment.id),
        "business_id": str(appointment.business_id),
        "employee_id": _id(appointment.employee_id),
        "service_id": str(appointment.service_id),
        "customer_id": str(appointment.customer_id),
        "customer_package_id": _id(appointment.customer_package_id),
        "start_at": appointment.start_at.isoformat(),
        "end_at": appointment.end_at.isoformat(),
        "status": appointment.status,
        "price": _money(appointment.price),
        "confirmation_token": appointment.confirmation_token,
        "customer_response": appointment.customer_response,
        "customer_confirmed_at": _iso(appointment.customer_confirmed_at),
        "canceled_at": _iso(appointment.canceled_at),
        "customer_notes": appointment.customer_notes,
    }


def waitlist_entry_to_dict(entry: WaitlistEntry) -> Dict[str, Any]:
    return {
        "id": str(entry.id),
        "service_id": str(entry.service_id),
        "employee_id": _id(entry.employee_id),
        "customer_id": _id(entry.customer_id),
        "customer_name": entry.customer_name,
        "customer_email": entry.customer_email,
        "customer_phone": entry.customer_phone,
        "preferred_date_from": entry.preferred_date_from.isoformat(),
        "preferred_date_to": entry.preferred_date_to.isoformat(),
        "preferred_time_from": entry.preferred_time_from.strftime("%H:%M") if entry.preferred_time_from else None,
        "preferred_time_to": entry.preferred_time_to.strftime("%H:%M") if entry.preferred_time_to else None,
        "status": entry.status,
        "priority": entry.priority,
        "notified_at": _iso(entry.notified_at),
        "notification_count": entry.notification_count,
        "notes": entry.notes,
        "created_at": _iso(entry.created_at),
    }


def customer_package_to_dict(customer_package: CustomerPackage) -> Dict[str, Any]:
    return {
        "id": str(customer_package.id),
        "customer_id": str(customer_package.customer_id),
        "package_id": str(customer_package.package_id),
        "purchase_price": _money(customer_package.purchase_price),
        "purchased_at": _iso(customer_package.purchased_at),
        "expires_at": _iso(customer_package.expires_at),
        "total_uses": customer_package.total_uses,
        "uses_remaining": customer_package.uses_remaining,
        "status": customer_package.status,
        "notes": customer_package.notes,
    }


def redemption_to_dict(redemption: PackageRedemption) -> Dict[str, Any]:
    return {
        "id": str(redemption.id),
        "customer_package_id": str(redemption.customer_package_id),
        "appointment_id": _id(redemption.appointment_id),
        "service_id": _id(redemption.service_id),
        "redeemed_by": redemption.redeemed_by,
        "notes": redemption.notes,
        "redeemed_at": _iso(redemption.redeemed_at),
    }
