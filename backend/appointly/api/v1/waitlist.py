from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.v1.common import (
    _BaseArgs,
    _parse_date,
    _parse_datetime,
    _parse_optional_time,
    _parse_time,
    waitlist_entry_to_dict,
)
from appointly.core.database import get_db
from appointly.core.errors import ValidationError
from appointly.services.waitlist import WaitlistEngine, WaitlistRequest


router = APIRouter(tags=["waitlist"])


class AddEntryArgs(_BaseArgs):
    service_id: str
    customer_name: str
    preferred_date_from: str
    preferred_date_to: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    preferred_time_from: Optional[str] = None
    preferred_time_to: Optional[str] = None
    employee_id: Optional[str] = None
    priority: int = 0
    notes: Optional[str] = None


class NotifyArgs(_BaseArgs):
    date: str
    time: str
    channels: Optional[List[str]] = None


class ExpireStaleArgs(_BaseArgs):
    notified_before: str


@router.post("/businesses/{business_id}/waitlist", status_code=201)
async def add_waitlist_entry(
    business_id: str,
    args: AddEntryArgs,
    db: AsyncSession = Depends(get_db),
):
    request = WaitlistRequest(
        service_id=args.service_id,
        customer_name=args.customer_name,
        preferred_date_from=_parse_date(args.preferred_date_from, "preferred_date_from"),
        preferred_date_to=_parse_date(args.preferred_date_to, "preferred_date_to"),
        customer_email=args.customer_email,
        customer_phone=args.customer_phone,
        preferred_time_from=_parse_optional_time(args.preferred_time_from, "preferred_time_from"),
        preferred_time_to=_parse_optional_time(args.preferred_time_to, "preferred_time_to"),
        employee_id=args.employee_id,
        priority=args.priority,
        notes=args.notes,
    )
    entry = await WaitlistEngine(db).add_entry(business_id, request)
    return waitlist_entry_to_dict(entry)


@router.get("/businesses/{business_id}/waitlist")
async def list_waitlist(
    business_id: str,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Waitlist in offer order: priority first, then oldest first"""
    entries = await WaitlistEngine(db).rank(business_id, status)
    return {
        "business_id": business_id,
        "total": len(entries),
        "entries": [waitlist_entry_to_dict(entry) for entry in entries],
    }


@router.get("/businesses/{business_id}/waitlist/matches")
async def waitlist_matches(
    business_id: str,
    service_id: Optional[str] = None,
    date: Optional[str] = None,
    time: Optional[str] = None,
    employee_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    if not service_id:
        raise ValidationError("service_id is required")
    entries = await WaitlistEngine(db).find_matches(
        business_id,
        service_id,
        _parse_date(date),
        _parse_time(time),
        employee_id=employee_id,
    )
    return {
        "business_id": business_id,
        "total": len(entries),
        "entries": [waitlist_entry_to_dict(entry) for entry in entries],
    }


@router.post("/businesses/{business_id}/waitlist/expire-stale")
async def expire_stale_entries(
    business_id: str,
    args: ExpireStaleArgs,
    db: AsyncSession = Depends(get_db),
):
    cutoff = _parse_datetime(args.notified_before, "notified_before")
    if cutoff is None:
        raise ValidationError("notified_before is required")
    count = await WaitlistEngine(db).expire_stale(business_id, cutoff)
    return {"business_id": business_id, "expired": count}


@router.post("/businesses/{business_id}/waitlist/{entry_id}/notify")
async def notify_waitlist_entry(
    business_id: str,
    entry_id: str,
    args: NotifyArgs,
    db: AsyncSession = Depends(get_db),
):
    """Offer a freed slot; returns a prepared WhatsApp link for staff."""
    result = await WaitlistEngine(db).notify(
        business_id,
        entry_id,
        _parse_date(args.date),
        _parse_time(args.time),
        channels=args.channels,
    )
    return {
        "entry": waitlist_entry_to_dict(result.entry),
        "whatsapp_link": result.whatsapp_link,
    }


@router.post("/businesses/{business_id}/waitlist/{entry_id}/booked")
async def mark_waitlist_entry_booked(business_id: str, entry_id: str, db: AsyncSession = Depends(get_db)):
    entry = await WaitlistEngine(db).mark_booked(business_id, entry_id)
    return waitlist_entry_to_dict(entry)


@router.post("/businesses/{business_id}/waitlist/{entry_id}/cancel")
async def cancel_waitlist_entry(business_id: str, entry_id: str, db: AsyncSession = Depends(get_db)):
    entry = await WaitlistEngine(db).cancel(business_id, entry_id)
    return waitlist_entry_to_dict(entry)


@router.post("/businesses/{business_id}/waitlist/{entry_id}/expire")
async def expire_waitlist_entry(business_id: str, entry_id: str, db: AsyncSession = Depends(get_db)):
    entry = await WaitlistEngine(db).expire(business_id, entry_id)
    return waitlist_entry_to_dict(entry)
