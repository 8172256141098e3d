from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.v1.common import (
    _BaseArgs,
    _parse_date,
    _parse_time,
    appointment_to_dict,
    waitlist_entry_to_dict,
)
from appointly.core.database import get_db
from appointly.services.booking import BookingRequest, BookingService, CustomerData, StatusChange
from appointly.services.scheduling import employee_choice


router = APIRouter(tags=["appointments"])


class CustomerArgs(_BaseArgs):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    marketing_consent: bool = False
    sms_consent: bool = False


class CreateAppointmentArgs(_BaseArgs):
    service_id: str
    date: str
    time: str
    customer: CustomerArgs
    employee_id: Optional[str] = None
    customer_notes: Optional[str] = None
    customer_package_id: Optional[str] = None


class UpdateStatusArgs(_BaseArgs):
    status: str


class RescheduleArgs(_BaseArgs):
    date: str
    time: str
    employee_id: Optional[str] = None
    any_employee: bool = False


def _status_change_result(change: StatusChange) -> dict:
    return {
        "appointment": appointment_to_dict(change.appointment),
        "waitlist_matches": [waitlist_entry_to_dict(entry) for entry in change.waitlist_matches],
    }


@router.post("/businesses/{business_id}/appointments", status_code=201)
async def create_appointment(
    business_id: str,
    args: CreateAppointmentArgs,
    db: AsyncSession = Depends(get_db),
):
    """Book a slot; answers 409 when someone else took it first."""
    request = BookingRequest(
        service_id=args.service_id,
        day=_parse_date(args.date),
        start_time=_parse_time(args.time),
        employee_choice=employee_choice(args.employee_id),
        customer=CustomerData(
            first_name=args.customer.first_name,
            last_name=args.customer.last_name,
            email=args.customer.email,
            phone=args.customer.phone,
            marketing_consent=args.customer.marketing_consent,
            sms_consent=args.customer.sms_consent,
        ),
        customer_notes=args.customer_notes,
        customer_package_id=args.customer_package_id,
    )
    appointment = await BookingService(db).create_booking(business_id, request)
    return appointment_to_dict(appointment)


@router.get("/businesses/{business_id}/appointments")
async def list_appointments(
    business_id: str,
    date: Optional[str] = None,
    employee_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Appointments of one day, all statuses, ordered by start"""
    day = _parse_date(date)
    appointments = await BookingService(db).list_for_day(business_id, day, employee_id)
    return {
        "business_id": business_id,
        "date": day.isoformat(),
        "total": len(appointments),
        "appointments": [appointment_to_dict(a) for a in appointments],
    }


@router.post("/businesses/{business_id}/appointments/{appointment_id}/status")
async def update_appointment_status(
    business_id: str,
    appointment_id: str,
    args: UpdateStatusArgs,
    db: AsyncSession = Depends(get_db),
):
    change = await BookingService(db).update_status(business_id, appointment_id, args.status)
    return _status_change_result(change)


@router.post("/businesses/{business_id}/appointments/{appointment_id}/reschedule")
async def reschedule_appointment(
    business_id: str,
    appointment_id: str,
    args: RescheduleArgs,
    db: AsyncSession = Depends(get_db),
):
    choice = None
    if args.employee_id or args.any_employee:
        choice = employee_choice(args.employee_id)
    change = await BookingService(db).reschedule(
        business_id,
        appointment_id,
        _parse_date(args.date),
        _parse_time(args.time),
        employee_choice=choice,
    )
    return _status_change_result(change)


# ==================== CONFIRMATION LINKS ====================


@router.get("/appointments/by-token/{token}")
async def get_appointment_by_token(token: str, db: AsyncSession = Depends(get_db)):
    """Public confirmation page data"""
    appointment = await BookingService(db).get_by_token(token)
    result = appointment_to_dict(appointment)
    result.update(
        {
            "business_name": appointment.business.name,
            "business_address": appointment.business.full_address,
            "service_name": appointment.service.name,
            "employee_name": appointment.employee.full_name if appointment.employee else None,
            "customer_name": appointment.customer.full_name,
        }
    )
    return result


@router.post("/appointments/by-token/{token}/confirm")
async def confirm_appointment(token: str, db: AsyncSession = Depends(get_db)):
    appointment = await BookingService(db).confirm_by_token(token)
    return appointment_to_dict(appointment)


@router.post("/appointments/by-token/{token}/decline")
async def decline_appointment(token: str, db: AsyncSession = Depends(get_db)):
    change = await BookingService(db).decline_by_token(token)
    return _status_change_result(change)
