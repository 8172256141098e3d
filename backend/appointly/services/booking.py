"""Booking transaction.

Availability is only a hint. ``create_booking`` locks the candidate employees,
re-checks the requested interval against the store and inserts the
appointment in one transaction; a competing booking that got there first
turns into ``SlotNoLongerAvailable``. On PostgreSQL the exclusion constraint
``appointments_no_overlap_per_employee`` backs this up at the storage level.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.core.database import unit_of_work
from appointly.core.errors import (
    InvalidStateTransition,
    NotFoundError,
    SlotNoLongerAvailable,
    ValidationError,
)
from appointly.integrations.notifications import BookingConfirmation, Notifier, notifier as default_notifier
from appointly.models import Appointment, AppointmentStatus, Business, Customer, Employee, Service, WaitlistEntry
from appointly.services.availability import resolve_candidates, resolve_service
from appointly.services.db_service import DBService, IdLike, as_uuid, normalize_email, normalize_phone
from appointly.services.packages import PackageLedger
from appointly.services.scheduling import (
    AnyAvailable,
    EmployeeChoice,
    SpecificEmployee,
    candidate_starts,
    minute_of,
    require_whole_minute,
)
from appointly.services.waitlist import WaitlistEngine

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT = "appointments_no_overlap_per_employee"

STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELED,
            AppointmentStatus.NO_SHOW,
        }
    ),
}

# States that still hold their interval on the employee's calendar
OPEN_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)


@dataclass
class CustomerData:
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    marketing_consent: bool = False
    sms_consent: bool = False


@dataclass
class BookingRequest:
    service_id: IdLike
    day: date
    start_time: time
    customer: CustomerData
    employee_choice: EmployeeChoice = field(default_factory=AnyAvailable)
    customer_notes: Optional[str] = None
    customer_package_id: Optional[IdLike] = None


@dataclass
class StatusChange:
    appointment: Appointment
    # Ranked waitlist entries that could take a slot this change freed up
    waitlist_matches: List[WaitlistEntry] = field(default_factory=list)


def new_confirmation_token() -> str:
    return secrets.token_urlsafe(32)


def _is_overlap_violation(exc: IntegrityError) -> bool:
    return OVERLAP_CONSTRAINT in str(exc.orig)


class BookingService:
    def __init__(self, session: AsyncSession, notifier: Optional[Notifier] = None):
        self.session = session
        self.db = DBService(session)
        self.notifier = notifier or default_notifier
        self.ledger = PackageLedger(session)
        self.waitlist = WaitlistEngine(session, notifier=self.notifier)

    # ==================== VALIDATION ====================

    @staticmethod
    def _validate_request(request: BookingRequest) -> None:
        if not request.service_id:
            raise ValidationError("service_id is required")
        if request.day is None or request.start_time is None:
            raise ValidationError("date and time are required")
        require_whole_minute(request.start_time)
        customer = request.customer
        if customer is None:
            raise ValidationError("Customer details are required")
        if not (customer.first_name or "").strip() or not (customer.last_name or "").strip():
            raise ValidationError("First and last name are required")
        if not normalize_email(customer.email) and not normalize_phone(customer.phone):
            raise ValidationError("An email address or phone number is required")

    # ==================== EMPLOYEE ASSIGNMENT ====================

    async def _assign_employee(
        self,
        service: Service,
        choice: EmployeeChoice,
        start: datetime,
        end: datetime,
        exclude_appointment_id=None,
    ) -> Employee:
        """Pick the first candidate that works at ``start`` and is free for [start, end).

        Must run inside the booking transaction: candidates are row-locked and
        the overlap query sees everything committed before the lock.
        """
        candidates = await resolve_candidates(
            self.db, service.business_id, choice, for_update=True
        )

        start_minute = minute_of(start.time())
        qualifying = []
        for employee in candidates:
            window = employee.schedule.window_for(start.date())
            if window and start_minute in candidate_starts(window, service.duration_minutes):
                qualifying.append(employee)

        if not qualifying:
            raise ValidationError(
                f"{start:%Y-%m-%d %H:%M} is not a bookable time for this service",
                details={"start": start.isoformat()},
            )

        for employee in qualifying:
            overlapping = await self.db.list_overlapping(
                employee.id, start, end, exclude_appointment_id=exclude_appointment_id
            )
            if not overlapping:
                return employee

        raise SlotNoLongerAvailable(
            "The selected time has just been booked, please pick another slot",
            details={"start": start.isoformat()},
        )

    async def _insert(self, appointment: Appointment) -> Appointment:
        try:
            return await self.db.add_appointment(appointment)
        except IntegrityError as exc:
            if _is_overlap_violation(exc):
                raise SlotNoLongerAvailable(
                    "The selected time has just been booked, please pick another slot"
                ) from exc
            raise

    # ==================== CREATE ====================

    async def create_booking(self, business_id: IdLike, request: BookingRequest) -> Appointment:
        self._validate_request(request)
        start = datetime.combine(request.day, request.start_time)

        async with unit_of_work(self.session):
            service = await resolve_service(self.db, business_id, request.service_id)
            end = start + timedelta(minutes=service.duration_minutes)

            employee = await self._assign_employee(service, request.employee_choice, start, end)

            customer = await self.db.find_or_create_customer(
                service.business_id,
                first_name=request.customer.first_name.strip(),
                last_name=request.customer.last_name.strip(),
                email=request.customer.email,
                phone=request.customer.phone,
                marketing_consent=request.customer.marketing_consent,
                sms_consent=request.customer.sms_consent,
            )

            appointment = await self._insert(
                Appointment(
                    business_id=service.business_id,
                    employee_id=employee.id,
                    service_id=service.id,
                    customer_id=customer.id,
                    start_at=start,
                    end_at=end,
                    status=AppointmentStatus.SCHEDULED,
                    confirmation_token=new_confirmation_token(),
                    price=service.price,
                    customer_notes=request.customer_notes,
                )
            )

            if request.customer_package_id:
                customer_package_id = as_uuid(request.customer_package_id)
                await self.ledger.redeem_in_session(
                    service.business_id,
                    request.customer_package_id,
                    customer_id=customer.id,
                    appointment_id=appointment.id,
                    service_id=service.id,
                )
                appointment.customer_package_id = customer_package_id
                appointment.price = Decimal("0")
                await self.session.flush()

            business = await self.db.get_business(service.business_id)

        logger.info(
            f"Booked appointment {appointment.id} with employee {employee.id} "
            f"for {start:%Y-%m-%d %H:%M}-{end:%H:%M}"
        )
        self._send_confirmation(appointment, business, service, employee, customer)
        return appointment

    def _send_confirmation(
        self,
        appointment: Appointment,
        business: Business,
        service: Service,
        employee: Optional[Employee],
        customer: Customer,
    ) -> None:
        try:
            self.notifier.send_booking_confirmation(
                BookingConfirmation(
                    appointment_id=str(appointment.id),
                    business_name=business.name,
                    service_name=service.name,
                    employee_name=employee.full_name if employee else None,
                    start_at=appointment.start_at,
                    confirmation_token=appointment.confirmation_token,
                    customer_name=customer.full_name,
                    customer_email=customer.email,
                    customer_phone=customer.phone,
                    sms_consent=customer.sms_consent,
                    business_address=business.full_address,
                )
            )
        except Exception:
            logger.exception(f"Failed to hand appointment {appointment.id} to the notifier")

    # ==================== TOKEN FLOW ====================

    async def get_by_token(self, token: str) -> Appointment:
        appointment = await self.db.get_appointment_by_token(token)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    async def _set_status(
        self,
        appointment: Appointment,
        target: str,
        allowed_from: tuple[str, ...],
        **values,
    ) -> None:
        if appointment.status not in allowed_from:
            raise InvalidStateTransition("appointment", appointment.status, target)

        result = await self.session.execute(
            update(Appointment)
            .where(Appointment.id == appointment.id, Appointment.status.in_(allowed_from))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.refresh(appointment, ["status"])
            raise InvalidStateTransition("appointment", appointment.status, target)
        await self.session.refresh(
            appointment,
            ["status", "customer_response", "customer_confirmed_at", "canceled_at", "updated_at"],
        )

    async def confirm_by_token(self, token: str, now: Optional[datetime] = None) -> Appointment:
        now = now or datetime.utcnow()
        async with unit_of_work(self.session):
            appointment = await self.get_by_token(token)
            if appointment.status == AppointmentStatus.CONFIRMED:
                return appointment
            await self._set_status(
                appointment,
                AppointmentStatus.CONFIRMED,
                (AppointmentStatus.SCHEDULED,),
                customer_response="confirmed",
                customer_confirmed_at=now,
            )
        logger.info(f"Appointment {appointment.id} confirmed by customer")
        return appointment

    async def decline_by_token(self, token: str, now: Optional[datetime] = None) -> StatusChange:
        now = now or datetime.utcnow()
        async with unit_of_work(self.session):
            appointment = await self.get_by_token(token)
            await self._set_status(
                appointment,
                AppointmentStatus.CANCELED,
                OPEN_STATUSES,
                customer_response="declined",
                canceled_at=now,
            )
        logger.info(f"Appointment {appointment.id} declined by customer")
        return StatusChange(appointment, await self._matches_for(appointment))

    # ==================== STAFF ====================

    async def _require_appointment(
        self, business_id: IdLike, appointment_id: IdLike, *, for_update: bool = False
    ) -> Appointment:
        appointment = await self.db.get_appointment(business_id, appointment_id, for_update=for_update)
        if appointment is None:
            raise NotFoundError(f"Appointment '{appointment_id}' not found")
        return appointment

    async def _matches_for(
        self,
        appointment: Appointment,
        start_at: Optional[datetime] = None,
        employee_id=None,
    ) -> List[WaitlistEntry]:
        start_at = start_at or appointment.start_at
        return await self.waitlist.find_matches(
            appointment.business_id,
            appointment.service_id,
            start_at.date(),
            start_at.time(),
            employee_id=employee_id or appointment.employee_id,
        )

    async def update_status(
        self,
        business_id: IdLike,
        appointment_id: IdLike,
        status: str,
        now: Optional[datetime] = None,
    ) -> StatusChange:
        if status not in AppointmentStatus.ALL:
            raise ValidationError(f"Unknown appointment status '{status}'")
        now = now or datetime.utcnow()
        allowed_from = tuple(
            current for current, targets in STATUS_TRANSITIONS.items() if status in targets
        )

        values = {}
        if status == AppointmentStatus.CANCELED:
            values["canceled_at"] = now

        async with unit_of_work(self.session):
            appointment = await self._require_appointment(business_id, appointment_id)
            await self._set_status(appointment, status, allowed_from, **values)

        logger.info(f"Appointment {appointment.id} is now {status}")
        if status != AppointmentStatus.CANCELED:
            return StatusChange(appointment)
        return StatusChange(appointment, await self._matches_for(appointment))

    async def reschedule(
        self,
        business_id: IdLike,
        appointment_id: IdLike,
        day: date,
        start_time: time,
        employee_choice: Optional[EmployeeChoice] = None,
    ) -> StatusChange:
        """Move an open appointment, re-validated exactly like a new booking.

        Without an explicit choice the appointment stays with its employee.
        The returned matches are for the slot that was vacated.
        """
        if day is None or start_time is None:
            raise ValidationError("date and time are required")
        require_whole_minute(start_time)
        start = datetime.combine(day, start_time)

        async with unit_of_work(self.session):
            appointment = await self._require_appointment(business_id, appointment_id, for_update=True)
            if appointment.status not in OPEN_STATUSES:
                raise InvalidStateTransition("appointment", appointment.status, "rescheduled")

            previous_start = appointment.start_at
            previous_employee_id = appointment.employee_id

            service = await resolve_service(self.db, appointment.business_id, appointment.service_id)
            end = start + timedelta(minutes=service.duration_minutes)
            if employee_choice is None:
                employee_choice = (
                    SpecificEmployee(appointment.employee_id)
                    if appointment.employee_id
                    else AnyAvailable()
                )

            employee = await self._assign_employee(
                service, employee_choice, start, end, exclude_appointment_id=appointment.id
            )

            appointment.employee_id = employee.id
            appointment.start_at = start
            appointment.end_at = end
            try:
                await self.session.flush()
            except IntegrityError as exc:
                if _is_overlap_violation(exc):
                    raise SlotNoLongerAvailable(
                        "The selected time has just been booked, please pick another slot"
                    ) from exc
                raise

            business = await self.db.get_business(appointment.business_id)
            customer = await self.db.get_customer(appointment.business_id, appointment.customer_id)

        logger.info(
            f"Rescheduled appointment {appointment.id} from {previous_start:%Y-%m-%d %H:%M} "
            f"to {start:%Y-%m-%d %H:%M}"
        )
        self._send_confirmation(appointment, business, service, employee, customer)
        matches = await self._matches_for(
            appointment, start_at=previous_start, employee_id=previous_employee_id
        )
        return StatusChange(appointment, matches)

    async def list_for_day(
        self,
        business_id: IdLike,
        day: date,
        employee_id: Optional[IdLike] = None,
    ) -> List[Appointment]:
        if await self.db.get_business(business_id) is None:
            raise NotFoundError(f"Business '{business_id}' not found")
        return await self.db.list_appointments_for_day(business_id, day, employee_id)
