from sqlalchemy import select, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from appointly.models import (
    Appointment,
    AppointmentStatus,
    Business,
    Customer,
    Employee,
    Package,
    Service,
)
from appointly.services.scheduling import WeeklySchedule, at_minute
from typing import Iterable, Optional, List, Sequence, Union
from datetime import date, datetime
import logging
import re
import uuid

logger = logging.getLogger(__name__)

IdLike = Union[str, uuid.UUID]

_PHONE_STRIP_RE = re.compile(r"[\s\-\(\)]")


def as_uuid(value: Optional[IdLike]) -> Optional[uuid.UUID]:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def normalize_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip().lower()
    return email or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    phone = _PHONE_STRIP_RE.sub("", phone or "")
    return phone or None


class DBService:
    """
    Tenant-scoped database access for the booking core.

    Methods only add/flush; committing is left to the caller's unit of work
    so that a read, its re-validation and the write share one transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==================== BUSINESSES ====================

    async def get_business(self, business_id: IdLike) -> Optional[Business]:
        """Get business by ID"""
        b_uuid = as_uuid(business_id)
        if b_uuid is None:
            return None

        result = await self.session.execute(
            select(Business).where(Business.id == b_uuid)
        )
        return result.scalar_one_or_none()

    async def get_business_by_slug(self, slug: str) -> Optional[Business]:
        result = await self.session.execute(
            select(Business).where(Business.slug == slug, Business.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def create_business(self, data: dict) -> Business:
        business = Business(**data)
        self.session.add(business)
        await self.session.flush()
        return business

    # ==================== SERVICES ====================

    async def create_service(self, business_id: IdLike, data: dict) -> Service:
        service = Service(business_id=as_uuid(business_id), **data)
        self.session.add(service)
        await self.session.flush()
        return service

    async def get_service(self, business_id: IdLike, service_id: IdLike) -> Optional[Service]:
        s_uuid = as_uuid(service_id)
        b_uuid = as_uuid(business_id)
        if s_uuid is None or b_uuid is None:
            return None

        result = await self.session.execute(
            select(Service).where(Service.id == s_uuid, Service.business_id == b_uuid)
        )
        return result.scalar_one_or_none()

    # ==================== EMPLOYEES ====================

    async def create_employee(self, business_id: IdLike, data: dict) -> Employee:
        if data.get("work_schedule"):
            data = {**data, "work_schedule": WeeklySchedule.from_mapping(data["work_schedule"]).to_mapping()}
        employee = Employee(business_id=as_uuid(business_id), **data)
        self.session.add(employee)
        await self.session.flush()
        return employee

    async def get_employee(
        self,
        business_id: IdLike,
        employee_id: IdLike,
        *,
        for_update: bool = False,
    ) -> Optional[Employee]:
        e_uuid = as_uuid(employee_id)
        b_uuid = as_uuid(business_id)
        if e_uuid is None or b_uuid is None:
            return None

        query = select(Employee).where(Employee.id == e_uuid, Employee.business_id == b_uuid)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_active_employees(
        self,
        business_id: IdLike,
        *,
        for_update: bool = False,
    ) -> List[Employee]:
        """Active employees in a stable order.

        The order doubles as the lock order when ``for_update`` is set, so
        concurrent bookings always take employee locks in the same sequence.
        """
        b_uuid = as_uuid(business_id)
        if b_uuid is None:
            return []

        query = (
            select(Employee)
            .where(Employee.business_id == b_uuid, Employee.is_active.is_(True))
            .order_by(Employee.first_name, Employee.last_name, Employee.id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ==================== APPOINTMENTS ====================

    async def list_overlapping(
        self,
        employee_id: uuid.UUID,
        interval_start: datetime,
        interval_end: datetime,
        *,
        exclude_statuses: Sequence[str] = (AppointmentStatus.CANCELED,),
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> List[Appointment]:
        """Appointments of one employee intersecting [interval_start, interval_end)."""
        query = select(Appointment).where(
            Appointment.employee_id == employee_id,
            Appointment.start_at < interval_end,
            Appointment.end_at > interval_start,
        )
        if exclude_statuses:
            query = query.where(Appointment.status.not_in(list(exclude_statuses)))
        if exclude_appointment_id is not None:
            query = query.where(Appointment.id != exclude_appointment_id)
        result = await self.session.execute(query.order_by(Appointment.start_at))
        return list(result.scalars().all())

    async def list_busy_intervals(
        self,
        employee_ids: Iterable[uuid.UUID],
        day: date,
        *,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> dict[uuid.UUID, list[tuple[datetime, datetime]]]:
        """Non-canceled intervals touching ``day``, grouped by employee."""
        employee_ids = list(employee_ids)
        busy: dict[uuid.UUID, list[tuple[datetime, datetime]]] = {e: [] for e in employee_ids}
        if not employee_ids:
            return busy

        day_start = at_minute(day, 0)
        day_end = at_minute(day, 24 * 60)
        query = select(Appointment.employee_id, Appointment.start_at, Appointment.end_at).where(
            Appointment.employee_id.in_(employee_ids),
            Appointment.status != AppointmentStatus.CANCELED,
            Appointment.start_at < day_end,
            Appointment.end_at > day_start,
        )
        if exclude_appointment_id is not None:
            query = query.where(Appointment.id != exclude_appointment_id)

        result = await self.session.execute(query)
        for employee_id, start_at, end_at in result.all():
            busy[employee_id].append((start_at, end_at))
        return busy

    async def add_appointment(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        await self.session.flush()
        return appointment

    async def get_appointment(
        self,
        business_id: IdLike,
        appointment_id: IdLike,
        *,
        for_update: bool = False,
    ) -> Optional[Appointment]:
        a_uuid = as_uuid(appointment_id)
        b_uuid = as_uuid(business_id)
        if a_uuid is None or b_uuid is None:
            return None

        query = select(Appointment).where(
            Appointment.id == a_uuid, Appointment.business_id == b_uuid
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_appointment_by_token(self, token: str) -> Optional[Appointment]:
        """Appointment with its service, employee, customer and business loaded."""
        if not token:
            return None
        result = await self.session.execute(
            select(Appointment)
            .where(Appointment.confirmation_token == token)
            .options(
                selectinload(Appointment.service),
                selectinload(Appointment.employee),
                selectinload(Appointment.customer),
                selectinload(Appointment.business),
            )
        )
        return result.scalar_one_or_none()

    async def list_appointments_for_day(
        self,
        business_id: IdLike,
        day: date,
        employee_id: Optional[IdLike] = None,
    ) -> List[Appointment]:
        b_uuid = as_uuid(business_id)
        if b_uuid is None:
            return []

        query = (
            select(Appointment)
            .where(
                Appointment.business_id == b_uuid,
                Appointment.start_at >= at_minute(day, 0),
                Appointment.start_at < at_minute(day, 24 * 60),
            )
            .options(selectinload(Appointment.customer), selectinload(Appointment.service))
            .order_by(Appointment.start_at)
        )
        if employee_id is not None:
            query = query.where(Appointment.employee_id == as_uuid(employee_id))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ==================== CUSTOMERS ====================

    async def get_customer(self, business_id: IdLike, customer_id: IdLike) -> Optional[Customer]:
        c_uuid = as_uuid(customer_id)
        b_uuid = as_uuid(business_id)
        if c_uuid is None or b_uuid is None:
            return None

        result = await self.session.execute(
            select(Customer).where(Customer.id == c_uuid, Customer.business_id == b_uuid)
        )
        return result.scalar_one_or_none()

    async def find_customer(
        self,
        business_id: IdLike,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Optional[Customer]:
        """Match a customer by email first, then by phone, within one tenant."""
        b_uuid = as_uuid(business_id)
        email = normalize_email(email)
        phone = normalize_phone(phone)

        if email:
            result = await self.session.execute(
                select(Customer).where(Customer.business_id == b_uuid, Customer.email == email)
            )
            customer = result.scalar_one_or_none()
            if customer:
                return customer

        if phone:
            result = await self.session.execute(
                select(Customer).where(Customer.business_id == b_uuid, Customer.phone == phone)
            )
            return result.scalar_one_or_none()

        return None

    async def find_or_create_customer(
        self,
        business_id: IdLike,
        *,
        first_name: str,
        last_name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        marketing_consent: bool = False,
        sms_consent: bool = False,
    ) -> Customer:
        """Upsert a customer by identity (email or phone) without duplicating rows."""
        email = normalize_email(email)
        phone = normalize_phone(phone)

        customer = await self.find_customer(business_id, email=email, phone=phone)
        if customer is None:
            customer = Customer(
                business_id=as_uuid(business_id),
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                marketing_consent=marketing_consent,
                sms_consent=sms_consent,
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(customer)
            except IntegrityError:
                # Someone else created the same identity in the meantime
                logger.info(f"Customer identity already exists for business {business_id}, reusing it")
                customer = await self.find_customer(business_id, email=email, phone=phone)
                if customer is None:
                    raise
            else:
                return customer

        customer.first_name = first_name
        customer.last_name = last_name
        customer.marketing_consent = marketing_consent
        customer.sms_consent = sms_consent
        if email and email != customer.email and not await self._identity_taken(customer, email=email):
            customer.email = email
        if phone and phone != customer.phone and not await self._identity_taken(customer, phone=phone):
            customer.phone = phone
        await self.session.flush()
        return customer

    async def _identity_taken(
        self,
        customer: Customer,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> bool:
        conditions = []
        if email:
            conditions.append(Customer.email == email)
        if phone:
            conditions.append(Customer.phone == phone)
        result = await self.session.execute(
            select(Customer.id).where(
                and_(
                    Customer.business_id == customer.business_id,
                    Customer.id != customer.id,
                    or_(*conditions),
                )
            )
        )
        return result.first() is not None

    # ==================== PACKAGES ====================

    async def create_package(self, business_id: IdLike, data: dict) -> Package:
        package = Package(business_id=as_uuid(business_id), **data)
        self.session.add(package)
        await self.session.flush()
        return package
