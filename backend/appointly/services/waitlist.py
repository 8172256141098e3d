"""Waitlist engine.

Entries only move forward: ``waiting -> notified -> booked | expired | canceled``
and ``waiting -> booked | canceled``. Each transition is a conditional
``UPDATE ... WHERE status IN (...)``, so of two concurrent transitions on the
same entry exactly one applies and the other gets ``InvalidStateTransition``.
Nothing here picks a candidate or notifies on its own; staff call ``notify``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from appointly.core.config import WAITLIST_MATCH_LIMIT
from appointly.core.database import unit_of_work
from appointly.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from appointly.integrations.notifications import Notifier, WaitlistNotice, notifier as default_notifier
from appointly.models import WaitlistEntry, WaitlistStatus
from appointly.services.availability import resolve_service
from appointly.services.db_service import DBService, IdLike, as_uuid, normalize_email, normalize_phone

logger = logging.getLogger(__name__)

_ENTITY = "waitlist_entry"


@dataclass
class WaitlistRequest:
    service_id: IdLike
    customer_name: str
    preferred_date_from: date
    preferred_date_to: date
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    preferred_time_from: Optional[time] = None
    preferred_time_to: Optional[time] = None
    employee_id: Optional[IdLike] = None
    priority: int = 0
    notes: Optional[str] = None


@dataclass
class NotifyResult:
    entry: WaitlistEntry
    whatsapp_link: Optional[str] = None


def entry_matches(
    entry: WaitlistEntry,
    day: date,
    start_time: time,
    employee_id: Optional[IdLike] = None,
) -> bool:
    """Whether a freed slot fits the entry's date, time and employee preferences."""
    if not entry.preferred_date_from <= day <= entry.preferred_date_to:
        return False
    if entry.preferred_time_from is not None and start_time < entry.preferred_time_from:
        return False
    if entry.preferred_time_to is not None and start_time > entry.preferred_time_to:
        return False
    if entry.employee_id is not None and entry.employee_id != as_uuid(employee_id):
        return False
    return True


class WaitlistEngine:
    def __init__(self, session: AsyncSession, notifier: Optional[Notifier] = None):
        self.session = session
        self.db = DBService(session)
        self.notifier = notifier or default_notifier

    @staticmethod
    def _ranked(query):
        return query.order_by(
            WaitlistEntry.priority.desc(),
            WaitlistEntry.created_at.asc(),
            WaitlistEntry.id,
        )

    async def get_entry(self, business_id: IdLike, entry_id: IdLike) -> Optional[WaitlistEntry]:
        e_uuid = as_uuid(entry_id)
        b_uuid = as_uuid(business_id)
        if e_uuid is None or b_uuid is None:
            return None

        result = await self.session.execute(
            select(WaitlistEntry)
            .where(WaitlistEntry.id == e_uuid, WaitlistEntry.business_id == b_uuid)
            .options(selectinload(WaitlistEntry.service))
        )
        return result.scalar_one_or_none()

    async def _require_entry(self, business_id: IdLike, entry_id: IdLike) -> WaitlistEntry:
        entry = await self.get_entry(business_id, entry_id)
        if entry is None:
            raise NotFoundError(f"Waitlist entry '{entry_id}' not found")
        return entry

    # ==================== ADD ====================

    @staticmethod
    def _validate(request: WaitlistRequest) -> None:
        if not request.service_id:
            raise ValidationError("service_id is required")
        if not (request.customer_name or "").strip():
            raise ValidationError("customer_name is required")
        if not request.preferred_date_from or not request.preferred_date_to:
            raise ValidationError("A preferred date range is required")
        if request.preferred_date_from > request.preferred_date_to:
            raise ValidationError("preferred_date_from must not be after preferred_date_to")
        if not normalize_email(request.customer_email) and not normalize_phone(request.customer_phone):
            raise ValidationError("An email address or phone number is required")
        if (
            request.preferred_time_from is not None
            and request.preferred_time_to is not None
            and request.preferred_time_from >= request.preferred_time_to
        ):
            raise ValidationError("preferred_time_from must be before preferred_time_to")

    async def add_entry(self, business_id: IdLike, request: WaitlistRequest) -> WaitlistEntry:
        self._validate(request)

        async with unit_of_work(self.session):
            service = await resolve_service(self.db, business_id, request.service_id)

            employee_uuid = None
            if request.employee_id:
                employee = await self.db.get_employee(service.business_id, request.employee_id)
                if employee is None:
                    raise ValidationError(f"Unknown employee '{request.employee_id}'")
                employee_uuid = employee.id

            customer = await self.db.find_customer(
                service.business_id, email=request.customer_email, phone=request.customer_phone
            )

            entry = WaitlistEntry(
                business_id=service.business_id,
                service_id=service.id,
                employee_id=employee_uuid,
                customer_id=customer.id if customer else None,
                customer_name=request.customer_name.strip(),
                customer_email=normalize_email(request.customer_email),
                customer_phone=normalize_phone(request.customer_phone),
                preferred_date_from=request.preferred_date_from,
                preferred_date_to=request.preferred_date_to,
                preferred_time_from=request.preferred_time_from,
                preferred_time_to=request.preferred_time_to,
                status=WaitlistStatus.WAITING,
                priority=request.priority or 0,
                notes=request.notes,
            )
            self.session.add(entry)
            await self.session.flush()

        logger.info(f"Waitlist entry {entry.id} added for service {entry.service_id}")
        return entry

    # ==================== RANKING ====================

    async def rank(self, business_id: IdLike, status: Optional[str] = None) -> List[WaitlistEntry]:
        """Entries by priority (highest first), then by age (oldest first)."""
        if status is not None and status not in WaitlistStatus.ALL:
            raise ValidationError(f"Unknown waitlist status '{status}'")

        query = select(WaitlistEntry).where(WaitlistEntry.business_id == as_uuid(business_id))
        if status is not None:
            query = query.where(WaitlistEntry.status == status)
        result = await self.session.execute(self._ranked(query))
        return list(result.scalars().all())

    async def find_matches(
        self,
        business_id: IdLike,
        service_id: IdLike,
        day: date,
        start_time: time,
        employee_id: Optional[IdLike] = None,
        limit: int = WAITLIST_MATCH_LIMIT,
    ) -> List[WaitlistEntry]:
        """Ranked waiting entries a freed slot could be offered to."""
        query = select(WaitlistEntry).where(
            WaitlistEntry.business_id == as_uuid(business_id),
            WaitlistEntry.service_id == as_uuid(service_id),
            WaitlistEntry.status == WaitlistStatus.WAITING,
            WaitlistEntry.preferred_date_from <= day,
            WaitlistEntry.preferred_date_to >= day,
        )
        result = await self.session.execute(self._ranked(query))
        matches = [
            entry
            for entry in result.scalars().all()
            if entry_matches(entry, day, start_time, employee_id)
        ]
        return matches[:limit]

    # ==================== TRANSITIONS ====================

    async def _transition(
        self,
        entry: WaitlistEntry,
        allowed_from: tuple[str, ...],
        target: str,
        **values,
    ) -> WaitlistEntry:
        if entry.status not in allowed_from:
            raise InvalidStateTransition(_ENTITY, entry.status, target)

        result = await self.session.execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.id == entry.id, WaitlistEntry.status.in_(allowed_from))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.refresh(entry, ["status"])
            raise InvalidStateTransition(_ENTITY, entry.status, target)

        await self.session.refresh(entry, ["status", "notified_at", "notification_count", "updated_at"])
        return entry

    async def notify(
        self,
        business_id: IdLike,
        entry_id: IdLike,
        proposed_day: date,
        proposed_time: time,
        channels: Optional[list[str]] = None,
        now: Optional[datetime] = None,
    ) -> NotifyResult:
        """Offer a freed slot to one waiting entry.

        The entry moves to ``notified`` before anything is sent; delivery is
        best-effort and never undoes the transition.
        """
        now = now or datetime.utcnow()
        async with unit_of_work(self.session):
            entry = await self._require_entry(business_id, entry_id)
            if entry.status != WaitlistStatus.WAITING:
                raise InvalidStateTransition(_ENTITY, entry.status, WaitlistStatus.NOTIFIED)
            if not entry.preferred_date_from <= proposed_day <= entry.preferred_date_to:
                raise ValidationError(
                    f"{proposed_day} is outside the preferred range "
                    f"{entry.preferred_date_from} - {entry.preferred_date_to}"
                )

            await self._transition(
                entry,
                (WaitlistStatus.WAITING,),
                WaitlistStatus.NOTIFIED,
                notified_at=now,
                notification_count=WaitlistEntry.notification_count + 1,
            )
            business = await self.db.get_business(entry.business_id)

        notice = WaitlistNotice(
            entry_id=str(entry.id),
            business_name=business.name,
            business_slug=business.slug,
            service_name=entry.service.name if entry.service else "your requested service",
            proposed_day=proposed_day,
            proposed_time=proposed_time,
            customer_name=entry.customer_name,
            customer_email=entry.customer_email,
            customer_phone=entry.customer_phone,
        )
        if channels is not None:
            notice.channels = list(channels)

        link = None
        try:
            link = self.notifier.send_waitlist_notice(notice)
        except Exception:
            logger.exception(f"Failed to hand waitlist entry {entry.id} to the notifier")

        logger.info(f"Waitlist entry {entry.id} notified about {proposed_day} {proposed_time}")
        return NotifyResult(entry=entry, whatsapp_link=link)

    async def _move(
        self,
        business_id: IdLike,
        entry_id: IdLike,
        allowed_from: tuple[str, ...],
        target: str,
    ) -> WaitlistEntry:
        async with unit_of_work(self.session):
            entry = await self._require_entry(business_id, entry_id)
            await self._transition(entry, allowed_from, target)
        logger.info(f"Waitlist entry {entry.id} is now {target}")
        return entry

    async def mark_booked(self, business_id: IdLike, entry_id: IdLike) -> WaitlistEntry:
        return await self._move(
            business_id,
            entry_id,
            (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED),
            WaitlistStatus.BOOKED,
        )

    async def cancel(self, business_id: IdLike, entry_id: IdLike) -> WaitlistEntry:
        return await self._move(
            business_id,
            entry_id,
            (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED),
            WaitlistStatus.CANCELED,
        )

    async def expire(self, business_id: IdLike, entry_id: IdLike) -> WaitlistEntry:
        return await self._move(
            business_id,
            entry_id,
            (WaitlistStatus.NOTIFIED,),
            WaitlistStatus.EXPIRED,
        )

    async def expire_stale(self, business_id: IdLike, notified_before: datetime) -> int:
        """Expire every entry that was notified before the cutoff and never answered."""
        async with unit_of_work(self.session):
            result = await self.session.execute(
                update(WaitlistEntry)
                .where(
                    WaitlistEntry.business_id == as_uuid(business_id),
                    WaitlistEntry.status == WaitlistStatus.NOTIFIED,
                    WaitlistEntry.notified_at < notified_before,
                )
                .values(status=WaitlistStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
        count = result.rowcount
        if count:
            logger.info(f"Expired {count} waitlist entries for business {business_id}")
        return count
