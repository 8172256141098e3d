from __future__ import annotations

import logging
from datetime import date, time
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from appointly.core.errors import ValidationError
from appointly.models import Employee, Service
from appointly.services.db_service import DBService, IdLike, as_uuid
from appointly.services.scheduling import AnyAvailable, EmployeeChoice, SpecificEmployee, free_starts

logger = logging.getLogger(__name__)


async def resolve_service(db: DBService, business_id: IdLike, service_id: IdLike) -> Service:
    business = await db.get_business(business_id)
    if business is None:
        raise ValidationError(f"Unknown business '{business_id}'")
    service = await db.get_service(business.id, service_id)
    if service is None or not service.is_active:
        raise ValidationError(f"Unknown or inactive service '{service_id}'")
    return service


async def resolve_candidates(
    db: DBService,
    business_id: IdLike,
    choice: EmployeeChoice,
    *,
    for_update: bool = False,
) -> List[Employee]:
    """Employees a request may be served by, in lock order."""
    if isinstance(choice, SpecificEmployee):
        employee = await db.get_employee(business_id, choice.employee_id, for_update=for_update)
        if employee is None or not employee.is_active:
            raise ValidationError(f"Unknown or inactive employee '{choice.employee_id}'")
        return [employee]
    if isinstance(choice, AnyAvailable):
        return await db.list_active_employees(business_id, for_update=for_update)
    raise ValidationError(f"Unsupported employee choice {choice!r}")


class AvailabilityCalculator:
    """Read-only slot computation; results are a hint until the booking commits."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.db = DBService(session)

    async def compute_slots(
        self,
        business_id: IdLike,
        service_id: IdLike,
        employee_choice: EmployeeChoice,
        day: date,
        exclude_appointment_id: Optional[IdLike] = None,
    ) -> List[time]:
        service = await resolve_service(self.db, business_id, service_id)
        employees = await resolve_candidates(self.db, service.business_id, employee_choice)
        if not employees:
            return []

        busy = await self.db.list_busy_intervals(
            [employee.id for employee in employees],
            day,
            exclude_appointment_id=as_uuid(exclude_appointment_id),
        )

        slots: set[time] = set()
        for employee in employees:
            window = employee.schedule.window_for(day)
            slots.update(free_starts(day, window, service.duration_minutes, busy[employee.id]))

        logger.debug(
            f"{len(slots)} slots for service {service.id} on {day} across {len(employees)} employee(s)"
        )
        return sorted(slots)
