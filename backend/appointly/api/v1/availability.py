from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.v1.common import _parse_date
from appointly.core.database import get_db
from appointly.core.errors import ValidationError
from appointly.services.availability import AvailabilityCalculator
from appointly.services.scheduling import employee_choice

router = APIRouter(tags=["availability"])


@router.get("/businesses/{business_id}/availability")
async def get_availability(
    business_id: str,
    service_id: Optional[str] = None,
    date: Optional[str] = None,
    employee_id: Optional[str] = None,
    exclude_appointment_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Free start times for a service on one day.

    Without ``employee_id`` the result is the union over all active employees.
    """
    if not service_id:
        raise ValidationError("service_id is required")
    day = _parse_date(date)

    calculator = AvailabilityCalculator(db)
    slots = await calculator.compute_slots(
        business_id,
        service_id,
        employee_choice(employee_id),
        day,
        exclude_appointment_id=exclude_appointment_id,
    )
    return {
        "business_id": business_id,
        "service_id": service_id,
        "date": day.isoformat(),
        "employee_id": employee_id,
        "slots": [slot.strftime("%H:%M") for slot in slots],
    }
