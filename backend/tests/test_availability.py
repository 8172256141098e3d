import uuid
from datetime import date, datetime, time

import pytest

from appointly.core.database import unit_of_work
from appointly.core.errors import ValidationError
from appointly.models import Appointment, AppointmentStatus, Employee
from appointly.services.availability import AvailabilityCalculator
from appointly.services.db_service import DBService
from appointly.services.scheduling import AnyAvailable, SpecificEmployee

from conftest import DAY


async def add_appointment(session_factory, salon, employee_id, start, end, status=AppointmentStatus.SCHEDULED):
    async with session_factory() as session:
        async with unit_of_work(session):
            customer = await DBService(session).find_or_create_customer(
                salon.business_id, first_name="Existing", last_name="Guest", email=f"{uuid.uuid4().hex}@example.com"
            )
            appointment = Appointment(
                business_id=salon.business_id,
                employee_id=employee_id,
                service_id=salon.haircut_id,
                customer_id=customer.id,
                start_at=start,
                end_at=end,
                status=status,
                confirmation_token=uuid.uuid4().hex,
            )
            session.add(appointment)
    return appointment


async def compute(session_factory, salon, service_id, choice, day=DAY, **kwargs):
    async with session_factory() as session:
        return await AvailabilityCalculator(session).compute_slots(
            salon.business_id, service_id, choice, day, **kwargs
        )


class TestComputeSlots:
    async def test_existing_appointment_blocks_overlapping_starts(self, session_factory, salon):
        # Erik 09:00-18:00 on Wednesday, busy 10:00-11:00, 60 minute service
        await add_appointment(
            session_factory, salon, salon.erik_id, datetime(2024, 5, 1, 10), datetime(2024, 5, 1, 11)
        )

        slots = await compute(session_factory, salon, salon.haircut_id, SpecificEmployee(salon.erik_id))

        assert slots[0] == time(9, 0)
        assert time(9, 30) not in slots
        assert time(10, 0) not in slots
        assert time(10, 30) not in slots
        assert time(11, 0) in slots
        assert time(11, 30) in slots
        assert slots[-1] == time(17, 0)
        assert len(slots) == 1 + 13  # 09:00, then 11:00 through 17:00

    async def test_any_employee_returns_the_union_without_duplicates(self, session_factory, salon):
        slots = await compute(session_factory, salon, salon.trim_id, AnyAvailable())

        # Erik covers 09:00-17:30 starts, Fiona extends the day to 19:30
        assert slots == sorted(set(slots))
        assert slots[0] == time(9, 0)
        assert slots[-1] == time(19, 30)
        assert slots.count(time(14, 0)) == 1

    async def test_slot_stays_open_while_another_employee_is_free(self, session_factory, salon):
        await add_appointment(
            session_factory, salon, salon.erik_id, datetime(2024, 5, 1, 14), datetime(2024, 5, 1, 15)
        )

        slots = await compute(session_factory, salon, salon.haircut_id, AnyAvailable())

        assert time(14, 0) in slots

    async def test_canceled_appointments_do_not_block(self, session_factory, salon):
        await add_appointment(
            session_factory,
            salon,
            salon.erik_id,
            datetime(2024, 5, 1, 10),
            datetime(2024, 5, 1, 11),
            status=AppointmentStatus.CANCELED,
        )

        slots = await compute(session_factory, salon, salon.haircut_id, SpecificEmployee(salon.erik_id))

        assert time(10, 0) in slots

    async def test_edit_flow_ignores_the_appointment_being_moved(self, session_factory, salon):
        appointment = await add_appointment(
            session_factory, salon, salon.erik_id, datetime(2024, 5, 1, 10), datetime(2024, 5, 1, 11)
        )

        slots = await compute(
            session_factory,
            salon,
            salon.haircut_id,
            SpecificEmployee(salon.erik_id),
            exclude_appointment_id=appointment.id,
        )

        assert time(10, 0) in slots

    async def test_day_off_has_no_slots(self, session_factory, salon):
        # 2024-05-05 is a Sunday
        slots = await compute(session_factory, salon, salon.trim_id, AnyAvailable(), day=date(2024, 5, 5))
        assert slots == []

    async def test_service_longer_than_any_window(self, session_factory, salon):
        async with session_factory() as session:
            async with unit_of_work(session):
                marathon = await DBService(session).create_service(
                    salon.business_id, {"name": "Full day", "duration_minutes": 12 * 60}
                )

        slots = await compute(session_factory, salon, marathon.id, AnyAvailable())

        assert slots == []

    async def test_past_dates_are_computed_normally(self, session_factory, salon):
        slots = await compute(
            session_factory, salon, salon.trim_id, SpecificEmployee(salon.erik_id), day=date(2001, 5, 2)
        )
        assert slots[0] == time(9, 0)

    async def test_no_active_employees_means_no_slots(self, session_factory, salon):
        async with session_factory() as session:
            async with unit_of_work(session):
                db = DBService(session)
                for employee in await db.list_active_employees(salon.business_id):
                    employee.is_active = False

        slots = await compute(session_factory, salon, salon.trim_id, AnyAvailable())

        assert slots == []

    async def test_unknown_service_is_rejected(self, session_factory, salon):
        with pytest.raises(ValidationError):
            await compute(session_factory, salon, uuid.uuid4(), AnyAvailable())

    async def test_unknown_employee_is_rejected(self, session_factory, salon):
        with pytest.raises(ValidationError):
            await compute(session_factory, salon, salon.trim_id, SpecificEmployee(uuid.uuid4()))

    async def test_computation_has_no_side_effects(self, session_factory, salon):
        first = await compute(session_factory, salon, salon.trim_id, AnyAvailable())
        second = await compute(session_factory, salon, salon.trim_id, AnyAvailable())
        assert first == second

    async def test_malformed_schedule_of_one_employee_is_skipped(self, session_factory, salon, caplog):
        async with session_factory() as session:
            async with unit_of_work(session):
                session.add(
                    Employee(
                        business_id=salon.business_id,
                        first_name="Aaron",
                        last_name="Alt",
                        work_schedule={"wednesday": {"start": "09:00", "end": ""}},
                    )
                )

        slots = await compute(session_factory, salon, salon.trim_id, AnyAvailable())

        assert slots[0] == time(9, 0)
        assert slots[-1] == time(19, 30)
        assert "Ignoring work window" in caplog.text

    async def test_invalid_schedule_is_rejected_on_write(self, session_factory, salon):
        async with session_factory() as session:
            with pytest.raises(ValidationError):
                await DBService(session).create_employee(
                    salon.business_id,
                    {"first_name": "Aaron", "last_name": "Alt", "work_schedule": {"wednesday": {"start": "09:00"}}},
                )
