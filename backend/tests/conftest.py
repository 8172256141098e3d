"""
Pytest configuration: a throwaway SQLite database per test and a seeded salon.
"""

import os

# Keep real providers out of the test run; must happen before appointly is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RESEND_API_KEY"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = ""
os.environ["PUBLIC_APP_URL"] = "https://book.example"

from datetime import date, time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appointly.core.database import Base, create_engine_for_url, unit_of_work
from appointly.integrations.notifications import Notifier
from appointly.services.booking import BookingRequest, CustomerData
from appointly.services.db_service import DBService
from appointly.services.scheduling import AnyAvailable, SpecificEmployee

# 2024-05-01 is a Wednesday
DAY = date(2024, 5, 1)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")


class RecordingChannel:
    """Notification channel that keeps messages in memory (or fails on demand)."""

    configured = True

    def __init__(self, name: str, fail: bool = False):
        self.name = name
        self.fail = fail
        self.sent = []

    async def send(self, message):
        if self.fail:
            raise RuntimeError(f"{self.name} provider is down")
        self.sent.append(message)


def booking_request(
    service_id,
    at: time,
    day: date = DAY,
    employee_id=None,
    **customer,
) -> BookingRequest:
    customer_fields = {
        "first_name": "Clara",
        "last_name": "Meyer",
        "email": "clara@example.com",
        "phone": None,
    }
    customer_fields.update(customer)
    return BookingRequest(
        service_id=service_id,
        day=day,
        start_time=at,
        employee_choice=SpecificEmployee(employee_id) if employee_id else AnyAvailable(),
        customer=CustomerData(**customer_fields),
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'appointly-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def channels():
    return {
        "email": RecordingChannel("email"),
        "sms": RecordingChannel("sms"),
        "whatsapp": RecordingChannel("whatsapp"),
    }


@pytest.fixture
def notifier(channels):
    return Notifier(channels=channels)


@pytest.fixture
async def salon(session_factory):
    """One business, two services and two employees.

    Erik works Monday to Friday 09:00-18:00, Fiona only on Wednesday 13:00-20:00.
    """
    async with session_factory() as session:
        db = DBService(session)
        async with unit_of_work(session):
            business = await db.create_business(
                {
                    "name": "Studio Mitte",
                    "slug": "studio-mitte",
                    "address": "Torstrasse 1",
                    "city": "Berlin",
                }
            )
            haircut = await db.create_service(
                business.id,
                {"name": "Haircut", "duration_minutes": 60, "price": Decimal("45.00")},
            )
            trim = await db.create_service(
                business.id,
                {"name": "Beard trim", "duration_minutes": 30, "price": Decimal("20.00")},
            )
            erik = await db.create_employee(
                business.id,
                {
                    "first_name": "Erik",
                    "last_name": "Brandt",
                    "work_schedule": {day: {"start": "09:00", "end": "18:00"} for day in WEEKDAYS},
                },
            )
            fiona = await db.create_employee(
                business.id,
                {
                    "first_name": "Fiona",
                    "last_name": "Lang",
                    "work_schedule": {"wednesday": {"start": "13:00", "end": "20:00"}},
                },
            )

    return SimpleNamespace(
        business_id=business.id,
        haircut_id=haircut.id,
        trim_id=trim.id,
        erik_id=erik.id,
        fiona_id=fiona.id,
    )
