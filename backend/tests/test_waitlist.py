import asyncio
import uuid
from datetime import date, datetime, time, timedelta

import pytest

from appointly.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from appointly.models import WaitlistStatus
from appointly.services.waitlist import WaitlistEngine, WaitlistRequest

from conftest import DAY


def waitlist_request(salon, **overrides):
    fields = {
        "service_id": salon.trim_id,
        "customer_name": "Walter Wartend",
        "customer_phone": "0151 2345678",
        "preferred_date_from": date(2024, 4, 29),
        "preferred_date_to": date(2024, 5, 3),
    }
    fields.update(overrides)
    return WaitlistRequest(**fields)


async def add(session_factory, notifier, salon, **overrides):
    async with session_factory() as session:
        return await WaitlistEngine(session, notifier=notifier).add_entry(
            salon.business_id, waitlist_request(salon, **overrides)
        )


@pytest.fixture
def engine_for(session_factory, notifier):
    """Run one waitlist call in its own session."""

    async def run(method, *args, **kwargs):
        async with session_factory() as session:
            return await getattr(WaitlistEngine(session, notifier=notifier), method)(*args, **kwargs)

    return run


class TestAddEntry:
    async def test_new_entry_is_waiting(self, session_factory, notifier, salon):
        entry = await add(session_factory, notifier, salon)

        assert entry.status == WaitlistStatus.WAITING
        assert entry.priority == 0
        assert entry.notification_count == 0
        assert entry.customer_phone == "01512345678"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"customer_name": " "},
            {"customer_phone": None, "customer_email": None},
            {"preferred_date_from": date(2024, 5, 4), "preferred_date_to": date(2024, 5, 3)},
            {"preferred_time_from": time(12, 0), "preferred_time_to": time(9, 0)},
        ],
    )
    async def test_invalid_requests_are_rejected(self, session_factory, notifier, salon, overrides):
        with pytest.raises(ValidationError):
            await add(session_factory, notifier, salon, **overrides)

    async def test_unknown_service_is_rejected(self, session_factory, notifier, salon):
        with pytest.raises(ValidationError):
            await add(session_factory, notifier, salon, service_id=uuid.uuid4())


class TestRanking:
    async def test_priority_then_age(self, session_factory, notifier, salon, engine_for):
        await add(session_factory, notifier, salon, customer_name="Early normal")
        await add(session_factory, notifier, salon, customer_name="Late vip", priority=5)
        await add(session_factory, notifier, salon, customer_name="Late normal")

        ranked = await engine_for("rank", salon.business_id)

        assert [entry.customer_name for entry in ranked] == ["Late vip", "Early normal", "Late normal"]

    async def test_rank_filters_by_status(self, session_factory, notifier, salon, engine_for):
        entry = await add(session_factory, notifier, salon)
        await add(session_factory, notifier, salon, customer_name="Other")
        await engine_for("cancel", salon.business_id, entry.id)

        waiting = await engine_for("rank", salon.business_id, WaitlistStatus.WAITING)

        assert [e.customer_name for e in waiting] == ["Other"]

    async def test_matches_respect_date_time_and_employee(self, session_factory, notifier, salon, engine_for):
        await add(session_factory, notifier, salon, customer_name="Any time")
        await add(
            session_factory,
            notifier,
            salon,
            customer_name="Mornings",
            preferred_time_from=time(8, 0),
            preferred_time_to=time(11, 0),
        )
        await add(session_factory, notifier, salon, customer_name="Fiona fan", employee_id=salon.fiona_id)
        await add(
            session_factory,
            notifier,
            salon,
            customer_name="Next week",
            preferred_date_from=date(2024, 5, 6),
            preferred_date_to=date(2024, 5, 10),
        )
        await add(session_factory, notifier, salon, customer_name="Haircut", service_id=salon.haircut_id)

        morning = await engine_for(
            "find_matches", salon.business_id, salon.trim_id, DAY, time(10, 0), employee_id=salon.erik_id
        )
        afternoon = await engine_for(
            "find_matches", salon.business_id, salon.trim_id, DAY, time(15, 0), employee_id=salon.fiona_id
        )

        assert [e.customer_name for e in morning] == ["Any time", "Mornings"]
        assert [e.customer_name for e in afternoon] == ["Any time", "Fiona fan"]

    async def test_matches_are_limited(self, session_factory, notifier, salon, engine_for):
        for number in range(7):
            await add(session_factory, notifier, salon, customer_name=f"Guest {number}")

        matches = await engine_for("find_matches", salon.business_id, salon.trim_id, DAY, time(10, 0))

        assert len(matches) == 5
        assert matches[0].customer_name == "Guest 0"


class TestTransitions:
    async def test_notify_moves_to_notified_and_prepares_whatsapp_link(
        self, session_factory, notifier, channels, salon, engine_for
    ):
        entry = await add(session_factory, notifier, salon, customer_email="walter@example.com")

        result = await engine_for("notify", salon.business_id, entry.id, DAY, time(10, 0))
        await notifier.drain()

        assert result.entry.status == WaitlistStatus.NOTIFIED
        assert result.entry.notification_count == 1
        assert result.entry.notified_at is not None
        assert result.whatsapp_link.startswith("https://wa.me/491512345678?text=")
        assert len(channels["email"].sent) == 1
        assert len(channels["sms"].sent) == 1
        assert "https://book.example/book/studio-mitte" in channels["sms"].sent[0].body

    async def test_notify_outside_preferred_range_is_rejected(self, session_factory, notifier, salon, engine_for):
        entry = await add(session_factory, notifier, salon)

        with pytest.raises(ValidationError):
            await engine_for("notify", salon.business_id, entry.id, date(2024, 5, 6), time(10, 0))

        waiting = await engine_for("rank", salon.business_id, WaitlistStatus.WAITING)
        assert [e.id for e in waiting] == [entry.id]

    async def test_notify_twice_is_a_defect(self, session_factory, notifier, salon, engine_for):
        entry = await add(session_factory, notifier, salon)
        await engine_for("notify", salon.business_id, entry.id, DAY, time(10, 0))

        with pytest.raises(InvalidStateTransition):
            await engine_for("notify", salon.business_id, entry.id, DAY, time(10, 0))

    async def test_concurrent_notifies_have_one_winner(self, session_factory, notifier, salon, engine_for):
        entry = await add(session_factory, notifier, salon)

        results = await asyncio.gather(
            engine_for("notify", salon.business_id, entry.id, DAY, time(10, 0)),
            engine_for("notify", salon.business_id, entry.id, DAY, time(10, 30)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, InvalidStateTransition) for r in results) == 1
        notified = await engine_for("rank", salon.business_id, WaitlistStatus.NOTIFIED)
        assert notified[0].notification_count == 1

    async def test_booked_then_cancel_keeps_booked(self, session_factory, notifier, salon, engine_for):
        entry = await add(session_factory, notifier, salon)
        await engine_for("notify", salon.business_id, entry.id, DAY, time(10, 0))

        booked = await engine_for("mark_booked", salon.business_id, entry.id)
        with pytest.raises(InvalidStateTransition) as excinfo:
            await engine_for("cancel", salon.business_id, entry.id)

        assert booked.status == WaitlistStatus.BOOKED
        assert excinfo.value.current == WaitlistStatus.BOOKED
        still = await engine_for("get_entry", salon.business_id, entry.id)
        assert still.status == WaitlistStatus.BOOKED

    async def test_waiting_can_be_booked_or_canceled_directly(self, session_factory, notifier, salon, engine_for):
        first = await add(session_factory, notifier, salon)
        second = await add(session_factory, notifier, salon, customer_name="Second")

        assert (await engine_for("mark_booked", salon.business_id, first.id)).status == WaitlistStatus.BOOKED
        assert (await engine_for("cancel", salon.business_id, second.id)).status == WaitlistStatus.CANCELED

    async def test_expire_only_from_notified(self, session_factory, notifier, salon, engine_for):
        entry = await add(session_factory, notifier, salon)

        with pytest.raises(InvalidStateTransition):
            await engine_for("expire", salon.business_id, entry.id)

        await engine_for("notify", salon.business_id, entry.id, DAY, time(10, 0))
        expired = await engine_for("expire", salon.business_id, entry.id)
        assert expired.status == WaitlistStatus.EXPIRED

        # Terminal states are never left
        for method in ("notify", "mark_booked", "cancel", "expire"):
            args = (DAY, time(10, 0)) if method == "notify" else ()
            with pytest.raises(InvalidStateTransition):
                await engine_for(method, salon.business_id, entry.id, *args)

    async def test_expire_stale_only_touches_old_notifications(self, session_factory, notifier, salon, engine_for):
        old = await add(session_factory, notifier, salon, customer_name="Old")
        fresh = await add(session_factory, notifier, salon, customer_name="Fresh")
        untouched = await add(session_factory, notifier, salon, customer_name="Untouched")
        now = datetime(2024, 5, 1, 12, 0)
        await engine_for("notify", salon.business_id, old.id, DAY, time(10, 0), now=now - timedelta(days=2))
        await engine_for("notify", salon.business_id, fresh.id, DAY, time(10, 0), now=now)

        count = await engine_for("expire_stale", salon.business_id, now - timedelta(days=1))

        assert count == 1
        assert (await engine_for("get_entry", salon.business_id, old.id)).status == WaitlistStatus.EXPIRED
        assert (await engine_for("get_entry", salon.business_id, fresh.id)).status == WaitlistStatus.NOTIFIED
        assert (await engine_for("get_entry", salon.business_id, untouched.id)).status == WaitlistStatus.WAITING

    async def test_unknown_entry(self, salon, engine_for):
        with pytest.raises(NotFoundError):
            await engine_for("cancel", salon.business_id, uuid.uuid4())
