import asyncio
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from appointly.core.database import get_db, unit_of_work
from appointly.core.errors import (
    InactiveError,
    InvalidStateTransition,
    NotFoundError,
    SlotNoLongerAvailable,
    ValidationError,
)
from appointly.integrations.notifications import notifier as module_notifier
from appointly.main import app, status_code_for
from appointly.models import PackageType
from appointly.services.db_service import DBService


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    # Confirmations go to unconfigured providers; let those tasks finish
    await module_notifier.drain()


def booking_body(service_id, at="10:00", employee_id=None, **customer):
    body = {
        "service_id": str(service_id),
        "date": "2024-05-01",
        "time": at,
        "customer": {"first_name": "Clara", "last_name": "Meyer", "email": "clara@example.com", **customer},
    }
    if employee_id:
        body["employee_id"] = str(employee_id)
    return body


def test_error_status_codes():
    assert status_code_for(NotFoundError("x")) == 404
    assert status_code_for(SlotNoLongerAvailable("x")) == 409
    assert status_code_for(InvalidStateTransition("appointment", "completed", "canceled")) == 409
    assert status_code_for(InactiveError("x")) == 422
    assert status_code_for(ValidationError("x")) == 400


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["message"] == "Appointly API"


class TestAvailabilityRoutes:
    async def test_slots_are_formatted_as_clock_times(self, client, salon):
        response = await client.get(
            f"/api/v1/businesses/{salon.business_id}/availability",
            params={"service_id": str(salon.haircut_id), "date": "2024-05-01", "employee_id": str(salon.erik_id)},
        )

        assert response.status_code == 200
        slots = response.json()["slots"]
        assert slots[0] == "09:00"
        assert slots[-1] == "17:00"

    async def test_missing_service_is_a_bad_request(self, client, salon):
        response = await client.get(
            f"/api/v1/businesses/{salon.business_id}/availability", params={"date": "2024-05-01"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "validation_error", "detail": "service_id is required"}

    async def test_malformed_date(self, client, salon):
        response = await client.get(
            f"/api/v1/businesses/{salon.business_id}/availability",
            params={"service_id": str(salon.haircut_id), "date": "01.05.2024"},
        )
        assert response.status_code == 400


class TestAppointmentRoutes:
    async def test_create_then_conflict(self, client, salon):
        url = f"/api/v1/businesses/{salon.business_id}/appointments"

        first = await client.post(url, json=booking_body(salon.haircut_id, employee_id=salon.erik_id))
        second = await client.post(
            url, json=booking_body(salon.haircut_id, employee_id=salon.erik_id, email="dora@example.com")
        )

        assert first.status_code == 201
        created = first.json()
        assert created["status"] == "scheduled"
        assert created["start_at"] == "2024-05-01T10:00:00"
        assert created["price"] == 45.0
        assert second.status_code == 409
        assert second.json()["error"] == "slot_no_longer_available"

    async def test_concurrent_requests_for_one_slot(self, client, salon):
        url = f"/api/v1/businesses/{salon.business_id}/appointments"

        responses = await asyncio.gather(
            client.post(url, json=booking_body(salon.haircut_id, employee_id=salon.erik_id)),
            client.post(url, json=booking_body(salon.haircut_id, employee_id=salon.erik_id, email="x@example.com")),
        )

        assert sorted(r.status_code for r in responses) == [201, 409]

    async def test_missing_customer_is_a_validation_error(self, client, salon):
        body = booking_body(salon.haircut_id)
        del body["customer"]

        response = await client.post(f"/api/v1/businesses/{salon.business_id}/appointments", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_token_flow(self, client, salon):
        created = (
            await client.post(f"/api/v1/businesses/{salon.business_id}/appointments", json=booking_body(salon.trim_id))
        ).json()
        token = created["confirmation_token"]

        page = await client.get(f"/api/v1/appointments/by-token/{token}")
        confirmed = await client.post(f"/api/v1/appointments/by-token/{token}/confirm")
        declined = await client.post(f"/api/v1/appointments/by-token/{token}/decline")
        again = await client.post(f"/api/v1/appointments/by-token/{token}/confirm")

        assert page.json()["business_name"] == "Studio Mitte"
        assert page.json()["business_address"] == "Torstrasse 1, Berlin"
        assert page.json()["customer_name"] == "Clara Meyer"
        assert confirmed.json()["status"] == "confirmed"
        assert declined.json()["appointment"]["status"] == "canceled"
        assert again.status_code == 409
        assert again.json()["current"] == "canceled"

    async def test_unknown_token(self, client):
        response = await client.get("/api/v1/appointments/by-token/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_cancel_lists_waitlist_matches(self, client, salon):
        base = f"/api/v1/businesses/{salon.business_id}"
        created = (await client.post(f"{base}/appointments", json=booking_body(salon.trim_id))).json()
        await client.post(
            f"{base}/waitlist",
            json={
                "service_id": str(salon.trim_id),
                "customer_name": "Walter Wartend",
                "customer_phone": "0151 2345678",
                "preferred_date_from": "2024-04-29",
                "preferred_date_to": "2024-05-03",
            },
        )

        response = await client.post(f"{base}/appointments/{created['id']}/status", json={"status": "canceled"})

        assert response.status_code == 200
        assert [m["customer_name"] for m in response.json()["waitlist_matches"]] == ["Walter Wartend"]

    async def test_reschedule_and_list(self, client, salon):
        base = f"/api/v1/businesses/{salon.business_id}"
        created = (
            await client.post(f"{base}/appointments", json=booking_body(salon.trim_id, employee_id=salon.erik_id))
        ).json()

        moved = await client.post(
            f"{base}/appointments/{created['id']}/reschedule", json={"date": "2024-05-01", "time": "15:00"}
        )
        listing = await client.get(f"{base}/appointments", params={"date": "2024-05-01"})

        assert moved.status_code == 200
        assert moved.json()["appointment"]["start_at"] == "2024-05-01T15:00:00"
        assert listing.json()["total"] == 1

    async def test_unknown_appointment(self, client, salon):
        response = await client.post(
            f"/api/v1/businesses/{salon.business_id}/appointments/{uuid.uuid4()}/status", json={"status": "completed"}
        )
        assert response.status_code == 404


class TestWaitlistRoutes:
    async def test_add_notify_and_book(self, client, salon):
        base = f"/api/v1/businesses/{salon.business_id}/waitlist"
        entry = (
            await client.post(
                base,
                json={
                    "service_id": str(salon.trim_id),
                    "customer_name": "Walter Wartend",
                    "customer_phone": "0151 2345678",
                    "preferred_date_from": "2024-04-29",
                    "preferred_date_to": "2024-05-03",
                    "preferred_time_from": "09:00",
                    "preferred_time_to": "12:00",
                },
            )
        ).json()

        matches = await client.get(
            f"{base}/matches", params={"service_id": str(salon.trim_id), "date": "2024-05-01", "time": "10:00"}
        )
        notified = await client.post(f"{base}/{entry['id']}/notify", json={"date": "2024-05-01", "time": "10:00"})
        booked = await client.post(f"{base}/{entry['id']}/booked")
        canceled = await client.post(f"{base}/{entry['id']}/cancel")

        assert entry["status"] == "waiting"
        assert entry["preferred_time_from"] == "09:00"
        assert matches.json()["total"] == 1
        assert notified.json()["entry"]["status"] == "notified"
        assert notified.json()["whatsapp_link"].startswith("https://wa.me/491512345678")
        assert booked.json()["status"] == "booked"
        assert canceled.status_code == 409

    async def test_expire_stale_requires_cutoff(self, client, salon):
        response = await client.post(
            f"/api/v1/businesses/{salon.business_id}/waitlist/expire-stale", json={"notified_before": ""}
        )
        assert response.status_code == 400


class TestPackageRoutes:
    async def test_sell_redeem_and_exhaust(self, client, session_factory, salon):
        async with session_factory() as session:
            async with unit_of_work(session):
                db = DBService(session)
                customer = await db.find_or_create_customer(
                    salon.business_id, first_name="Clara", last_name="Meyer", email="clara@example.com"
                )
                package = await db.create_package(
                    salon.business_id,
                    {
                        "name": "1x Beard trim",
                        "package_type": PackageType.MULTIUSE,
                        "service_id": salon.trim_id,
                        "total_uses": 1,
                    },
                )
        base = f"/api/v1/businesses/{salon.business_id}"

        sold = await client.post(f"{base}/packages/{package.id}/sell", json={"customer_id": str(customer.id)})
        cp_id = sold.json()["id"]
        redeemed = await client.post(f"{base}/customer-packages/{cp_id}/redeem", json={"redeemed_by": "desk"})
        exhausted = await client.post(f"{base}/customer-packages/{cp_id}/redeem", json={})
        history = await client.get(f"{base}/customer-packages/{cp_id}/redemptions")
        active = await client.get(f"{base}/customers/{customer.id}/packages")

        assert sold.status_code == 201
        assert redeemed.status_code == 201
        assert redeemed.json()["customer_package"]["uses_remaining"] == 0
        assert redeemed.json()["customer_package"]["status"] == "fully_used"
        assert exhausted.status_code == 422
        assert exhausted.json()["error"] == "inactive"
        assert history.json()["total"] == 1
        assert active.json()["total"] == 0

    async def test_unknown_package(self, client, salon):
        response = await client.post(
            f"/api/v1/businesses/{salon.business_id}/packages/{uuid.uuid4()}/sell",
            json={"customer_id": str(uuid.uuid4())},
        )
        assert response.status_code == 404
