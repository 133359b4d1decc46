"""
Integration tests for the REST API endpoints.

Uses the per-test SQLite database from ``conftest``; the DB session,
session factory and side-effect sinks are swapped in through FastAPI
dependency overrides, and the background sweeper is patched out.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from campusride.domain.clock import utcnow


def _as(user_id: int, role: str) -> dict[str, str]:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


def _ride_body(**overrides) -> dict:
    body = {
        "pickup_location": "Main Gate",
        "destination": "Central Station",
        "departure_date": (utcnow().date() + timedelta(days=7)).isoformat(),
        "departure_time": "08:30",
        "total_seats": 4,
        "price_per_seat": 3.5,
        "vehicle_type": "car",
    }
    body.update(overrides)
    return body


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory, people, events, notifications, email):
    """AsyncClient backed by the test database and recording sinks."""

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    with (
        patch(
            "campusride.workers.expiration.start_expiration_loop",
            new_callable=AsyncMock,
        ),
        patch(
            "campusride.workers.expiration.stop_expiration_loop",
            new_callable=AsyncMock,
        ),
    ):
        from campusride.api.app import create_app
        from campusride.api.dependencies import (
            get_db,
            get_email_sender,
            get_event_sink,
            get_notification_sink,
            get_session_factory,
            get_sweeper,
        )
        from campusride.api.middleware import limiter
        from campusride.workers.expiration import ExpirationSweeper

        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_session_factory] = lambda: session_factory
        app.dependency_overrides[get_event_sink] = lambda: events
        app.dependency_overrides[get_notification_sink] = lambda: notifications
        app.dependency_overrides[get_email_sender] = lambda: email
        sweeper = ExpirationSweeper(session_factory, events, notifications)
        app.dependency_overrides[get_sweeper] = lambda: sweeper
        limiter.reset()

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def staff(people):
    return _as(people.provider, "staff")


@pytest.fixture
def student(people):
    return _as(people.rider, "student")


@pytest_asyncio.fixture
async def ride(client, staff) -> dict:
    resp = await client.post("/api/v1/rides", json=_ride_body(), headers=staff)
    assert resp.status_code == 201
    return resp.json()


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_identity_headers_required(client: AsyncClient):
    resp = await client.get("/api/v1/bookings")
    assert resp.status_code == 401


class TestRideEndpoints:
    @pytest.mark.asyncio
    async def test_publish_ride(self, client: AsyncClient, ride, people):
        assert ride["status"] == "active"
        assert ride["available_seats"] == 4
        assert ride["provider_id"] == people.provider
        assert ride["departure_time"] == "08:30"

    @pytest.mark.asyncio
    async def test_students_cannot_publish(self, client: AsyncClient, student):
        resp = await client.post("/api/v1/rides", json=_ride_body(), headers=student)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_past_ride_rejected(self, client: AsyncClient, staff):
        yesterday = (utcnow().date() - timedelta(days=1)).isoformat()
        resp = await client.post(
            "/api/v1/rides", json=_ride_body(departure_date=yesterday), headers=staff
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Ride must be scheduled in the future"

    @pytest.mark.asyncio
    async def test_malformed_time_rejected(self, client: AsyncClient, staff):
        resp = await client.post(
            "/api/v1/rides", json=_ride_body(departure_time="8.30am"), headers=staff
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_get_ride_not_found(self, client: AsyncClient):
        resp = await client.get("/api/v1/rides/9999")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Ride not found"

    @pytest.mark.asyncio
    async def test_search_rides(self, client: AsyncClient, staff):
        for pickup in ("Library", "Library", "Science Park"):
            await client.post(
                "/api/v1/rides", json=_ride_body(pickup_location=pickup), headers=staff
            )

        resp = await client.get("/api/v1/rides", params={"pickup": "library", "limit": 1})
        assert resp.status_code == 200
        data = resp.json()
        assert data["pagination"] == {"page": 1, "limit": 1, "total": 2}
        assert data["rides"][0]["pickup_location"] == "Library"

    @pytest.mark.asyncio
    async def test_update_ride(self, client: AsyncClient, ride, staff):
        resp = await client.put(
            f"/api/v1/rides/{ride['id']}",
            json={"price_per_seat": 4.0, "meeting_point": "Bus bay 3"},
            headers=staff,
        )
        assert resp.status_code == 200
        assert resp.json()["price_per_seat"] == 4.0
        assert resp.json()["meeting_point"] == "Bus bay 3"

    @pytest.mark.asyncio
    async def test_update_by_other_staff_forbidden(self, client: AsyncClient, ride, people):
        resp = await client.put(
            f"/api/v1/rides/{ride['id']}",
            json={"price_per_seat": 4.0},
            headers=_as(people.other_staff, "staff"),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_cancel_ride(self, client: AsyncClient, ride, staff):
        resp = await client.patch(f"/api/v1/rides/{ride['id']}/cancel", headers=staff)
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        again = await client.patch(f"/api/v1/rides/{ride['id']}/cancel", headers=staff)
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_my_rides(self, client: AsyncClient, ride, staff):
        resp = await client.get("/api/v1/rides/mine", headers=staff)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()] == [ride["id"]]


class TestBookingEndpoints:
    @pytest.mark.asyncio
    async def test_booking_lifecycle(self, client: AsyncClient, ride, staff, student, email):
        resp = await client.post(
            "/api/v1/bookings",
            json={"ride_id": ride["id"], "seats_booked": 2},
            headers=student,
        )
        assert resp.status_code == 201
        booking = resp.json()
        assert booking["status"] == "pending"
        assert booking["total_price"] == 7.0
        assert booking["reference"] == f"BR{booking['id']:08X}"

        seats = (await client.get(f"/api/v1/rides/{ride['id']}")).json()["available_seats"]
        assert seats == 2

        resp = await client.put(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"status": "confirmed"},
            headers=staff,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmed"

        resp = await client.post(
            "/api/v1/payments/confirm",
            json={"booking_reference": booking["reference"], "succeeded": True,
                  "payment_id": "pay_42"},
        )
        assert resp.status_code == 200
        assert resp.json()["payment_status"] == "paid"
        assert len(email.confirmations) >= 2

    @pytest.mark.asyncio
    async def test_overbooking_conflicts(self, client: AsyncClient, ride, student):
        resp = await client.post(
            "/api/v1/bookings",
            json={"ride_id": ride["id"], "seats_booked": 5},
            headers=student,
        )
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Not enough seats available"

    @pytest.mark.asyncio
    async def test_duplicate_booking_conflicts(self, client: AsyncClient, ride, student):
        body = {"ride_id": ride["id"], "seats_booked": 1}
        await client.post("/api/v1/bookings", json=body, headers=student)
        resp = await client.post("/api/v1/bookings", json=body, headers=student)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "You already have a booking for this ride"

    @pytest.mark.asyncio
    async def test_staff_cannot_book(self, client: AsyncClient, ride, people):
        resp = await client.post(
            "/api/v1/bookings",
            json={"ride_id": ride["id"], "seats_booked": 1},
            headers=_as(people.other_staff, "staff"),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_rider_cannot_confirm(self, client: AsyncClient, ride, student):
        booking = (
            await client.post(
                "/api/v1/bookings",
                json={"ride_id": ride["id"], "seats_booked": 1},
                headers=student,
            )
        ).json()
        resp = await client.put(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"status": "confirmed"},
            headers=student,
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_cancel_restores_seats(self, client: AsyncClient, ride, student):
        booking = (
            await client.post(
                "/api/v1/bookings",
                json={"ride_id": ride["id"], "seats_booked": 3},
                headers=student,
            )
        ).json()

        resp = await client.put(
            f"/api/v1/bookings/{booking['id']}/cancel",
            json={"reason": "Exam rescheduled"},
            headers=student,
        )
        assert resp.status_code == 200
        assert resp.json()["cancellation_reason"] == "Exam rescheduled"
        seats = (await client.get(f"/api/v1/rides/{ride['id']}")).json()["available_seats"]
        assert seats == 4

        again = await client.put(f"/api/v1/bookings/{booking['id']}/cancel", headers=student)
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_booking_listings(self, client: AsyncClient, ride, staff, student, people):
        await client.post(
            "/api/v1/bookings",
            json={"ride_id": ride["id"], "seats_booked": 1},
            headers=student,
        )

        mine = (await client.get("/api/v1/bookings", headers=student)).json()
        assert mine["pagination"]["total"] == 1
        assert mine["bookings"][0]["rider_id"] == people.rider

        on_ride = await client.get(f"/api/v1/bookings/ride/{ride['id']}", headers=staff)
        assert on_ride.status_code == 200
        assert len(on_ride.json()) == 1

        booking_id = mine["bookings"][0]["id"]
        outsider = await client.get(
            f"/api/v1/bookings/{booking_id}",
            headers=_as(people.other_rider, "student"),
        )
        assert outsider.status_code == 403


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_manual_sweep(self, client: AsyncClient, ride, staff):
        resp = await client.post("/api/v1/admin/sweep", headers=staff)
        assert resp.status_code == 200
        assert resp.json() == {
            "expired_rides": 0,
            "completed_bookings": 0,
            "closed_rides": 0,
            "removal_hints": 0,
        }

    @pytest.mark.asyncio
    async def test_sweep_requires_staff(self, client: AsyncClient, student):
        resp = await client.post("/api/v1/admin/sweep", headers=student)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_rejection_hinted_once_across_manual_sweeps(
        self, client: AsyncClient, ride, staff, student, events
    ):
        booking = (
            await client.post(
                "/api/v1/bookings",
                json={"ride_id": ride["id"], "seats_booked": 1},
                headers=student,
            )
        ).json()
        await client.put(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"status": "cancelled"},
            headers=staff,
        )

        first = await client.post("/api/v1/admin/sweep", headers=staff)
        second = await client.post("/api/v1/admin/sweep", headers=staff)

        assert first.json()["removal_hints"] == 1
        assert second.json()["removal_hints"] == 0
        assert len(events.named("booking_removed")) == 1
