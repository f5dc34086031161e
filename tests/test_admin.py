"""
Tests for admin endpoints: oversight, statistics, manual status changes and roles.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient

from mess_booking.api.routes import admin as admin_routes
from mess_booking.core.exceptions import TicketGenerationError
from mess_booking.main import app
from mess_booking.services.ticket_service import TicketGenerator, get_ticket_generator
from tests.conftest import checkout_event


class FailingTicketGenerator(TicketGenerator):
    async def generate_artifact(self, booking, owner=None):
        raise TicketGenerationError(booking.ticket_id, "renderer unavailable")


@pytest.mark.asyncio
async def test_student_cannot_use_admin_routes(client: AsyncClient, auth_headers):
    for method, path in [
        ("GET", "/api/v1/admin/bookings"),
        ("GET", "/api/v1/admin/statistics"),
        ("GET", "/api/v1/admin/users"),
        ("PATCH", "/api/v1/admin/bookings/1/status"),
    ]:
        response = await client.request(method, path, headers=auth_headers, json={"status": "paid"})
        assert response.status_code == 403, path


@pytest.mark.asyncio
async def test_list_bookings_with_filters(client: AsyncClient, admin_headers, auth_headers, create_booking):
    lunch = await create_booking(meal_type="lunch")
    dinner = await create_booking(meal_type="dinner")
    await client.patch(f"/api/v1/bookings/{dinner}/cancel", headers=auth_headers)

    everything = await client.get("/api/v1/admin/bookings", headers=admin_headers)
    assert everything.status_code == 200
    assert everything.json()["count"] == 2

    cancelled = await client.get(
        "/api/v1/admin/bookings", params={"status": "cancelled"}, headers=admin_headers
    )
    assert [b["id"] for b in cancelled.json()["bookings"]] == [dinner]

    lunches = await client.get(
        "/api/v1/admin/bookings", params={"meal_type": "lunch"}, headers=admin_headers
    )
    assert [b["id"] for b in lunches.json()["bookings"]] == [lunch]


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"status": "refunded"}, {"meal_type": "supper"}])
async def test_list_bookings_invalid_filter(client: AsyncClient, admin_headers, params):
    response = await client.get("/api/v1/admin/bookings", params=params, headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_statistics(client: AsyncClient, admin_headers, auth_headers, create_booking, deliver_webhook):
    paid = await create_booking(meal_type="lunch", persons=2)
    await create_booking(meal_type="breakfast", persons=1)
    cancelled = await create_booking(meal_type="dinner", persons=3)

    await deliver_webhook(checkout_event(paid))
    await client.patch(f"/api/v1/bookings/{cancelled}/cancel", headers=auth_headers)

    response = await client.get("/api/v1/admin/statistics", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    stats = data["statistics"]
    assert stats["total_bookings"] == 3
    assert stats["paid_bookings"] == 1
    assert stats["pending_bookings"] == 1
    assert stats["cancelled_bookings"] == 1
    assert Decimal(stats["total_revenue"]) == Decimal("160")
    assert stats["meal_type_counts"] == {"lunch": 1, "breakfast": 1, "dinner": 1}
    assert len(data["recent_bookings"]) == 3
    assert data["cached"] is False


@pytest.mark.asyncio
async def test_admin_confirms_payment_and_issues_ticket(client: AsyncClient, admin_headers, create_booking, tickets_dir):
    booking_id = await create_booking()

    response = await client.patch(
        f"/api/v1/admin/bookings/{booking_id}/status",
        json={"status": "paid"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paid"
    assert data["ticket_id"].startswith("MTBS-")
    assert data["ticket_url"] == f"/tickets/{data['ticket_id']}.pdf"

    # Setting the same status again is a no-op
    again = await client.patch(
        f"/api/v1/admin/bookings/{booking_id}/status",
        json={"status": "paid"},
        headers=admin_headers,
    )
    assert again.status_code == 200
    assert again.json()["ticket_id"] == data["ticket_id"]


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["cancelled", "pending"])
async def test_admin_cannot_move_paid_booking(client: AsyncClient, admin_headers, create_booking, deliver_webhook, target):
    booking_id = await create_booking()
    await deliver_webhook(checkout_event(booking_id))

    response = await client.patch(
        f"/api/v1/admin/bookings/{booking_id}/status",
        json={"status": target},
        headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_admin_cancels_pending_booking(client: AsyncClient, admin_headers, auth_headers, create_booking):
    booking_id = await create_booking()

    response = await client.patch(
        f"/api/v1/admin/bookings/{booking_id}/status",
        json={"status": "cancelled"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    revive = await client.patch(
        f"/api/v1/admin/bookings/{booking_id}/status",
        json={"status": "paid"},
        headers=admin_headers,
    )
    assert revive.status_code == 409

    booking = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers)
    assert booking.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_admin_status_update_invalid(client: AsyncClient, admin_headers, create_booking):
    booking_id = await create_booking()

    bad = await client.patch(
        f"/api/v1/admin/bookings/{booking_id}/status",
        json={"status": "refunded"},
        headers=admin_headers,
    )
    assert bad.status_code == 400

    missing = await client.patch(
        "/api/v1/admin/bookings/99999/status",
        json={"status": "cancelled"},
        headers=admin_headers,
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_regenerate_missing_ticket(client: AsyncClient, admin_headers, create_booking, deliver_webhook, ticket_generator, tickets_dir):
    app.dependency_overrides[get_ticket_generator] = lambda: FailingTicketGenerator(tickets_dir)
    booking_id = await create_booking()
    await deliver_webhook(checkout_event(booking_id))

    failed = await client.post(f"/api/v1/admin/bookings/{booking_id}/ticket", headers=admin_headers)
    assert failed.status_code == 500

    app.dependency_overrides[get_ticket_generator] = lambda: ticket_generator
    response = await client.post(f"/api/v1/admin/bookings/{booking_id}/ticket", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paid"
    assert data["ticket_url"] == f"/tickets/{data['ticket_id']}.pdf"


@pytest.mark.asyncio
async def test_regenerate_ticket_requires_paid_booking(client: AsyncClient, admin_headers, create_booking):
    booking_id = await create_booking()
    response = await client.post(f"/api/v1/admin/bookings/{booking_id}/ticket", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_list_users_and_update_role(client: AsyncClient, admin_headers, test_user):
    users = await client.get("/api/v1/admin/users", headers=admin_headers)
    assert users.status_code == 200
    emails = {u["email"] for u in users.json()}
    assert {"test@example.com", "admin@example.com"} <= emails
    assert all("hashed_password" not in u for u in users.json())

    promoted = await client.patch(
        f"/api/v1/admin/users/{test_user.id}/role",
        json={"role": "admin"},
        headers=admin_headers,
    )
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "admin"

    invalid = await client.patch(
        f"/api/v1/admin/users/{test_user.id}/role",
        json={"role": "superuser"},
        headers=admin_headers,
    )
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_regenerate_ticket_invalidates_statistics_cache(client: AsyncClient, admin_headers, create_booking, deliver_webhook, ticket_generator, tickets_dir, monkeypatch):
    app.dependency_overrides[get_ticket_generator] = lambda: FailingTicketGenerator(tickets_dir)
    booking_id = await create_booking()
    await deliver_webhook(checkout_event(booking_id))
    app.dependency_overrides[get_ticket_generator] = lambda: ticket_generator

    invalidations = []

    async def record_invalidation():
        invalidations.append(booking_id)

    monkeypatch.setattr(admin_routes, "invalidate_statistics_cache", record_invalidation)

    response = await client.post(f"/api/v1/admin/bookings/{booking_id}/ticket", headers=admin_headers)
    assert response.status_code == 200
    assert invalidations == [booking_id]
