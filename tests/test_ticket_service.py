"""
Tests for ticket ids, QR payloads and PDF artifacts.
"""

import json
import os
import re
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from mess_booking.core.config import get_settings
from mess_booking.core.exceptions import TicketGenerationError
from mess_booking.models.booking import Booking
from mess_booking.models.user import User
from mess_booking.services.ticket_service import (
    TicketGenerator,
    build_qr_payload,
    generate_ticket_id,
    render_qr_png,
)

TICKET_ID_PATTERN = re.compile(r"^MTBS-\d{8}-[0-9A-F]{8}$")


def _paid_booking(ticket_id: str = "MTBS-12345678-ABCDEF01") -> Booking:
    return Booking(
        id=7,
        user_id=1,
        date=date(2026, 3, 14),
        meal_type="dinner",
        persons=3,
        amount=Decimal("240.00"),
        status="paid",
        ticket_id=ticket_id,
        paid_at=datetime(2026, 3, 13, 18, 30, tzinfo=timezone.utc),
    )


def _owner() -> User:
    return User(id=1, name="Asha", email="asha@example.com", student_id="S-42", role="student")


def test_ticket_id_format():
    ticket_id = generate_ticket_id()
    assert TICKET_ID_PATTERN.match(ticket_id), ticket_id


def test_ticket_ids_unique():
    ids = {generate_ticket_id() for _ in range(500)}
    assert len(ids) == 500


def test_qr_payload_identifies_ticket():
    issued = datetime(2026, 3, 13, 18, 30, tzinfo=timezone.utc)
    payload = json.loads(build_qr_payload("MTBS-12345678-ABCDEF01", 7, issued))
    assert payload == {
        "ticketId": "MTBS-12345678-ABCDEF01",
        "bookingId": 7,
        "issuedAt": "2026-03-13T18:30:00+00:00",
    }


def test_qr_png_is_png():
    assert render_qr_png('{"ticketId":"x"}').startswith(b"\x89PNG")


def test_qr_payload_treats_naive_timestamp_as_utc():
    naive = datetime(2026, 3, 13, 18, 30)
    payload = json.loads(build_qr_payload("MTBS-12345678-ABCDEF01", 7, naive))
    assert payload["issuedAt"] == "2026-03-13T18:30:00+00:00"


def test_artifact_path(tmp_path):
    generator = TicketGenerator(str(tmp_path))
    assert generator.artifact_path("MTBS-1") == os.path.join(str(tmp_path), "MTBS-1.pdf")


def test_booking_ticket_url_follows_configured_prefix(monkeypatch):
    monkeypatch.setenv("TICKETS_URL_PREFIX", "/static/tickets/")
    get_settings.cache_clear()
    try:
        booking = _paid_booking()
        assert booking.ticket_url is None

        booking.ticket_pdf_path = "tickets/MTBS-12345678-ABCDEF01.pdf"
        assert booking.ticket_url == "/static/tickets/MTBS-12345678-ABCDEF01.pdf"
    finally:
        get_settings.cache_clear()


@pytest.mark.asyncio
async def test_generate_artifact_writes_pdf(tmp_path):
    tickets_dir = tmp_path / "tickets"
    generator = TicketGenerator(str(tickets_dir))
    booking = _paid_booking()

    path = await generator.generate_artifact(booking, _owner())

    assert path == generator.artifact_path(booking.ticket_id)
    with open(path, "rb") as f:
        assert f.read(5) == b"%PDF-"
    assert os.listdir(tickets_dir) == [f"{booking.ticket_id}.pdf"]


@pytest.mark.asyncio
async def test_regenerating_replaces_same_path(tmp_path):
    generator = TicketGenerator(str(tmp_path))
    booking = _paid_booking()

    first = await generator.generate_artifact(booking, None)
    second = await generator.generate_artifact(booking, _owner())

    assert first == second
    assert os.listdir(tmp_path) == [f"{booking.ticket_id}.pdf"]


@pytest.mark.asyncio
async def test_unwritable_directory_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")
    generator = TicketGenerator(str(blocker))

    with pytest.raises(TicketGenerationError) as exc_info:
        await generator.generate_artifact(_paid_booking(), _owner())
    assert exc_info.value.ticket_id == "MTBS-12345678-ABCDEF01"


@pytest.mark.asyncio
async def test_booking_without_ticket_id_raises(tmp_path):
    generator = TicketGenerator(str(tmp_path))
    with pytest.raises(TicketGenerationError):
        await generator.generate_artifact(_paid_booking(ticket_id=None), None)
    assert os.listdir(tmp_path) == []
