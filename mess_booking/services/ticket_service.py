"""
Ticket generation: ticket ids, QR payloads and the PDF artifact.

Artifacts live at <TICKETS_DIR>/<ticket_id>.pdf and are served as static
files. The PDF is rendered into a temporary file in the same directory and
moved into place with os.replace, so a reader sees either no file or a
complete one, and rendering the same ticket again yields the same path.
"""

import json
import os
import secrets
import tempfile
import time
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional

import qrcode
from qrcode import constants
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from starlette.concurrency import run_in_threadpool

from mess_booking.core.config import get_settings
from mess_booking.core.exceptions import TicketGenerationError
from mess_booking.core.logging import get_logger
from mess_booking.core.metrics import ticket_generation_latency
from mess_booking.models.booking import Booking
from mess_booking.models.user import User

logger = get_logger(__name__)

TICKET_PREFIX = "MTBS"
BRAND_GREEN = colors.HexColor("#4CAF50")


def generate_ticket_id() -> str:
    """MTBS-<last 8 digits of epoch millis>-<8 random hex chars>."""
    millis = str(int(time.time() * 1000))[-8:]
    return f"{TICKET_PREFIX}-{millis}-{secrets.token_hex(4).upper()}"


def build_qr_payload(ticket_id: str, booking_id: int, issued_at: datetime) -> str:
    # SQLite hands back naive datetimes; stored values are UTC
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    return json.dumps(
        {
            "ticketId": ticket_id,
            "bookingId": booking_id,
            "issuedAt": issued_at.astimezone(timezone.utc).isoformat(),
        },
        separators=(",", ":"),
    )


def render_qr_png(payload: str) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    buffer = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffer, format="PNG")
    return buffer.getvalue()


class TicketGenerator:
    """Renders ticket PDFs into a directory keyed by ticket id."""

    def __init__(self, tickets_dir: str):
        self.tickets_dir = tickets_dir

    def artifact_path(self, ticket_id: str) -> str:
        return os.path.join(self.tickets_dir, f"{ticket_id}.pdf")

    async def generate_artifact(self, booking: Booking, owner: Optional[User] = None) -> str:
        """Render the ticket for a paid booking; returns the artifact path."""
        if not booking.ticket_id:
            raise TicketGenerationError("-", f"booking {booking.id} has no ticket id")

        start = time.perf_counter()
        path = await run_in_threadpool(self._render, booking, owner)
        ticket_generation_latency.observe(time.perf_counter() - start)

        logger.info(
            "ticket_artifact_written",
            booking_id=booking.id,
            ticket_id=booking.ticket_id,
            path=path,
        )
        return path

    def _render(self, booking: Booking, owner: Optional[User]) -> str:
        ticket_id = booking.ticket_id
        final_path = self.artifact_path(ticket_id)
        tmp_path = None

        try:
            os.makedirs(self.tickets_dir, exist_ok=True)
            issued_at = booking.paid_at or datetime.now(timezone.utc)
            qr_png = render_qr_png(build_qr_payload(ticket_id, booking.id, issued_at))

            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{ticket_id}.", suffix=".tmp", dir=self.tickets_dir
            )
            os.close(fd)

            doc = SimpleDocTemplate(
                tmp_path,
                pagesize=A4,
                title=f"Meal ticket {ticket_id}",
                leftMargin=18 * mm,
                rightMargin=18 * mm,
            )
            doc.build(self._story(booking, owner, qr_png))
            os.replace(tmp_path, final_path)
            tmp_path = None
        except TicketGenerationError:
            raise
        except Exception as e:
            # qrcode, Pillow and reportlab raise a wide range of types
            raise TicketGenerationError(ticket_id, f"{type(e).__name__}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        return final_path

    def _story(self, booking: Booking, owner: Optional[User], qr_png: bytes) -> list:
        styles = getSampleStyleSheet()
        story = [
            Paragraph("Mess Token Booking System", styles["Title"]),
            Paragraph("MEAL TICKET", styles["Heading2"]),
            Spacer(1, 12),
        ]

        holder = [
            ["Ticket ID:", booking.ticket_id],
            ["Student Name:", (owner.name if owner else None) or "N/A"],
            ["Student ID:", (owner.student_id if owner else None) or "N/A"],
            ["Email:", (owner.email if owner else None) or "N/A"],
        ]
        holder_table = Table(holder, colWidths=[110, 320])
        holder_table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 11),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        story.extend([holder_table, Spacer(1, 12)])

        details = [
            ["BOOKING DETAILS", ""],
            ["Date:", booking.date.strftime("%A, %d %B %Y")],
            ["Meal Type:", booking.meal_type.upper()],
            ["Number of Persons:", str(booking.persons)],
            ["Total Amount Paid:", f"{get_settings().CURRENCY.upper()} {booking.amount}"],
        ]
        details_table = Table(details, colWidths=[150, 280])
        details_table.setStyle(TableStyle([
            ("BOX", (0, 0), (-1, -1), 1, BRAND_GREEN),
            ("SPAN", (0, 0), (-1, 0)),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 12),
            ("TEXTCOLOR", (0, -1), (-1, -1), BRAND_GREEN),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ("LEFTPADDING", (0, 0), (-1, -1), 10),
        ]))
        story.extend([details_table, Spacer(1, 20)])

        story.append(Paragraph("SCAN QR CODE AT MESS COUNTER", styles["Heading3"]))
        story.append(Image(BytesIO(qr_png), width=60 * mm, height=60 * mm))
        story.append(Spacer(1, 16))

        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        story.append(Paragraph("Please show this ticket at the mess counter", styles["Normal"]))
        story.append(Paragraph(f"Generated on: {generated}", styles["Normal"]))
        return story


def get_ticket_generator() -> TicketGenerator:
    return TicketGenerator(get_settings().TICKETS_DIR)
