"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from mess_booking.api.routes import auth, bookings, webhook, admin

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(bookings.router)
api_router.include_router(webhook.router)
api_router.include_router(admin.router)
