"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from dancelink.api.routes import bookings, payments, waitlist

api_router = APIRouter(prefix="/api")
api_router.include_router(payments.router)
api_router.include_router(bookings.router)
api_router.include_router(waitlist.router)
