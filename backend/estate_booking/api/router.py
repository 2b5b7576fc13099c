"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from estate_booking.api.routes import admin, bookings, listings, payments

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(listings.router)
api_router.include_router(bookings.router)
api_router.include_router(admin.router)
api_router.include_router(payments.router)
