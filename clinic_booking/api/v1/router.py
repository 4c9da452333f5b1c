"""API v1 router configuration."""

from fastapi import APIRouter

from clinic_booking.api.v1.endpoints import (
    appointments,
    availability,
    blocked_dates,
    bookings,
    health,
    schedules,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(availability.router, prefix="/public", tags=["Public Booking"])
api_router.include_router(bookings.router, prefix="/public", tags=["Public Booking"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(blocked_dates.router, prefix="/blocked-dates", tags=["Blocked Dates"])
api_router.include_router(schedules.router, prefix="/schedules", tags=["Schedules"])
