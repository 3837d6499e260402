"""API v1 router configuration."""

from fastapi import APIRouter

from cabinet.api.v1.endpoints import (
    appointments,
    auth,
    availability,
    health,
    invoices,
    payments,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(availability.router, prefix="/availability", tags=["Availability"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
api_router.include_router(payments.router, prefix="/therapist-payments", tags=["Therapist payments"])
