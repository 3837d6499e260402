"""Availability schemas."""

from cabinet.schemas.common import CamelModel


class ConflictInfo(CamelModel):
    """Patient already holding a requested slot."""

    patient_id: int
    patient_name: str
    message: str


class AvailabilityResponse(CamelModel):
    """Schema for availability check response."""

    available: bool
    conflict_info: ConflictInfo | None = None
