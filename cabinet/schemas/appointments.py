"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import Field, model_validator

from cabinet.schemas.common import CamelModel, SlotTime, WireDate
from cabinet.schemas.invoices import InvoiceResponse
from cabinet.services.recurrence import RecurrenceFrequency


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SlotInput(CamelModel):
    """One requested (date, time) pair."""

    date: WireDate
    time: SlotTime


class AppointmentCreate(CamelModel):
    """Schema for ``POST /appointments``: a single slot or a recurring series."""

    patient_id: int = Field(..., gt=0)
    therapist_id: int = Field(..., gt=0)
    date: WireDate
    time: SlotTime
    duration: int | None = Field(None, gt=0, le=480)
    type: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    is_recurring: bool = False
    recurring_frequency: RecurrenceFrequency | None = None
    recurring_count: int | None = Field(None, ge=1, le=52)

    @model_validator(mode="after")
    def validate_recurrence(self) -> "AppointmentCreate":
        """A recurring booking needs both frequency and count."""
        if self.is_recurring and (self.recurring_frequency is None or self.recurring_count is None):
            raise ValueError("Recurring appointments require recurringFrequency and recurringCount")
        return self


class MultipleAppointmentsCreate(CamelModel):
    """Schema for ``POST /appointments/multiple``."""

    patient_id: int = Field(..., gt=0)
    therapist_id: int = Field(..., gt=0)
    slots: list[SlotInput] = Field(..., min_length=1, max_length=52)


class TherapistScheduleInput(CamelModel):
    """Per-therapist slot in a multi-therapist booking; blanks fall back to the default."""

    therapist_id: int = Field(..., gt=0)
    date: WireDate | None = None
    time: SlotTime | None = None


class SingleSlotRequest(CamelModel):
    """One therapist, one slot."""

    mode: Literal["single"] = "single"
    patient_id: int = Field(..., gt=0)
    therapist_id: int = Field(..., gt=0)
    date: WireDate
    time: SlotTime
    duration: int | None = Field(None, gt=0, le=480)
    type: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED


class MultiSlotRequest(CamelModel):
    """One therapist, several explicit slots, billed on one invoice."""

    mode: Literal["multi_slot"] = "multi_slot"
    patient_id: int = Field(..., gt=0)
    therapist_id: int = Field(..., gt=0)
    slots: list[SlotInput] = Field(..., min_length=1, max_length=52)


class MultiTherapistRequest(CamelModel):
    """Several therapists, one slot each."""

    mode: Literal["multi_therapist"] = "multi_therapist"
    patient_id: int = Field(..., gt=0)
    therapist_ids: list[int] = Field(..., min_length=1)
    schedules: list[TherapistScheduleInput] = Field(default_factory=list)
    default_date: WireDate | None = None
    default_time: SlotTime | None = None


class RecurringRequest(CamelModel):
    """A series expanded from a base slot, billed on one invoice."""

    mode: Literal["recurring"] = "recurring"
    patient_id: int = Field(..., gt=0)
    therapist_id: int = Field(..., gt=0)
    date: WireDate
    time: SlotTime
    frequency: RecurrenceFrequency
    count: int = Field(..., ge=1, le=52)
    duration: int | None = Field(None, gt=0, le=480)
    type: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED


AnyBookingRequest = SingleSlotRequest | MultiSlotRequest | MultiTherapistRequest | RecurringRequest

BookingRequest = Annotated[AnyBookingRequest, Field(discriminator="mode")]


class AppointmentUpdate(CamelModel):
    """Schema for updating an existing appointment."""

    patient_id: int | None = Field(None, gt=0)
    therapist_id: int | None = Field(None, gt=0)
    date: WireDate | None = None
    time: SlotTime | None = None
    duration: int | None = Field(None, gt=0, le=480)
    type: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    status: AppointmentStatus | None = None


class AppointmentResponse(CamelModel):
    """Schema for appointment response."""

    id: int
    patient_id: int
    therapist_id: int
    date: WireDate
    time: SlotTime
    duration: int | None = None
    type: str | None = None
    notes: str | None = None
    status: AppointmentStatus
    is_recurring: bool
    recurring_frequency: RecurrenceFrequency | None = None
    recurring_count: int | None = None
    parent_appointment_id: int | None = None
    invoice_id: int | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    patient_name: str | None = None
    therapist_name: str | None = None


class MultipleAppointmentsResponse(CamelModel):
    """Appointments created together with their grouped invoice."""

    appointments: list[AppointmentResponse]
    invoice: InvoiceResponse


class BookingResponse(CamelModel):
    """Result of a tagged booking request."""

    appointments: list[AppointmentResponse]
    invoices: list[InvoiceResponse]
    skipped_therapist_ids: list[int] = Field(default_factory=list)
    created_count: int


class AppointmentFilters(CamelModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    therapist_id: int | None = None
    patient_id: int | None = None
    from_date: WireDate | None = None
    to_date: WireDate | None = None


class BulkDeleteRequest(CamelModel):
    """Schema for ``DELETE /appointments``."""

    ids: list[int] = Field(..., min_length=1)


class DeleteOutcome(CamelModel):
    id: int
    success: bool = True


class DeleteFailure(CamelModel):
    id: int
    reason: str


class BulkDeleteResult(CamelModel):
    """Per-id outcome of a bulk delete."""

    message: str
    results: list[DeleteOutcome]
    failures: list[DeleteFailure]


class AppointmentStatusUpdate(CamelModel):
    """Schema for ``PATCH /appointments/{id}/status``."""

    status: AppointmentStatus
