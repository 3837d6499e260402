"""Expansion of booking requests into concrete slots, and their validation."""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any

import structlog

from cabinet.core.exceptions import ConflictException, ValidationException
from cabinet.core.slots import format_slot_time, format_wire_date
from cabinet.schemas.appointments import (
    AppointmentStatus,
    MultiSlotRequest,
    MultiTherapistRequest,
    RecurringRequest,
    SingleSlotRequest,
)
from cabinet.services.availability_service import AvailabilityChecker
from cabinet.services.recurrence import RecurrenceFrequency, generate_dates
from cabinet.services.slot_locks import SlotKey

logger = structlog.get_logger(__name__)


class InvoicePolicy(str, Enum):
    """How a booking is billed once persisted."""

    PER_APPOINTMENT = "per_appointment"
    GROUPED = "grouped"


@dataclass(frozen=True)
class PlannedSlot:
    patient_id: int
    therapist_id: int
    date: date
    time: time
    duration: int | None = None
    type: str | None = None
    notes: str | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED

    @property
    def key(self) -> SlotKey:
        return (self.therapist_id, self.date, self.time)


@dataclass
class BookingPlan:
    mode: str
    slots: list[PlannedSlot]
    policy: InvoicePolicy
    skipped_therapist_ids: list[int] = field(default_factory=list)
    frequency: RecurrenceFrequency | None = None
    count: int | None = None

    @property
    def keys(self) -> list[SlotKey]:
        return [slot.key for slot in self.slots]


def plan(
    request: SingleSlotRequest | MultiSlotRequest | MultiTherapistRequest | RecurringRequest,
) -> BookingPlan:
    """
    Expand a booking request into ordered slots.

    Nothing is read or written here; the plan still has to pass
    :func:`validate` before anything is persisted.
    """
    if isinstance(request, SingleSlotRequest):
        return BookingPlan(
            mode=request.mode,
            slots=[
                PlannedSlot(
                    patient_id=request.patient_id,
                    therapist_id=request.therapist_id,
                    date=request.date,
                    time=request.time,
                    duration=request.duration,
                    type=request.type,
                    notes=request.notes,
                    status=request.status,
                )
            ],
            policy=InvoicePolicy.PER_APPOINTMENT,
        )

    if isinstance(request, MultiSlotRequest):
        return BookingPlan(
            mode=request.mode,
            slots=[
                PlannedSlot(
                    patient_id=request.patient_id,
                    therapist_id=request.therapist_id,
                    date=slot.date,
                    time=slot.time,
                )
                for slot in request.slots
            ],
            policy=InvoicePolicy.GROUPED,
        )

    if isinstance(request, RecurringRequest):
        return BookingPlan(
            mode=request.mode,
            slots=[
                PlannedSlot(
                    patient_id=request.patient_id,
                    therapist_id=request.therapist_id,
                    date=session_date,
                    time=request.time,
                    duration=request.duration,
                    type=request.type,
                    notes=request.notes,
                    status=request.status,
                )
                for session_date in generate_dates(request.date, request.frequency, request.count)
            ],
            policy=InvoicePolicy.GROUPED,
            frequency=request.frequency,
            count=request.count,
        )

    if isinstance(request, MultiTherapistRequest):
        schedules = {entry.therapist_id: entry for entry in request.schedules}
        slots: list[PlannedSlot] = []
        skipped: list[int] = []

        for therapist_id in dict.fromkeys(request.therapist_ids):
            entry = schedules.get(therapist_id)
            on = (entry.date if entry else None) or request.default_date
            at = (entry.time if entry else None) or request.default_time
            if on is None or at is None:
                skipped.append(therapist_id)
                continue
            slots.append(
                PlannedSlot(
                    patient_id=request.patient_id,
                    therapist_id=therapist_id,
                    date=on,
                    time=at,
                )
            )

        return BookingPlan(
            mode=request.mode,
            slots=slots,
            policy=InvoicePolicy.PER_APPOINTMENT,
            skipped_therapist_ids=skipped,
        )

    raise TypeError(f"Unsupported booking request: {type(request).__name__}")


def _conflict_entry(slot: PlannedSlot, conflict_info: dict[str, Any] | None) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "therapistId": slot.therapist_id,
        "date": format_wire_date(slot.date),
        "time": format_slot_time(slot.time),
    }
    if conflict_info is not None:
        entry["conflictInfo"] = conflict_info
    return entry


async def validate(
    booking: BookingPlan,
    checker: AvailabilityChecker,
    exclude_appointment_id: int | None = None,
) -> None:
    """
    Check every planned slot before any mutation.

    Raises:
        ValidationException: If the plan holds no slot at all
        ConflictException: Listing every taken or repeated slot
    """
    if not booking.slots:
        raise ValidationException("No slot to book: every therapist lacks a date and time")

    seen: set[SlotKey] = set()
    conflicts: list[dict[str, Any]] = []
    messages: list[str] = []
    first_info: dict[str, Any] | None = None

    for slot in booking.slots:
        label = f"{format_wire_date(slot.date)} à {format_slot_time(slot.time)}"

        if slot.key in seen:
            conflicts.append(_conflict_entry(slot, None))
            messages.append(f"Le créneau du {label} est demandé plusieurs fois")
            continue
        seen.add(slot.key)

        result = await checker.check(
            slot.therapist_id,
            slot.date,
            slot.time,
            exclude_appointment_id=exclude_appointment_id,
        )
        if result.available:
            continue

        info = result.conflict_info.to_dict() if result.conflict_info else None
        first_info = first_info or info
        conflicts.append(_conflict_entry(slot, info))
        if result.conflict_info is not None:
            messages.append(
                f"Le créneau du {label} est déjà réservé pour le patient "
                f"{result.conflict_info.patient_name}"
            )
        else:
            messages.append(f"Le créneau du {label} est déjà réservé")

    if not conflicts:
        return

    logger.info(
        "booking_rejected",
        mode=booking.mode,
        requested=len(booking.slots),
        conflicts=len(conflicts),
    )

    if len(booking.slots) == 1 and first_info is not None:
        raise ConflictException(first_info["message"], conflict_info=first_info)

    raise ConflictException("; ".join(messages), conflict_info=first_info, conflicts=conflicts)
