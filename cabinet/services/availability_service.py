"""Slot availability checks."""

from dataclasses import dataclass
from datetime import date, time
from typing import Any

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.config import settings
from cabinet.core.redis_client import CacheManager
from cabinet.core.slots import format_slot_time
from cabinet.models.appointments import appointments
from cabinet.models.patients import patients

logger = structlog.get_logger(__name__)

AVAILABILITY_CACHE_PREFIX = "availability"


@dataclass(frozen=True)
class ConflictDetail:
    patient_id: int
    patient_name: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "patientId": self.patient_id,
            "patientName": self.patient_name,
            "message": self.message,
        }


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflict_info: ConflictDetail | None = None


def availability_cache_key(therapist_id: int, on: date, at: time) -> str:
    """Cache key for one slot, e.g. ``availability:2:2025-06-15:10:00``."""
    return f"{AVAILABILITY_CACHE_PREFIX}:{therapist_id}:{on.isoformat()}:{format_slot_time(at)}"


class AvailabilityChecker:
    """Answers whether a therapist slot is free.

    Only non-cancelled appointments hold a slot. The booking path always
    reads the database; ``check_cached`` is for the read-only endpoint.
    """

    def __init__(self, db: AsyncSession, cache: CacheManager | None = None):
        self.db = db
        self.cache = cache

    async def check(
        self,
        therapist_id: int,
        on: date,
        at: time,
        exclude_appointment_id: int | None = None,
    ) -> AvailabilityResult:
        """
        Look for a live appointment on the exact slot.

        Args:
            therapist_id: Therapist owning the slot
            on: Session date
            at: Session time
            exclude_appointment_id: Ignore this appointment (rescheduling it)

        Returns:
            Availability with the holder's identity when taken
        """
        conditions = [
            appointments.c.therapist_id == therapist_id,
            appointments.c.date == on,
            appointments.c.time == at,
            appointments.c.status != "cancelled",
        ]
        if exclude_appointment_id is not None:
            conditions.append(appointments.c.id != exclude_appointment_id)

        stmt = (
            select(
                appointments.c.id,
                appointments.c.patient_id,
                patients.c.first_name,
                patients.c.last_name,
            )
            .select_from(appointments.join(patients, appointments.c.patient_id == patients.c.id))
            .where(and_(*conditions))
            .limit(1)
        )
        row = (await self.db.execute(stmt)).fetchone()

        if row is None:
            return AvailabilityResult(available=True)

        patient_name = f"{row.first_name} {row.last_name}"
        return AvailabilityResult(
            available=False,
            conflict_info=ConflictDetail(
                patient_id=row.patient_id,
                patient_name=patient_name,
                message=f"Ce créneau est déjà réservé pour {patient_name}",
            ),
        )

    async def check_cached(self, therapist_id: int, on: date, at: time) -> AvailabilityResult:
        """Read-through cached variant of :meth:`check`."""
        key = availability_cache_key(therapist_id, on, at)

        if self.cache is not None:
            cached = self.cache.get_json(key)
            if cached is not None:
                logger.debug("availability_cache_hit", key=key)
                info = cached.get("conflict_info")
                return AvailabilityResult(
                    available=cached["available"],
                    conflict_info=ConflictDetail(**info) if info else None,
                )

        result = await self.check(therapist_id, on, at)

        if self.cache is not None:
            payload: dict[str, Any] = {"available": result.available, "conflict_info": None}
            if result.conflict_info is not None:
                payload["conflict_info"] = {
                    "patient_id": result.conflict_info.patient_id,
                    "patient_name": result.conflict_info.patient_name,
                    "message": result.conflict_info.message,
                }
            self.cache.set_json(key, payload, ttl=settings.availability_cache_ttl)

        return result


def invalidate_slots(cache: CacheManager | None, slots: list[tuple[int, date, time]]) -> None:
    """Drop cached availability for every touched slot."""
    if cache is None or not slots:
        return
    keys = {availability_cache_key(*slot) for slot in slots}
    removed = cache.delete(*keys)
    logger.debug("availability_cache_invalidated", keys=len(keys), removed=removed)
