"""Availability endpoint."""

from fastapi import APIRouter, Query, status

from cabinet.core.exceptions import ValidationException
from cabinet.core.slots import parse_slot_time, parse_wire_date
from cabinet.dependencies import CacheManagerDep, CurrentUser, DatabaseSession
from cabinet.schemas.availability import AvailabilityResponse, ConflictInfo
from cabinet.services.availability_service import AvailabilityChecker

router = APIRouter()


@router.get(
    "",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Check whether a therapist slot is free",
)
async def check_availability(
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
    therapist_id: int = Query(..., alias="therapistId", gt=0),
    date: str = Query(..., description="DD/MM/YYYY"),
    time: str = Query(..., description="H:MM"),
) -> AvailabilityResponse:
    """
    Check a (therapist, date, time) slot.

    The answer may come from a short-lived cache; booking always checks
    the database again under the slot lock.
    """
    try:
        on = parse_wire_date(date)
        at = parse_slot_time(time)
    except ValueError as exc:
        raise ValidationException(str(exc)) from exc

    result = await AvailabilityChecker(db, cache).check_cached(therapist_id, on, at)

    conflict = None
    if result.conflict_info is not None:
        conflict = ConflictInfo(
            patient_id=result.conflict_info.patient_id,
            patient_name=result.conflict_info.patient_name,
            message=result.conflict_info.message,
        )
    return AvailabilityResponse(available=result.available, conflict_info=conflict)
