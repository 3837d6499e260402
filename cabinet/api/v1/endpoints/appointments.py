"""Appointment endpoints."""

from typing import Annotated

from fastapi import APIRouter, Body, Query, Response, status
from fastapi.responses import JSONResponse

from cabinet.core.exceptions import ValidationException
from cabinet.core.slots import parse_wire_date
from cabinet.dependencies import (
    CacheManagerDep,
    CurrentUser,
    DatabaseSession,
    ensure_therapists_in_scope,
    therapist_scope,
)
from cabinet.schemas.appointments import (
    AnyBookingRequest,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    BookingResponse,
    BulkDeleteRequest,
    MultipleAppointmentsCreate,
    MultipleAppointmentsResponse,
    MultiSlotRequest,
    MultiTherapistRequest,
)
from cabinet.services.appointment_service import AppointmentService, request_from_create

router = APIRouter()


def _parse_date_filter(value: str | None, name: str):
    if value is None:
        return None
    try:
        return parse_wire_date(value)
    except ValueError as exc:
        raise ValidationException(f"{name}: {exc}") from exc


@router.get(
    "",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    current_user: CurrentUser,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    therapist_id: int | None = Query(None, alias="therapistId"),
    patient_id: int | None = Query(None, alias="patientId"),
    from_date: str | None = Query(None, alias="fromDate"),
    to_date: str | None = Query(None, alias="toDate"),
) -> list[AppointmentResponse]:
    """
    List appointments, oldest first.

    Pending appointments whose slot has passed are completed first.
    Therapists only see their own schedule.
    """
    service = AppointmentService(db)
    await service.complete_elapsed()

    filters = AppointmentFilters(
        status=status_filter,
        therapist_id=therapist_id,
        patient_id=patient_id,
        from_date=_parse_date_filter(from_date, "fromDate"),
        to_date=_parse_date_filter(to_date, "toDate"),
    )
    return await service.list_appointments(filters, scope=therapist_scope(current_user))


@router.post(
    "",
    response_model=AppointmentResponse | list[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment or a recurring series",
)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> AppointmentResponse | list[AppointmentResponse]:
    """
    Book one slot, or a whole series when ``isRecurring`` is set.

    Returns:
        The appointment, or every appointment of the series

    Raises:
        ConflictException: If any slot is already taken
    """
    ensure_therapists_in_scope(current_user, [data.therapist_id])

    result = await AppointmentService(db, cache).book(request_from_create(data))
    if data.is_recurring:
        return result.appointments
    return result.appointments[0]


@router.post(
    "/multiple",
    response_model=MultipleAppointmentsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book several slots with one therapist on one invoice",
)
async def create_multiple_appointments(
    data: MultipleAppointmentsCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> MultipleAppointmentsResponse:
    """All slots are booked or none is."""
    ensure_therapists_in_scope(current_user, [data.therapist_id])

    request = MultiSlotRequest(
        patient_id=data.patient_id,
        therapist_id=data.therapist_id,
        slots=data.slots,
    )
    result = await AppointmentService(db, cache).book(request)
    return MultipleAppointmentsResponse(
        appointments=result.appointments,
        invoice=result.invoices[0],
    )


@router.post(
    "/batch",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book any kind of request, selected by mode",
)
async def create_booking(
    data: Annotated[AnyBookingRequest, Body(discriminator="mode")],
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> BookingResponse:
    """
    Book a ``single``, ``multi_slot``, ``multi_therapist`` or ``recurring`` request.

    In ``multi_therapist`` mode a therapist with no date or time, even after
    the defaults, is skipped and reported in ``skippedTherapistIds``.
    """
    if isinstance(data, MultiTherapistRequest):
        ensure_therapists_in_scope(current_user, data.therapist_ids)
    else:
        ensure_therapists_in_scope(current_user, [data.therapist_id])

    result = await AppointmentService(db, cache).book(data)
    return BookingResponse(
        appointments=result.appointments,
        invoices=result.invoices,
        skipped_therapist_ids=result.skipped_therapist_ids,
        created_count=len(result.appointments),
    )


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete several appointments",
    responses={207: {"description": "Some appointments could not be deleted"}},
)
async def delete_appointments(
    data: BulkDeleteRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> Response:
    """Each id is deleted on its own; failures are listed with a 207."""
    result = await AppointmentService(db, cache).delete_many(
        data.ids,
        scope=therapist_scope(current_user),
    )
    if not result.failures:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(
        status_code=status.HTTP_207_MULTI_STATUS,
        content=result.model_dump(by_alias=True),
    )


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment details",
)
async def get_appointment(
    appointment_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentResponse:
    return await AppointmentService(db).get_appointment(
        appointment_id,
        scope=therapist_scope(current_user),
    )


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> AppointmentResponse:
    """
    Update an appointment.

    A status change carries over to a series' children and to the invoice;
    a new slot is checked for conflicts first.
    """
    return await AppointmentService(db, cache).update(
        appointment_id,
        data,
        scope=therapist_scope(current_user),
    )


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Change appointment status",
)
async def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> AppointmentResponse:
    return await AppointmentService(db, cache).update_status(
        appointment_id,
        data.status,
        scope=therapist_scope(current_user),
    )


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> None:
    """
    Delete an appointment; a recurring parent takes its children along.

    Raises:
        NotFoundException: If appointment not found
        ConflictException: If its invoice was already paid out to the therapist
    """
    await AppointmentService(db, cache).delete_one(
        appointment_id,
        scope=therapist_scope(current_user),
    )
