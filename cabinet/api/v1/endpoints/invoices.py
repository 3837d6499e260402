"""Invoice endpoints."""

from fastapi import APIRouter, Query, status

from cabinet.core.exceptions import ForbiddenException
from cabinet.dependencies import CurrentUser, DatabaseSession, therapist_scope
from cabinet.schemas.invoices import (
    InvoiceDetailResponse,
    InvoiceResponse,
    InvoiceStatus,
    InvoiceUpdate,
)
from cabinet.services.invoice_service import InvoiceService

router = APIRouter()


def _check_scope(invoice: InvoiceResponse, scope: int | None) -> None:
    if scope is not None and invoice.therapist_id != scope:
        raise ForbiddenException("Access denied to this invoice")


@router.get(
    "",
    response_model=list[InvoiceResponse],
    status_code=status.HTTP_200_OK,
    summary="List invoices",
)
async def list_invoices(
    current_user: CurrentUser,
    db: DatabaseSession,
    status_filter: InvoiceStatus | None = Query(None, alias="status"),
) -> list[InvoiceResponse]:
    return await InvoiceService(db).list_invoices(
        therapist_id=therapist_scope(current_user),
        status=status_filter,
    )


@router.get(
    "/appointment/{appointment_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Invoice billing an appointment",
)
async def get_invoice_for_appointment(
    appointment_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> InvoiceResponse:
    """Grouped sessions all resolve to their shared invoice."""
    invoice = await InvoiceService(db).get_for_appointment(appointment_id)
    _check_scope(invoice, therapist_scope(current_user))
    return invoice


@router.get(
    "/{invoice_id}",
    response_model=InvoiceDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get invoice with its sessions",
)
async def get_invoice(
    invoice_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> InvoiceDetailResponse:
    """
    Get an invoice and every session it bills.

    For grouped invoices ``appointmentDates`` lists the active sessions in
    date order and the notes header reflects their count.
    """
    invoice = await InvoiceService(db).get_invoice_detail(invoice_id)
    _check_scope(invoice, therapist_scope(current_user))
    return invoice


@router.put(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Update invoice",
)
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> InvoiceResponse:
    """
    Update status, payment method, due date or notes.

    Marking an invoice paid creates the therapist payment; a paid invoice
    keeps its status.
    """
    service = InvoiceService(db)
    _check_scope(await service.get_invoice(invoice_id), therapist_scope(current_user))
    return await service.update_invoice(invoice_id, data)
