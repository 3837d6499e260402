"""Therapist payment endpoints."""

from fastapi import APIRouter, status

from cabinet.core.exceptions import ForbiddenException, NotFoundException
from cabinet.dependencies import CurrentUser, DatabaseSession, therapist_scope
from cabinet.schemas.payments import TherapistPaymentResponse
from cabinet.services.payment_service import PaymentService

router = APIRouter()


@router.get(
    "",
    response_model=list[TherapistPaymentResponse],
    status_code=status.HTTP_200_OK,
    summary="List therapist payments",
)
async def list_payments(
    current_user: CurrentUser,
    db: DatabaseSession,
) -> list[TherapistPaymentResponse]:
    return await PaymentService(db).list_payments(therapist_id=therapist_scope(current_user))


@router.get(
    "/{payment_id}",
    response_model=TherapistPaymentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get therapist payment",
)
async def get_payment(
    payment_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> TherapistPaymentResponse:
    payment = await PaymentService(db).get_payment(payment_id)
    scope = therapist_scope(current_user)
    if scope is not None and payment.therapist_id != scope:
        raise ForbiddenException("Access denied to this payment")
    return payment


@router.post(
    "/from-invoice/{invoice_id}",
    response_model=TherapistPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the payment for a paid invoice",
)
async def create_payment_from_invoice(
    invoice_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> TherapistPaymentResponse:
    """
    Create, or return, the payment owed for a paid invoice.

    Raises:
        NotFoundException: If the invoice does not exist or is not paid
    """
    if therapist_scope(current_user) is not None:
        raise ForbiddenException("Only clinic staff can record therapist payments")

    service = PaymentService(db)
    payment = await service.create_from_invoice(invoice_id)
    if payment is None:
        raise NotFoundException("Invoice is not paid")

    await db.commit()
    return payment
