"""Therapist payment service."""

from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.core.exceptions import NotFoundException
from cabinet.models.invoices import invoices
from cabinet.models.therapist_payments import therapist_payments
from cabinet.models.therapists import therapists
from cabinet.schemas.payments import TherapistPaymentResponse

logger = structlog.get_logger(__name__)

DEFAULT_PAYMENT_METHOD = "Virement bancaire"


def _payment_query():
    return select(
        therapist_payments,
        therapists.c.name.label("therapist_name"),
        invoices.c.invoice_number.label("invoice_number"),
    ).select_from(
        therapist_payments.join(therapists, therapist_payments.c.therapist_id == therapists.c.id).join(
            invoices, therapist_payments.c.invoice_id == invoices.c.id
        )
    )


class PaymentService:
    """Payments owed to therapists for settled invoices.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def find_for_invoice(self, invoice_id: int):
        stmt = select(therapist_payments).where(therapist_payments.c.invoice_id == invoice_id)
        return (await self.db.execute(stmt)).fetchone()

    async def create_from_invoice(self, invoice_id: int) -> TherapistPaymentResponse | None:
        """
        Create the payment for a paid invoice, at most once.

        Args:
            invoice_id: Invoice to settle

        Returns:
            The new or already existing payment; None if the invoice is not paid

        Raises:
            NotFoundException: If the invoice does not exist
        """
        invoice = (
            await self.db.execute(select(invoices).where(invoices.c.id == invoice_id))
        ).fetchone()
        if invoice is None:
            raise NotFoundException("Invoice not found")

        existing = await self.find_for_invoice(invoice_id)
        if existing is not None:
            return await self.get_payment(existing.id)

        if invoice.status != "paid":
            return None

        stmt = (
            insert(therapist_payments)
            .values(
                therapist_id=invoice.therapist_id,
                invoice_id=invoice.id,
                amount=invoice.total_amount,
                payment_date=date.today(),
                payment_method=invoice.payment_method or DEFAULT_PAYMENT_METHOD,
                notes=f"Paiement automatique pour la facture {invoice.invoice_number}",
            )
            .returning(therapist_payments.c.id)
        )
        payment_id = (await self.db.execute(stmt)).scalar_one()

        logger.info(
            "therapist_payment_created",
            payment_id=payment_id,
            invoice_id=invoice.id,
            therapist_id=invoice.therapist_id,
            amount=str(invoice.total_amount),
        )
        return await self.get_payment(payment_id)

    async def adjust_amount(self, invoice_id: int, amount: Decimal) -> None:
        """Keep an existing payment in line with a re-priced invoice."""
        await self.db.execute(
            update(therapist_payments)
            .where(therapist_payments.c.invoice_id == invoice_id)
            .values(amount=amount)
        )

    async def get_payment(self, payment_id: int) -> TherapistPaymentResponse:
        stmt = _payment_query().where(therapist_payments.c.id == payment_id)
        row = (await self.db.execute(stmt)).fetchone()
        if row is None:
            raise NotFoundException("Therapist payment not found")
        return TherapistPaymentResponse.model_validate(dict(row._mapping))

    async def list_payments(self, therapist_id: int | None = None) -> list[TherapistPaymentResponse]:
        stmt = _payment_query()
        if therapist_id is not None:
            stmt = stmt.where(therapist_payments.c.therapist_id == therapist_id)
        stmt = stmt.order_by(therapist_payments.c.payment_date.desc(), therapist_payments.c.id.desc())

        rows = (await self.db.execute(stmt)).fetchall()
        return [TherapistPaymentResponse.model_validate(dict(row._mapping)) for row in rows]
