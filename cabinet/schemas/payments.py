"""Therapist payment schemas."""

from datetime import datetime

from cabinet.schemas.common import CamelModel, Money, WireDate


class TherapistPaymentResponse(CamelModel):
    """Schema for therapist payment response."""

    id: int
    therapist_id: int
    invoice_id: int
    amount: Money
    payment_date: WireDate
    payment_method: str
    payment_reference: str | None = None
    notes: str | None = None
    created_at: datetime
    therapist_name: str | None = None
    invoice_number: str | None = None
