"""Invoice schemas."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from cabinet.schemas.common import CamelModel, Money, WireDate


class InvoiceStatus(str, Enum):
    """Invoice status enumeration."""

    PENDING = "pending"
    DUE = "due"
    PAID = "paid"
    CANCELLED = "cancelled"


class InvoiceUpdate(CamelModel):
    """Schema for updating an invoice."""

    status: InvoiceStatus | None = None
    payment_method: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=4000)
    due_date: WireDate | None = None


class InvoiceResponse(CamelModel):
    """Schema for invoice response."""

    id: int
    invoice_number: str
    patient_id: int
    therapist_id: int
    appointment_id: int
    amount: Money
    tax_rate: Money
    total_amount: Money
    status: InvoiceStatus
    issue_date: WireDate
    due_date: WireDate
    payment_method: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    patient_name: str | None = None
    therapist_name: str | None = None


class InvoiceDetailResponse(InvoiceResponse):
    """Invoice with every session date of its group."""

    appointment_dates: list[str] = Field(default_factory=list)
