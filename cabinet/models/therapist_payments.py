"""Therapist payment model using SQLAlchemy Core."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, Table, Text, func

from cabinet.models.base import metadata

therapist_payments = Table(
    "therapist_payments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "therapist_id",
        Integer,
        ForeignKey("therapists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    # One payment per paid invoice
    Column(
        "invoice_id",
        Integer,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    ),
    Column("amount", Numeric(10, 2), nullable=False),
    Column("payment_date", Date, nullable=False),
    Column("payment_method", Text, nullable=False),
    Column("payment_reference", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
