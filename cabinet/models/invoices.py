"""Invoice tables using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
)

from cabinet.models.base import metadata

invoices = Table(
    "invoices",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("invoice_number", String(20), nullable=False, unique=True),
    Column(
        "patient_id",
        Integer,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column(
        "therapist_id",
        Integer,
        ForeignKey("therapists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    # First appointment of the billed group
    Column(
        "appointment_id",
        Integer,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("amount", Numeric(10, 2), nullable=False),
    Column("tax_rate", Numeric(5, 2), nullable=False, server_default="0"),
    Column("total_amount", Numeric(10, 2), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("issue_date", Date, nullable=False),
    Column("due_date", Date, nullable=False),
    Column("payment_method", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'due', 'paid', 'cancelled')",
        name="status",
    ),
)

# Per-year invoice number sequence, advanced with an atomic upsert
invoice_counters = Table(
    "invoice_counters",
    metadata,
    Column("year", Integer, primary_key=True, autoincrement=False),
    Column("last_value", Integer, nullable=False),
)
