"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Time,
    false,
    func,
    text,
)

from cabinet.models.base import metadata

appointments = Table(
    "appointments",
    metadata,
    Column("id", Integer, primary_key=True),
    # Ownership / references
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
    # Slot
    Column("date", Date, nullable=False),
    Column("time", Time, nullable=False),
    Column("duration", Integer, nullable=True),
    Column("type", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("status", String(20), nullable=False, server_default="confirmed"),
    # Recurring series: the parent has no parent_appointment_id
    Column("is_recurring", Boolean, nullable=False, server_default=false()),
    Column("recurring_frequency", String(20), nullable=True),
    Column("recurring_count", Integer, nullable=True),
    Column("parent_appointment_id", Integer, nullable=True, index=True),
    # Invoice billing this appointment, shared by every member of a group
    Column("invoice_id", Integer, nullable=True, index=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
        name="status",
    ),
    # At most one live appointment per therapist slot
    Index(
        "uq_appointments_active_slot",
        "therapist_id",
        "date",
        "time",
        unique=True,
        postgresql_where=text("status <> 'cancelled'"),
        sqlite_where=text("status <> 'cancelled'"),
    ),
)
