"""Therapist model definition using SQLAlchemy Core."""

from sqlalchemy import Column, DateTime, Integer, String, Table, Text, func

from cabinet.models.base import metadata

therapists = Table(
    "therapists",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", Text, nullable=False),
    Column("specialty", Text),
    Column("email", Text),
    Column("phone", String(20)),
    # Calendar display color, e.g. "#4f46e5"
    Column("color", String(20)),
    # Advisory only; bookings are not checked against these
    Column("available_days", Text),
    Column("work_hours", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
