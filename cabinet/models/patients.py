"""Patient model definition using SQLAlchemy Core."""

from sqlalchemy import Column, DateTime, Integer, Table, Text, func

from cabinet.models.base import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("email", Text),
    Column("phone", Text),
    Column("address", Text),
    Column("birth_date", Text),
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
