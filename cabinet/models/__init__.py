"""Database models."""

from cabinet.models.appointments import appointments
from cabinet.models.base import metadata
from cabinet.models.invoices import invoice_counters, invoices
from cabinet.models.patients import patients
from cabinet.models.therapist_payments import therapist_payments
from cabinet.models.therapists import therapists
from cabinet.models.users import users

__all__ = [
    "appointments",
    "invoice_counters",
    "invoices",
    "metadata",
    "patients",
    "therapist_payments",
    "therapists",
    "users",
]
