"""Invoice generation, grouping and settlement."""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.config import settings
from cabinet.core.exceptions import NotFoundException
from cabinet.core.slots import format_session, format_slot_time, format_wire_date
from cabinet.models.appointments import appointments
from cabinet.models.invoices import invoice_counters, invoices
from cabinet.models.patients import patients
from cabinet.models.therapists import therapists
from cabinet.schemas.invoices import (
    InvoiceDetailResponse,
    InvoiceResponse,
    InvoiceStatus,
    InvoiceUpdate,
)
from cabinet.services.payment_service import PaymentService
from cabinet.services.recurrence import RecurrenceFrequency

logger = structlog.get_logger(__name__)

GROUP_HEADER = "Facture groupée pour"
_DATE_LINE_RE = re.compile(r"^\d{1,2}(/\d{2}/\d{4}| \w+ \d{4})")
_FREQUENCY_RE = re.compile(r"\(([^)]*)\)")

# Appointment status -> invoice status, for the appointment leading an invoice
STATUS_FOR_APPOINTMENT = {
    "cancelled": InvoiceStatus.CANCELLED,
    "pending": InvoiceStatus.PENDING,
    "completed": InvoiceStatus.DUE,
}


def format_invoice_number(year: int, sequence: int) -> str:
    return f"F-{year}-{sequence:04d}"


def group_header(count: int, frequency_label: str | None = None) -> str:
    header = f"{GROUP_HEADER} {count} séances"
    if frequency_label:
        header += f" ({frequency_label})"
    return header


def _chronological(items: Iterable[Any]) -> list[Any]:
    return sorted(items, key=lambda a: (a.date, a.time, a.id))


@dataclass(frozen=True)
class InvoiceGroup:
    """Read-time view of the sessions billed on one invoice."""

    appointment_ids: list[int]
    appointment_dates: list[str]
    notes: str
    custom_notes: str


def reconstruct_group(invoice: Any, members: Iterable[Any]) -> InvoiceGroup:
    """
    Rebuild the session list and notes of a grouped invoice.

    Cancelled sessions are dropped and the rest sorted chronologically. The
    generated header is rebuilt with the active count (and the frequency it
    carried, if any); lines written by users are kept after a blank line.
    Pure: the same invoice and members always give the same result.
    """
    active = _chronological(m for m in members if m.status != "cancelled")
    notes = invoice.notes or ""

    frequency_label = None
    custom_lines: list[str] = []
    for line in notes.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(GROUP_HEADER):
            head = stripped.split(":", 1)[0]
            match = _FREQUENCY_RE.search(head)
            if match:
                frequency_label = match.group(1)
            continue
        if _DATE_LINE_RE.match(stripped):
            continue
        custom_lines.append(stripped)

    custom = "\n".join(custom_lines)
    header = group_header(len(active), frequency_label)
    return InvoiceGroup(
        appointment_ids=[m.id for m in active],
        appointment_dates=[format_session(m.date, m.time) for m in active],
        notes=f"{header}\n\n{custom}" if custom else header,
        custom_notes=custom,
    )


def _invoice_query():
    return select(
        invoices,
        (patients.c.first_name + " " + patients.c.last_name).label("patient_name"),
        therapists.c.name.label("therapist_name"),
    ).select_from(
        invoices.join(patients, invoices.c.patient_id == patients.c.id).join(
            therapists, invoices.c.therapist_id == therapists.c.id
        )
    )


class InvoiceService:
    """Service for invoices.

    Everything except :meth:`update_invoice` only flushes; the booking and
    mutation paths commit once for the whole operation.
    """

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def next_invoice_number(self, year: int | None = None) -> str:
        """
        Take the next number from the per-year counter.

        A single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` so two
        concurrent invoices can never read the same value.
        """
        year = year or date.today().year
        dialect = postgresql if self.db.get_bind().dialect.name == "postgresql" else sqlite

        stmt = dialect.insert(invoice_counters).values(year=year, last_value=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[invoice_counters.c.year],
            set_={"last_value": invoice_counters.c.last_value + 1},
        ).returning(invoice_counters.c.last_value)

        sequence = (await self.db.execute(stmt)).scalar_one()
        return format_invoice_number(year, sequence)

    async def _create(
        self,
        anchor: Any,
        amount: Decimal,
        notes: str,
        status: InvoiceStatus = InvoiceStatus.PENDING,
    ) -> int:
        today = date.today()
        invoice_number = await self.next_invoice_number(today.year)
        stmt = (
            insert(invoices)
            .values(
                invoice_number=invoice_number,
                patient_id=anchor.patient_id,
                therapist_id=anchor.therapist_id,
                appointment_id=anchor.id,
                amount=amount,
                tax_rate=Decimal("0"),
                total_amount=amount,
                status=status.value,
                issue_date=today,
                due_date=today + timedelta(days=settings.invoice_due_days),
                notes=notes,
            )
            .returning(invoices.c.id)
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def invoice_for_appointment(self, appointment: Any) -> InvoiceResponse:
        """Bill one session on its own invoice."""
        notes = (
            f"Séance thérapeutique du {format_wire_date(appointment.date)} "
            f"à {format_slot_time(appointment.time)}"
        )
        invoice_id = await self._create(appointment, settings.session_unit_price, notes)
        await self.db.execute(
            update(appointments)
            .where(appointments.c.id == appointment.id)
            .values(invoice_id=invoice_id)
        )

        invoice = await self.get_invoice(invoice_id)
        logger.info(
            "invoice_created",
            invoice_id=invoice_id,
            invoice_number=invoice.invoice_number,
            appointment_id=appointment.id,
        )
        return invoice

    async def consolidate(
        self,
        members: Sequence[Any],
        unit_price: Decimal | None = None,
        frequency: RecurrenceFrequency | None = None,
    ) -> InvoiceResponse:
        """
        Bill several sessions on one invoice anchored on ``members[0]``.

        Args:
            members: Persisted appointments, anchor first
            unit_price: Price per session, defaults to the configured price
            frequency: Recurrence, shown in the notes header

        Returns:
            The grouped invoice
        """
        if not members:
            raise ValueError("Cannot consolidate an empty group")

        unit_price = settings.session_unit_price if unit_price is None else unit_price
        anchor = members[0]
        total = unit_price * len(members)

        sessions = ", ".join(format_session(m.date, m.time) for m in members)
        header = group_header(len(members), frequency.label if frequency else None)
        invoice_id = await self._create(anchor, total, f"{header}: {sessions}")
        invoice = await self.get_invoice(invoice_id)

        await self.db.execute(
            update(appointments)
            .where(appointments.c.id.in_([m.id for m in members]))
            .values(invoice_id=invoice_id)
        )
        for member in members[1:]:
            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == member.id)
                .values(
                    notes=f"Facturé avec le RDV #{anchor.id} sur la facture {invoice.invoice_number}"
                )
            )

        logger.info(
            "grouped_invoice_created",
            invoice_id=invoice_id,
            invoice_number=invoice.invoice_number,
            sessions=len(members),
            total_amount=str(total),
        )
        return invoice

    async def group_members(self, invoice_id: int) -> list[Any]:
        stmt = select(appointments).where(appointments.c.invoice_id == invoice_id)
        return _chronological((await self.db.execute(stmt)).fetchall())

    async def sync_status(self, invoice_id: int, appointment_status: str) -> None:
        """Follow the status of the appointment leading the invoice; paid stays paid."""
        stmt = update(invoices).where(
            invoices.c.id == invoice_id, invoices.c.status != InvoiceStatus.PAID.value
        )
        target = STATUS_FOR_APPOINTMENT.get(appointment_status)
        if target is None:
            if appointment_status != "confirmed":
                return
            # A confirmed session only brings back a cancelled invoice
            target = InvoiceStatus.PENDING
            stmt = stmt.where(invoices.c.status == InvoiceStatus.CANCELLED.value)
        await self.db.execute(stmt.values(status=target.value, updated_at=func.now()))

    async def reprice(self, invoice_id: int) -> None:
        """Bill only the sessions of the group that are still active."""
        invoice = (
            await self.db.execute(select(invoices).where(invoices.c.id == invoice_id))
        ).fetchone()
        if invoice is None:
            return

        members = await self.group_members(invoice_id)
        group = reconstruct_group(invoice, members)
        active = len(group.appointment_ids)
        if active == 0:
            return

        amount = settings.session_unit_price * active
        values: dict[str, Any] = {"amount": amount, "total_amount": amount, "updated_at": func.now()}
        if len(members) > 1:
            header = group.notes.split("\n", 1)[0]
            notes = f"{header}: {', '.join(group.appointment_dates)}"
            values["notes"] = f"{notes}\n\n{group.custom_notes}" if group.custom_notes else notes

        await self.db.execute(update(invoices).where(invoices.c.id == invoice_id).values(**values))
        await PaymentService(self.db).adjust_amount(invoice_id, amount)

        if amount != invoice.total_amount:
            logger.info(
                "invoice_amount_adjusted",
                invoice_id=invoice_id,
                active_sessions=active,
                previous_amount=str(invoice.total_amount),
                amount=str(amount),
            )

    async def release(self, invoice_id: int, removed_ids: set[int]) -> bool:
        """
        Detach sessions about to be deleted from their invoice.

        The invoice is deleted once no session remains, otherwise it is
        re-anchored on the earliest remaining session. Returns True when the
        invoice survives and must be re-priced after the deletion.
        """
        members = await self.group_members(invoice_id)
        remaining = [m for m in members if m.id not in removed_ids]

        if not remaining:
            await self.db.execute(
                update(appointments)
                .where(appointments.c.invoice_id == invoice_id)
                .values(invoice_id=None)
            )
            await self.db.execute(delete(invoices).where(invoices.c.id == invoice_id))
            logger.info("invoice_deleted", invoice_id=invoice_id)
            return False

        await self.db.execute(
            update(invoices)
            .where(invoices.c.id == invoice_id)
            .values(appointment_id=remaining[0].id, updated_at=func.now())
        )
        return True

    async def get_invoice(self, invoice_id: int) -> InvoiceResponse:
        stmt = _invoice_query().where(invoices.c.id == invoice_id)
        row = (await self.db.execute(stmt)).fetchone()
        if row is None:
            raise NotFoundException("Invoice not found")
        return InvoiceResponse.model_validate(dict(row._mapping))

    async def get_invoice_detail(self, invoice_id: int) -> InvoiceDetailResponse:
        """Invoice with every session of its group, ready for rendering."""
        stmt = _invoice_query().where(invoices.c.id == invoice_id)
        row = (await self.db.execute(stmt)).fetchone()
        if row is None:
            raise NotFoundException("Invoice not found")

        data = dict(row._mapping)
        members = await self.group_members(invoice_id)
        grouped = len(members) > 1 or (row.notes or "").startswith(GROUP_HEADER)

        if grouped:
            group = reconstruct_group(row, members)
            data["notes"] = group.notes
            data["appointment_dates"] = group.appointment_dates
        else:
            data["appointment_dates"] = [format_session(m.date, m.time) for m in members]

        return InvoiceDetailResponse.model_validate(data)

    async def get_for_appointment(self, appointment_id: int) -> InvoiceResponse:
        stmt = select(appointments.c.invoice_id).where(appointments.c.id == appointment_id)
        result = (await self.db.execute(stmt)).fetchone()
        if result is None:
            raise NotFoundException("Appointment not found")
        if result.invoice_id is None:
            raise NotFoundException("No invoice for this appointment")
        return await self.get_invoice(result.invoice_id)

    async def list_invoices(
        self,
        therapist_id: int | None = None,
        status: InvoiceStatus | None = None,
    ) -> list[InvoiceResponse]:
        stmt = _invoice_query()
        if therapist_id is not None:
            stmt = stmt.where(invoices.c.therapist_id == therapist_id)
        if status is not None:
            stmt = stmt.where(invoices.c.status == status.value)
        stmt = stmt.order_by(invoices.c.issue_date.desc(), invoices.c.id.desc())

        rows = (await self.db.execute(stmt)).fetchall()
        return [InvoiceResponse.model_validate(dict(row._mapping)) for row in rows]

    async def update_invoice(self, invoice_id: int, data: InvoiceUpdate) -> InvoiceResponse:
        """
        Update an invoice and commit.

        A paid invoice keeps its status. Moving to paid creates the
        therapist payment.

        Raises:
            NotFoundException: If the invoice does not exist
        """
        current = (
            await self.db.execute(select(invoices).where(invoices.c.id == invoice_id))
        ).fetchone()
        if current is None:
            raise NotFoundException("Invoice not found")

        values = data.model_dump(exclude_unset=True, exclude_none=True)
        if "status" in values:
            if current.status == InvoiceStatus.PAID.value:
                values.pop("status")
            else:
                values["status"] = values["status"].value

        became_paid = values.get("status") == InvoiceStatus.PAID.value

        if values:
            values["updated_at"] = func.now()
            await self.db.execute(update(invoices).where(invoices.c.id == invoice_id).values(**values))

        if became_paid:
            await PaymentService(self.db).create_from_invoice(invoice_id)

        await self.db.commit()
        return await self.get_invoice(invoice_id)
