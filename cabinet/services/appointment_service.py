"""Appointment service for business logic."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.config import settings
from cabinet.core.exceptions import (
    AppException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from cabinet.core.redis_client import CacheManager
from cabinet.models.appointments import appointments
from cabinet.models.invoices import invoices
from cabinet.models.patients import patients
from cabinet.models.therapists import therapists
from cabinet.schemas.appointments import (
    AnyBookingRequest,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    BulkDeleteResult,
    DeleteFailure,
    DeleteOutcome,
    RecurringRequest,
    SingleSlotRequest,
)
from cabinet.schemas.invoices import InvoiceResponse
from cabinet.services.availability_service import AvailabilityChecker, invalidate_slots
from cabinet.services.invoice_service import InvoiceService
from cabinet.services.payment_service import PaymentService
from cabinet.services.recurrence import RecurrenceFrequency, generate_dates
from cabinet.services.slot_locks import SlotKey, SlotLockRegistry, slot_locks
from cabinet.services.slot_planner import (
    BookingPlan,
    InvoicePolicy,
    PlannedSlot,
    plan,
    validate,
)

logger = structlog.get_logger(__name__)

ACTIVE_SLOT_INDEX = "uq_appointments_active_slot"
PAID_OUT_MESSAGE = "Ce rendez-vous ne peut pas être supprimé car il a déjà été réglé au thérapeute"


@dataclass
class BookingResult:
    appointments: list[AppointmentResponse]
    invoices: list[InvoiceResponse]
    skipped_therapist_ids: list[int] = field(default_factory=list)


def _appointment_query():
    return select(
        appointments,
        (patients.c.first_name + " " + patients.c.last_name).label("patient_name"),
        therapists.c.name.label("therapist_name"),
    ).select_from(
        appointments.join(patients, appointments.c.patient_id == patients.c.id).join(
            therapists, appointments.c.therapist_id == therapists.c.id
        )
    )


def _is_slot_violation(exc: IntegrityError) -> bool:
    # Postgres names the index, SQLite lists its columns
    message = str(exc.orig)
    return ACTIVE_SLOT_INDEX in message or "appointments.therapist_id, appointments.date" in message


def _is_series_parent(row: Any) -> bool:
    return bool(row.is_recurring) and row.parent_appointment_id is None


def _revived(children: list[Any]) -> list[PlannedSlot]:
    """Slots of cancelled children that a parent status change brings back."""
    return [
        PlannedSlot(
            patient_id=child.patient_id,
            therapist_id=child.therapist_id,
            date=child.date,
            time=child.time,
        )
        for child in children
        if child.status == AppointmentStatus.CANCELLED.value
    ]


def _check_scope(row: Any, scope: int | None) -> None:
    if scope is not None and row.therapist_id != scope:
        raise ForbiddenException("Access denied to this appointment")


def request_from_create(data: AppointmentCreate) -> SingleSlotRequest | RecurringRequest:
    """Map the legacy create body onto the tagged booking requests."""
    common = {
        "patient_id": data.patient_id,
        "therapist_id": data.therapist_id,
        "date": data.date,
        "time": data.time,
        "duration": data.duration,
        "type": data.type,
        "notes": data.notes,
        "status": data.status,
    }
    if data.is_recurring:
        return RecurringRequest(
            frequency=data.recurring_frequency,
            count=data.recurring_count,
            **common,
        )
    return SingleSlotRequest(**common)


class AppointmentService:
    """
    Service for booking and mutating appointments.

    Every public mutation runs as one transaction: slots are locked, checked,
    written and invoiced, then committed once. Any failure rolls the whole
    operation back.
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheManager | None = None,
        locks: SlotLockRegistry = slot_locks,
    ):
        """Initialize service with database session."""
        self.db = db
        self.cache = cache
        self.locks = locks
        self.checker = AvailabilityChecker(db)
        self.invoices = InvoiceService(db)

    # Booking

    async def book(self, request: AnyBookingRequest) -> BookingResult:
        """
        Plan, validate, persist and invoice a booking request.

        Raises:
            NotFoundException: If the patient or a therapist does not exist
            ConflictException: If any requested slot is taken or repeated
        """
        booking = plan(request)
        await self._ensure_references(
            request.patient_id, {slot.therapist_id for slot in booking.slots}
        )

        async with self.locks.hold(booking.keys):
            try:
                await validate(booking, self.checker)
                rows, invoice_list = await self._persist(booking)
                await self.db.commit()
            except IntegrityError as exc:
                await self.db.rollback()
                if not _is_slot_violation(exc):
                    raise
                raise await self._lost_race(booking.keys) from exc
            except Exception:
                await self.db.rollback()
                raise

        invalidate_slots(self.cache, booking.keys)

        logger.info(
            "appointments_created",
            mode=booking.mode,
            created=len(rows),
            invoices=len(invoice_list),
            skipped_therapist_ids=booking.skipped_therapist_ids,
        )

        created = [await self.get_appointment(row.id) for row in rows]
        refreshed = [await self.invoices.get_invoice(inv.id) for inv in invoice_list]
        return BookingResult(
            appointments=created,
            invoices=refreshed,
            skipped_therapist_ids=booking.skipped_therapist_ids,
        )

    async def _persist(self, booking: BookingPlan) -> tuple[list[Any], list[InvoiceResponse]]:
        if booking.mode == "recurring":
            rows = await self.create_recurring_series(
                booking.slots[0],
                booking.frequency,
                booking.count,
                grouped_invoice=True,
            )
            parent = await self._fetch(rows[0].id)
            invoice = await self.invoices.get_invoice(parent.invoice_id)
            return rows, [invoice]

        if booking.policy is InvoicePolicy.GROUPED:
            rows = [await self.create(slot, skip_invoice_generation=True) for slot in booking.slots]
            invoice = await self.invoices.consolidate(rows)
            return rows, [invoice]

        rows = []
        invoice_list = []
        for slot in booking.slots:
            row = await self.create(slot, skip_invoice_generation=True)
            if row.status == AppointmentStatus.CONFIRMED.value:
                invoice_list.append(await self.invoices.invoice_for_appointment(row))
            rows.append(row)
        return rows, invoice_list

    async def create(
        self,
        slot: PlannedSlot,
        skip_invoice_generation: bool = False,
        **series: Any,
    ) -> Any:
        """
        Insert one appointment within the current transaction.

        A confirmed stand-alone appointment gets its own invoice unless
        ``skip_invoice_generation`` is set.

        Args:
            slot: Patient, therapist, date and time to book
            skip_invoice_generation: Leave billing to the caller
            **series: Recurrence columns for series members
        """
        stmt = (
            insert(appointments)
            .values(
                patient_id=slot.patient_id,
                therapist_id=slot.therapist_id,
                date=slot.date,
                time=slot.time,
                duration=slot.duration,
                type=slot.type,
                notes=slot.notes,
                status=slot.status.value,
                **series,
            )
            .returning(appointments)
        )
        row = (await self.db.execute(stmt)).fetchone()

        if (
            not skip_invoice_generation
            and row.status == AppointmentStatus.CONFIRMED.value
            and row.parent_appointment_id is None
        ):
            await self.invoices.invoice_for_appointment(row)
        return row

    async def create_recurring_series(
        self,
        base: PlannedSlot,
        frequency: RecurrenceFrequency,
        count: int,
        grouped_invoice: bool = True,
    ) -> list[Any]:
        """
        Insert a parent and its children within the current transaction.

        The parent is written first so every child can reference it. With
        ``grouped_invoice`` the whole series is billed on one invoice,
        otherwise each confirmed session is billed alone.
        """
        series = {
            "is_recurring": True,
            "recurring_frequency": frequency.value,
            "recurring_count": count,
        }
        dates = generate_dates(base.date, frequency, count)

        parent = await self.create(replace(base, date=dates[0]), skip_invoice_generation=True, **series)
        rows = [parent]
        for session_date in dates[1:]:
            rows.append(
                await self.create(
                    replace(base, date=session_date),
                    skip_invoice_generation=True,
                    parent_appointment_id=parent.id,
                    **series,
                )
            )

        if grouped_invoice:
            await self.invoices.consolidate(rows, frequency=frequency)
        else:
            for row in rows:
                if row.status == AppointmentStatus.CONFIRMED.value:
                    await self.invoices.invoice_for_appointment(row)

        logger.info(
            "recurring_series_created",
            parent_id=parent.id,
            frequency=frequency.value,
            count=len(rows),
        )
        return rows

    async def _ensure_references(self, patient_id: int, therapist_ids: set[int]) -> None:
        found = (
            await self.db.execute(select(patients.c.id).where(patients.c.id == patient_id))
        ).fetchone()
        if found is None:
            raise NotFoundException("Patient not found")

        if therapist_ids:
            stmt = select(therapists.c.id).where(therapists.c.id.in_(therapist_ids))
            existing = set((await self.db.execute(stmt)).scalars().all())
            missing = sorted(therapist_ids - existing)
            if missing:
                raise NotFoundException(f"Therapist not found: {', '.join(map(str, missing))}")

    async def _lost_race(self, keys: list[SlotKey]) -> ConflictException:
        """Describe a slot taken by a concurrent writer after our check."""
        for therapist_id, on, at in sorted(set(keys)):
            result = await self.checker.check(therapist_id, on, at)
            if not result.available and result.conflict_info is not None:
                info = result.conflict_info.to_dict()
                return ConflictException(info["message"], conflict_info=info)
        return ConflictException("Ce créneau vient d'être réservé")

    # Reads

    async def get_appointment(self, appointment_id: int, scope: int | None = None) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If outside the caller's therapist scope
        """
        stmt = _appointment_query().where(appointments.c.id == appointment_id)
        row = (await self.db.execute(stmt)).fetchone()
        if row is None:
            raise NotFoundException("Appointment not found")
        _check_scope(row, scope)
        return AppointmentResponse.model_validate(dict(row._mapping))

    async def list_appointments(
        self,
        filters: AppointmentFilters,
        scope: int | None = None,
    ) -> list[AppointmentResponse]:
        """List appointments, restricted to ``scope`` when it names a therapist."""
        conditions = []
        if scope is not None:
            conditions.append(appointments.c.therapist_id == scope)
        if filters.therapist_id is not None:
            conditions.append(appointments.c.therapist_id == filters.therapist_id)
        if filters.patient_id is not None:
            conditions.append(appointments.c.patient_id == filters.patient_id)
        if filters.status is not None:
            conditions.append(appointments.c.status == filters.status.value)
        if filters.from_date is not None:
            conditions.append(appointments.c.date >= filters.from_date)
        if filters.to_date is not None:
            conditions.append(appointments.c.date <= filters.to_date)

        stmt = _appointment_query()
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = stmt.order_by(appointments.c.date, appointments.c.time, appointments.c.id)

        rows = (await self.db.execute(stmt)).fetchall()
        return [AppointmentResponse.model_validate(dict(row._mapping)) for row in rows]

    async def _fetch(self, appointment_id: int) -> Any:
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        row = (await self.db.execute(stmt)).fetchone()
        if row is None:
            raise NotFoundException("Appointment not found")
        return row

    async def _children(self, parent_id: int) -> list[Any]:
        stmt = select(appointments).where(appointments.c.parent_appointment_id == parent_id)
        return list((await self.db.execute(stmt)).fetchall())

    # Mutations

    async def update(
        self,
        appointment_id: int,
        data: AppointmentUpdate,
        scope: int | None = None,
    ) -> AppointmentResponse:
        """
        Update an appointment and apply the status side effects.

        A new slot (or an appointment leaving the cancelled state) is checked
        again under the slot lock.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If outside the caller's therapist scope
            ConflictException: If the target slot is taken
        """
        current = await self._fetch(appointment_id)
        _check_scope(current, scope)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if scope is not None and changes.get("therapist_id", scope) != scope:
            raise ForbiddenException("Therapists can only manage their own appointments")
        if "status" in changes:
            changes["status"] = changes["status"].value

        target: SlotKey = (
            changes.get("therapist_id", current.therapist_id),
            changes.get("date", current.date),
            changes.get("time", current.time),
        )
        old_key: SlotKey = (current.therapist_id, current.date, current.time)
        new_status = changes.get("status", current.status)
        needs_check = new_status != AppointmentStatus.CANCELLED.value and (
            target != old_key or current.status == AppointmentStatus.CANCELLED.value
        )

        slots: list[PlannedSlot] = []
        if needs_check:
            slots.append(
                PlannedSlot(
                    patient_id=changes.get("patient_id", current.patient_id),
                    therapist_id=target[0],
                    date=target[1],
                    time=target[2],
                )
            )
        children: list[Any] = []
        if _is_series_parent(current) and new_status != current.status:
            children = await self._children(current.id)
            if new_status != AppointmentStatus.CANCELLED.value:
                slots.extend(_revived(children))
        keys = [slot.key for slot in slots]

        async with self.locks.hold(keys):
            try:
                if slots:
                    await validate(
                        BookingPlan(mode="update", slots=slots, policy=InvoicePolicy.PER_APPOINTMENT),
                        self.checker,
                        exclude_appointment_id=appointment_id,
                    )

                if changes:
                    changes["updated_at"] = func.now()
                    await self.db.execute(
                        update(appointments)
                        .where(appointments.c.id == appointment_id)
                        .values(**changes)
                    )
                if new_status != current.status:
                    await self._apply_status(current, new_status)

                await self.db.commit()
            except IntegrityError as exc:
                await self.db.rollback()
                if not _is_slot_violation(exc):
                    raise
                raise await self._lost_race(keys or [target]) from exc
            except Exception:
                await self.db.rollback()
                raise

        series_keys = [(child.therapist_id, child.date, child.time) for child in children]
        invalidate_slots(self.cache, [old_key, target, *series_keys])
        return await self.get_appointment(appointment_id)

    async def update_status(
        self,
        appointment_id: int,
        status: AppointmentStatus,
        scope: int | None = None,
    ) -> AppointmentResponse:
        return await self.update(appointment_id, AppointmentUpdate(status=status), scope=scope)

    async def _apply_status(self, before: Any, new_status: str) -> None:
        """
        Side effects of a status change, within the current transaction.

        A recurring parent carries its children along. The appointment
        leading an invoice drives the invoice status; any other member only
        changes what the group bills.
        """
        cancelled_at = func.now() if new_status == AppointmentStatus.CANCELLED.value else None
        await self.db.execute(
            update(appointments)
            .where(appointments.c.id == before.id)
            .values(cancelled_at=cancelled_at)
        )

        is_parent = _is_series_parent(before)
        if is_parent:
            await self.db.execute(
                update(appointments)
                .where(appointments.c.parent_appointment_id == before.id)
                .values(status=new_status, cancelled_at=cancelled_at, updated_at=func.now())
            )

        logger.info(
            "appointment_status_changed",
            appointment_id=before.id,
            previous=before.status,
            status=new_status,
            propagated=is_parent,
        )

        if before.invoice_id is not None:
            invoice = (
                await self.db.execute(select(invoices).where(invoices.c.id == before.invoice_id))
            ).fetchone()
            if invoice is None:
                return
            if invoice.appointment_id == before.id:
                await self.invoices.sync_status(invoice.id, new_status)
                if is_parent:
                    # Children may have changed their cancelled state with the parent
                    await self.invoices.reprice(invoice.id)
            else:
                await self.invoices.reprice(invoice.id)
            return

        if before.parent_appointment_id is None and new_status in (
            AppointmentStatus.CONFIRMED.value,
            AppointmentStatus.PENDING.value,
        ):
            await self.invoices.invoice_for_appointment(await self._fetch(before.id))

    async def complete_elapsed(self, now: datetime | None = None) -> int:
        """
        Mark pending appointments whose slot has passed as completed.

        Runs before listings so no client has to drive the transition.

        Returns:
            Number of appointments completed
        """
        now = now or datetime.now(ZoneInfo(settings.clinic_timezone))
        today, current_time = now.date(), now.time().replace(tzinfo=None)

        elapsed = and_(
            appointments.c.status == AppointmentStatus.PENDING.value,
            or_(
                appointments.c.date < today,
                and_(appointments.c.date == today, appointments.c.time <= current_time),
            ),
        )
        ids = list((await self.db.execute(select(appointments.c.id).where(elapsed))).scalars())
        if not ids:
            return 0

        await self.db.execute(
            update(appointments)
            .where(appointments.c.id.in_(ids))
            .values(status=AppointmentStatus.COMPLETED.value, updated_at=func.now())
        )
        led = select(invoices.c.id).where(invoices.c.appointment_id.in_(ids))
        for invoice_id in (await self.db.execute(led)).scalars().all():
            await self.invoices.sync_status(invoice_id, AppointmentStatus.COMPLETED.value)

        await self.db.commit()
        logger.info("elapsed_appointments_completed", count=len(ids))
        return len(ids)

    async def delete_one(self, appointment_id: int, scope: int | None = None) -> bool:
        """
        Delete an appointment, and a recurring parent's children with it.

        Invoices lose the deleted sessions: an emptied invoice is deleted,
        any other is re-anchored and re-priced.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If outside the caller's therapist scope
            ConflictException: If a linked invoice was already paid out to the therapist
        """
        try:
            keys = await self._delete(appointment_id, scope)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        invalidate_slots(self.cache, keys)
        return True

    async def _delete(self, appointment_id: int, scope: int | None) -> list[SlotKey]:
        row = await self._fetch(appointment_id)
        _check_scope(row, scope)

        removed = [row]
        if _is_series_parent(row):
            removed.extend(await self._children(row.id))
        removed_ids = {r.id for r in removed}

        invoice_ids = sorted({r.invoice_id for r in removed if r.invoice_id is not None})
        payments = PaymentService(self.db)
        for invoice_id in invoice_ids:
            if await payments.find_for_invoice(invoice_id) is not None:
                raise ConflictException(PAID_OUT_MESSAGE)

        surviving = [
            invoice_id for invoice_id in invoice_ids if await self.invoices.release(invoice_id, removed_ids)
        ]

        await self.db.execute(delete(appointments).where(appointments.c.id.in_(removed_ids)))

        for invoice_id in surviving:
            await self.invoices.reprice(invoice_id)

        logger.info(
            "appointment_deleted",
            appointment_id=appointment_id,
            removed=len(removed_ids),
            invoices_kept=len(surviving),
        )
        return [(r.therapist_id, r.date, r.time) for r in removed]

    async def delete_many(self, ids: list[int], scope: int | None = None) -> BulkDeleteResult:
        """
        Delete each id independently; failures are reported, not raised.

        Children removed with their parent earlier in the same call count as
        deleted.
        """
        results: list[DeleteOutcome] = []
        failures: list[DeleteFailure] = []
        gone: set[int] = set()

        for appointment_id in dict.fromkeys(ids):
            if appointment_id in gone:
                results.append(DeleteOutcome(id=appointment_id))
                continue
            children = select(appointments.c.id).where(
                appointments.c.parent_appointment_id == appointment_id
            )
            child_ids = set((await self.db.execute(children)).scalars().all())
            try:
                await self.delete_one(appointment_id, scope=scope)
            except AppException as exc:
                failures.append(DeleteFailure(id=appointment_id, reason=exc.message))
                continue
            gone |= child_ids
            results.append(DeleteOutcome(id=appointment_id))

        logger.info("bulk_delete_finished", deleted=len(results), failed=len(failures))
        message = (
            "Rendez-vous supprimés" if not failures else "Suppression partielle des rendez-vous"
        )
        return BulkDeleteResult(message=message, results=results, failures=failures)

