"""Session date sequences for recurring appointments."""

import calendar
from datetime import date, time, timedelta
from enum import Enum

from cabinet.core.slots import format_slot_time, format_wire_date


class RecurrenceFrequency(str, Enum):
    """How often a recurring series repeats."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @classmethod
    def _missing_(cls, value: object) -> "RecurrenceFrequency | None":
        # The front office still sends the French labels
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if lowered in (member.value, FREQUENCY_LABELS[member]):
                    return member
        return None

    @property
    def label(self) -> str:
        return FREQUENCY_LABELS[self]


FREQUENCY_LABELS = {
    RecurrenceFrequency.WEEKLY: "hebdomadaire",
    RecurrenceFrequency.BIWEEKLY: "bimensuel",
    RecurrenceFrequency.MONTHLY: "mensuel",
}


def add_months(base: date, months: int) -> date:
    """Advance by calendar months, clamping the day to the target month."""
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _monthly_occurrence(base: date, months: int) -> date:
    """
    Same weekday as ``base``, roughly ``months`` months later.

    The naive month advance is moved forward to the base weekday. When that
    would spill into the following month the session is taken one week
    earlier instead, so some months land a week before the naive date.
    """
    candidate = add_months(base, months)
    delta = (base.weekday() - candidate.weekday()) % 7
    if delta == 0:
        return candidate

    shifted = candidate + timedelta(days=delta)
    if shifted.month != candidate.month:
        shifted -= timedelta(days=7)
    return shifted


def generate_dates(base: date, frequency: RecurrenceFrequency | str, count: int) -> list[date]:
    """
    Compute the session dates of a series.

    Args:
        base: First session; always element 0
        frequency: Weekly, biweekly or monthly
        count: Number of sessions; anything below 2 yields only ``base``

    Returns:
        Chronological list of ``max(count, 1)`` dates
    """
    frequency = RecurrenceFrequency(frequency)
    dates = [base]

    for i in range(1, count):
        if frequency is RecurrenceFrequency.WEEKLY:
            dates.append(base + timedelta(weeks=i))
        elif frequency is RecurrenceFrequency.BIWEEKLY:
            dates.append(base + timedelta(weeks=2 * i))
        else:
            dates.append(_monthly_occurrence(base, i))

    return dates


def generate(
    base_date: date,
    at: time,
    frequency: RecurrenceFrequency | str,
    count: int,
) -> list[str]:
    """Session list rendered as ``DD/MM/YYYY à H:MM`` strings."""
    slot = format_slot_time(at)
    return [f"{format_wire_date(d)} à {slot}" for d in generate_dates(base_date, frequency, count)]
