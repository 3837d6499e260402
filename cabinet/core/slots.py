"""Slot catalogue and wire formats for dates and times.

Dates travel as ``DD/MM/YYYY`` and times as ``H:MM`` (no leading zero on
the hour). Bookable times come from a fixed half-hour catalogue with a lunch
break between 12:00 and 13:00.
"""

import re
from datetime import date, datetime, time

SLOT_TIMES: tuple[time, ...] = tuple(
    time(hour, minute)
    for hour in range(9, 18)
    for minute in (0, 30)
    if not (hour == 12 or (hour == 17 and minute == 30))
)

FRENCH_MONTHS = (
    "janvier",
    "février",
    "mars",
    "avril",
    "mai",
    "juin",
    "juillet",
    "août",
    "septembre",
    "octobre",
    "novembre",
    "décembre",
)

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::00)?$")


def parse_wire_date(value: object) -> date:
    """Parse ``DD/MM/YYYY`` (or ISO ``YYYY-MM-DD``) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Date must be a string in DD/MM/YYYY format")

    raw = value.strip()
    try:
        return datetime.strptime(raw, "%d/%m/%Y").date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected DD/MM/YYYY") from None


def format_wire_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def parse_slot_time(value: object) -> time:
    """Parse ``H:MM``/``HH:MM`` and require a catalogue slot."""
    if isinstance(value, time):
        parsed = value.replace(second=0, microsecond=0)
    elif isinstance(value, str):
        match = _TIME_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid time '{value}', expected H:MM")
        try:
            parsed = time(int(match.group(1)), int(match.group(2)))
        except ValueError:
            raise ValueError(f"Invalid time '{value}', expected H:MM") from None
    else:
        raise ValueError("Time must be a string in H:MM format")

    if parsed not in SLOT_TIMES:
        raise ValueError(f"{format_slot_time(parsed)} is not a bookable slot")
    return parsed


def format_slot_time(value: time) -> str:
    return f"{value.hour}:{value.minute:02d}"


def format_long_date(value: date) -> str:
    """French long form, e.g. ``6 janvier 2025``."""
    return f"{value.day} {FRENCH_MONTHS[value.month - 1]} {value.year}"


def format_session(value: date, at: time) -> str:
    """``6 janvier 2025 à 10:00`` as printed on invoices."""
    return f"{format_long_date(value)} à {format_slot_time(at)}"
