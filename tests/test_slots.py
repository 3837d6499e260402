"""Tests for slot catalogue and wire formats."""

from datetime import date, time

import pytest

from cabinet.core.slots import (
    SLOT_TIMES,
    format_long_date,
    format_session,
    format_slot_time,
    format_wire_date,
    parse_slot_time,
    parse_wire_date,
)


def test_catalogue_skips_lunch_break() -> None:
    assert SLOT_TIMES[0] == time(9, 0)
    assert SLOT_TIMES[-1] == time(17, 0)
    assert time(12, 0) not in SLOT_TIMES
    assert time(12, 30) not in SLOT_TIMES
    assert len(SLOT_TIMES) == 15


@pytest.mark.parametrize("raw", ["15/06/2025", "2025-06-15", " 15/06/2025 "])
def test_parse_wire_date(raw: str) -> None:
    assert parse_wire_date(raw) == date(2025, 6, 15)


@pytest.mark.parametrize("raw", ["31/02/2025", "15-06-2025", "", 20250615])
def test_parse_wire_date_rejects_garbage(raw: object) -> None:
    with pytest.raises(ValueError):
        parse_wire_date(raw)


def test_format_wire_date_pads() -> None:
    assert format_wire_date(date(2025, 3, 5)) == "05/03/2025"


@pytest.mark.parametrize(("raw", "expected"), [("9:00", time(9, 0)), ("09:30", time(9, 30)), ("16:30:00", time(16, 30))])
def test_parse_slot_time(raw: str, expected: time) -> None:
    assert parse_slot_time(raw) == expected


@pytest.mark.parametrize("raw", ["12:00", "9:15", "18:00", "25:00", "nine"])
def test_parse_slot_time_rejects_off_catalogue(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_slot_time(raw)


def test_time_format_has_no_leading_zero() -> None:
    assert format_slot_time(time(9, 0)) == "9:00"
    assert format_slot_time(time(14, 30)) == "14:30"


def test_long_french_dates() -> None:
    assert format_long_date(date(2025, 1, 6)) == "6 janvier 2025"
    assert format_long_date(date(2025, 8, 15)) == "15 août 2025"
    assert format_session(date(2025, 2, 10), time(10, 0)) == "10 février 2025 à 10:00"
