"""Closure rules: specific dates and recurring weekdays, all day or partial."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List

from .slots import normalize_time, to_minutes


def day_of_week(value: date) -> int:
    """Weekday number with Sunday as 0, the convention closures are stored in"""
    return (value.weekday() + 1) % 7


def closure_matches_date(closure, value: date) -> bool:
    if closure.date is not None and closure.date == value:
        return True
    return bool(closure.is_recurring) and closure.day_of_week == day_of_week(value)


def closure_covers_time(closure, slot: str) -> bool:
    if closure.is_all_day or not closure.start_time or not closure.end_time:
        return True
    return to_minutes(closure.start_time) <= to_minutes(slot) < to_minutes(closure.end_time)


def is_closed(closures: Iterable, value: date) -> bool:
    """Any closure on the date counts, partial or full.

    Calendar filtering is deliberately conservative; use ``is_closed_at`` when
    the time of day matters.
    """
    return any(closure_matches_date(c, value) for c in closures)


def is_closed_at(closures: Iterable, value: date, slot: str) -> bool:
    slot = normalize_time(slot)
    return any(
        closure_matches_date(c, value) and closure_covers_time(c, slot)
        for c in closures
    )


def is_closed_all_day(closures: Iterable, value: date) -> bool:
    return any(
        closure_matches_date(c, value) and (c.is_all_day or not c.start_time)
        for c in closures
    )


def closed_dates(closures: Iterable, start: date, days: int) -> List[date]:
    """Dates in ``[start, start + days)`` that the date picker should hide"""
    closures = list(closures)
    return [
        start + timedelta(days=offset)
        for offset in range(days)
        if is_closed(closures, start + timedelta(days=offset))
    ]
