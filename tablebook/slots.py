"""Time-slot helpers and the slot filter shown to diners."""
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Callable, Iterable, List

from .config import settings
from .errors import ValidationError
from .models import SLOT_MODE_GENERATED

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")

MINUTES_PER_DAY = 24 * 60


def normalize_time(value: str | time) -> str:
    """Return ``value`` as an ``HH:MM`` string, accepting ``HH:MM:SS`` too."""
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if not isinstance(value, str) or not _TIME_RE.match(value.strip()):
        raise ValidationError(f"Invalid time '{value}'. Use HH:MM")
    return value.strip()[:5]


def to_minutes(value: str) -> int:
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(total: int) -> str:
    total %= MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def generate_time_slots(start: str, end: str, duration_minutes: int) -> List[str]:
    """Build slots from ``start`` up to (not including) ``end``.

    A window whose end is earlier than its start runs past midnight: slots go
    up to 24:00 and continue from 00:00 until ``end``.
    """
    if duration_minutes <= 0:
        raise ValidationError("Slot duration must be positive")
    start_min = to_minutes(start)
    end_min = to_minutes(end)
    if end_min < start_min:
        end_min += MINUTES_PER_DAY

    slots = []
    current = start_min
    while current < end_min:
        slots.append(from_minutes(current))
        current += duration_minutes
    return slots


def candidate_slots_for(restaurant, fixed_slots: List[str] | None = None) -> List[str]:
    """Slots offered before filtering: the fixed public list, or slots built
    from the restaurant's own window when it runs in generated mode."""
    if restaurant.slot_mode == SLOT_MODE_GENERATED:
        return generate_time_slots(
            restaurant.reservation_start_time or "12:00",
            restaurant.reservation_end_time or "22:00",
            restaurant.reservation_duration_minutes or 120,
        )
    if fixed_slots is None:
        fixed_slots = settings.fixed_time_slots
    return [normalize_time(s) for s in fixed_slots]


def is_past(target_date: date, slot: str, now: datetime) -> bool:
    """True when the slot on ``target_date`` is strictly before ``now``."""
    hours, minutes = normalize_time(slot).split(":")
    return datetime.combine(target_date, time(int(hours), int(minutes))) < now


def bookable_slots(
    target_date: date,
    candidate_slots: Iterable[str],
    now: datetime,
    is_available: Callable[[str], bool] | None = None,
) -> List[str]:
    """Drop past-due slots (only when ``target_date`` is today) and slots with
    no availability. Input order is preserved.

    ``is_available`` is None in fallback mode, where every slot that is not in
    the past can be booked.
    """
    is_today = target_date == now.date()
    result = []
    for slot in candidate_slots:
        if is_today and is_past(target_date, slot, now):
            continue
        if is_available is not None and not is_available(slot):
            continue
        result.append(slot)
    return result
