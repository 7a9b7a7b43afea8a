from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Iterable, Optional


def _hour_label(slot: str) -> str:
    hour = int(slot.split(":")[0])
    return f"{hour:02d}:00 - {(hour + 1) % 24:02d}:00"


def summarize(reservations: Iterable, today: Optional[date] = None) -> dict:
    """Dashboard numbers for a restaurant's reservations"""
    today = today or date.today()
    reservations = list(reservations)
    live = [r for r in reservations if not r.cancelled]

    hours = Counter(_hour_label(r.time) for r in live)
    peak_hour = None
    if hours:
        # Ties go to the earliest hour
        peak_hour = sorted(hours.items(), key=lambda item: (-item[1], item[0]))[0][0]

    return {
        "total_reservations": len(reservations),
        "cancelled": len(reservations) - len(live),
        "attended": sum(1 for r in live if r.attended),
        "no_shows": sum(1 for r in live if r.date < today and not r.attended),
        "revenue": sum(r.cost or 0 for r in live),
        "unique_customers": len({(r.email or "").strip().lower() for r in live if r.email}),
        "peak_hour": peak_hour,
        "monthly": dict(sorted(Counter(r.date.strftime("%Y-%m") for r in live).items())),
        "party_sizes": dict(sorted(Counter(r.party_size for r in live).items())),
    }
