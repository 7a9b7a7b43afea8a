"""Which tables can seat a party at a given slot.

Functions here work on rows that were already fetched; they never touch the
session themselves.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .models import Table, TableType


@dataclass(frozen=True)
class AvailableTable:
    table: Table
    table_type: TableType

    @property
    def capacity(self) -> int:
        return self.table_type.capacity


def _table_sort_key(option: AvailableTable):
    number = option.table.table_number or ""
    if number.isdigit():
        return (option.capacity, 0, int(number), "")
    return (option.capacity, 1, 0, number)


def conflicting_table_ids(reservations: Iterable, editing_reservation_id: Optional[int] = None) -> set:
    """Table ids held by live reservations other than the one being edited"""
    return {
        r.table_id for r in reservations
        if r.table_id is not None and not r.cancelled and r.id != editing_reservation_id
    }


def find_available_tables(
    tables: Iterable[Table],
    reservations: Iterable,
    party_size: int,
    editing_reservation_id: Optional[int] = None,
) -> List[AvailableTable]:
    """Active tables that seat ``party_size`` and are not reserved.

    ``reservations`` must be the reservations for the exact date and time
    being checked. A reservation that is being moved
    (``editing_reservation_id``) never conflicts with its own table.
    """
    held = conflicting_table_ids(reservations, editing_reservation_id)
    options = [
        AvailableTable(table=t, table_type=t.table_type)
        for t in tables
        if t.is_active
        and t.table_type is not None
        and t.table_type.capacity >= party_size
        and t.id not in held
    ]
    return sorted(options, key=_table_sort_key)


def has_exact_match(options: Iterable[AvailableTable], party_size: int) -> bool:
    """False means only larger tables are on offer"""
    return any(option.capacity == party_size for option in options)


def smallest_fit(options: List[AvailableTable]) -> Optional[AvailableTable]:
    """Pick for automatic table assignment"""
    return options[0] if options else None
