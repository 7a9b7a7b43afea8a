"""Owner-side management of restaurants, tables, pricing, closures and limits."""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError, ValidationError
from .gateway import DataStoreGateway, parse_location
from .models import (
    Closure, PricingTier, ReservationLimit, Restaurant, Table, TableType,
    TABLE_ACTIVE, TABLE_ARCHIVED
)
from .pricing import validate_tier
from .schemas import (
    ClosureCreate, PricingTierCreate, ReservationLimitCreate, RestaurantCreate,
    RestaurantUpdate, TableCreate, TableTypeCreate
)
from .slots import normalize_time, to_minutes

logger = logging.getLogger(__name__)

MIN_SLOT_DURATION = 15
MAX_SLOT_DURATION = 480
MAX_BULK_TABLES = 100

# Restaurant fields an update may clear by sending null
CLEARABLE_RESTAURANT_FIELDS = {"address", "location", "owner_email", "phone"}


def _validate_window(start: str, end: str, duration: int):
    start, end = normalize_time(start), normalize_time(end)
    if end == "00:00":
        raise ValidationError("End time cannot be 12 AM (00:00)")
    if start == end:
        raise ValidationError("Start and end time cannot be the same")
    if not MIN_SLOT_DURATION <= duration <= MAX_SLOT_DURATION:
        raise ValidationError(
            f"Slot duration must be between {MIN_SLOT_DURATION} and {MAX_SLOT_DURATION} minutes"
        )
    return start, end


class ManagementService:
    def __init__(self, db: Session):
        self.db = db
        self.store = DataStoreGateway(db)

    def _save(self, obj, action: str):
        try:
            with self.store.guarded(action):
                self.db.add(obj)
                self.db.commit()
                self.db.refresh(obj)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Constraint violation while %s: %s", action, e.orig)
            raise ConflictError() from e
        return obj

    def _delete(self, obj, action: str):
        try:
            with self.store.guarded(action):
                self.db.delete(obj)
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Constraint violation while %s: %s", action, e.orig)
            raise ConflictError() from e

    def _owned(self, model, obj_id: int, restaurant_id: int):
        with self.store.guarded(f"loading {model.__tablename__}"):
            obj = self.db.get(model, obj_id)
        if obj is None or obj.restaurant_id != restaurant_id:
            raise NotFoundError(f"{model.__name__} {obj_id} not found")
        return obj

    # Restaurants

    def create_restaurant(self, data: RestaurantCreate) -> Restaurant:
        start, end = _validate_window(
            data.reservation_start_time, data.reservation_end_time, data.reservation_duration_minutes
        )
        coordinates = parse_location(data.location)
        restaurant = Restaurant(
            **data.model_dump(exclude={"location", "reservation_start_time", "reservation_end_time"}),
            reservation_start_time=start,
            reservation_end_time=end,
            latitude=coordinates.latitude if coordinates else None,
            longitude=coordinates.longitude if coordinates else None,
        )
        self._save(restaurant, "creating restaurant")
        logger.info("Restaurant %s created: %s", restaurant.id, restaurant.name)
        return restaurant

    def update_restaurant(self, restaurant_id: int, data: RestaurantUpdate) -> Restaurant:
        restaurant = self.store.get_restaurant(restaurant_id)
        changes = data.model_dump(exclude_unset=True)
        cleared = sorted(k for k, v in changes.items() if v is None and k not in CLEARABLE_RESTAURANT_FIELDS)
        if cleared:
            raise ValidationError(f"These fields cannot be empty: {', '.join(cleared)}")

        if "location" in changes:
            coordinates = parse_location(changes.pop("location"))
            restaurant.latitude = coordinates.latitude if coordinates else None
            restaurant.longitude = coordinates.longitude if coordinates else None

        window_keys = {"reservation_start_time", "reservation_end_time", "reservation_duration_minutes"}
        if window_keys & changes.keys():
            start, end = _validate_window(
                changes.get("reservation_start_time", restaurant.reservation_start_time),
                changes.get("reservation_end_time", restaurant.reservation_end_time),
                changes.get("reservation_duration_minutes", restaurant.reservation_duration_minutes),
            )
            changes["reservation_start_time"] = start
            changes["reservation_end_time"] = end

        for key, value in changes.items():
            setattr(restaurant, key, value)
        return self._save(restaurant, "updating restaurant")

    def set_booking_cost(self, restaurant_id: int, booking_cost: Optional[int]) -> Restaurant:
        """Set or clear (None) the flat deposit"""
        if booking_cost is not None and booking_cost < 0:
            raise ValidationError("Booking cost must be a non-negative number")
        restaurant = self.store.get_restaurant(restaurant_id)
        restaurant.booking_cost = booking_cost
        return self._save(restaurant, "updating booking cost")

    # Table types and tables

    def add_table_type(self, restaurant_id: int, data: TableTypeCreate) -> TableType:
        self.store.get_restaurant(restaurant_id)
        if not data.name.strip():
            raise ValidationError("Table type name is required")
        if data.capacity < 1:
            raise ValidationError("Capacity must be at least 1")
        table_type = TableType(restaurant_id=restaurant_id, **data.model_dump())
        return self._save(table_type, "adding table type")

    def list_table_types(self, restaurant_id: int) -> List[TableType]:
        with self.store.guarded("listing table types"):
            return self.db.query(TableType).filter(
                TableType.restaurant_id == restaurant_id
            ).order_by(TableType.capacity).all()

    def delete_table_type(self, restaurant_id: int, table_type_id: int):
        table_type = self._owned(TableType, table_type_id, restaurant_id)
        with self.store.guarded("checking table type usage"):
            in_use = self.db.query(Table.id).filter(Table.table_type_id == table_type_id).first()
        if in_use is not None:
            raise ConflictError("Cannot delete table type - tables are assigned to it")
        self._delete(table_type, "deleting table type")

    def list_tables(self, restaurant_id: int, include_archived: bool = False) -> List[Table]:
        if not include_archived:
            return self.store.active_tables(restaurant_id)
        with self.store.guarded("listing tables"):
            return self.db.query(Table).filter(Table.restaurant_id == restaurant_id).all()

    def add_tables(self, restaurant_id: int, data: TableCreate) -> List[Table]:
        """Add one table, or n tables numbered 1..n when the number given is n > 1"""
        self.store.get_restaurant(restaurant_id)
        self._owned(TableType, data.table_type_id, restaurant_id)
        number = (data.table_number or "").strip()
        if not number:
            raise ValidationError("Table number is required")

        numbers = [number]
        if number.isdigit() and int(number) > 1:
            if int(number) > MAX_BULK_TABLES:
                raise ValidationError(f"At most {MAX_BULK_TABLES} tables can be created at once")
            numbers = [str(i + 1) for i in range(int(number))]
        taken = {t.table_number for t in self.store.active_tables(restaurant_id)}
        clashes = sorted(set(numbers) & taken)
        if clashes:
            raise ConflictError(f"Table number(s) already in use: {', '.join(clashes)}")

        tables = [
            Table(
                restaurant_id=restaurant_id,
                table_type_id=data.table_type_id,
                table_number=n,
                position_description=data.position_description,
                status=TABLE_ACTIVE,
            )
            for n in numbers
        ]
        with self.store.guarded("adding tables"):
            self.db.add_all(tables)
            self.db.commit()
            for table in tables:
                self.db.refresh(table)
        logger.info("Added %d table(s) to restaurant %s", len(tables), restaurant_id)
        return tables

    def remove_table(self, restaurant_id: int, table_id: int) -> str:
        """Hard-delete a table that was never reserved, otherwise archive it.

        Returns "deleted" or "archived".
        """
        table = self._owned(Table, table_id, restaurant_id)
        if self.store.table_has_reservations(table_id):
            table.status = TABLE_ARCHIVED
            self._save(table, "archiving table")
            logger.info("Table %s archived to keep its reservation history", table_id)
            return "archived"
        self._delete(table, "deleting table")
        return "deleted"

    # Pricing tiers

    def add_pricing_tier(self, restaurant_id: int, data: PricingTierCreate) -> PricingTier:
        self.store.get_restaurant(restaurant_id)
        validate_tier(self.store.pricing_tiers(restaurant_id), data.min_people, data.max_people, data.cost)
        tier = PricingTier(restaurant_id=restaurant_id, **data.model_dump())
        return self._save(tier, "adding pricing tier")

    def delete_pricing_tier(self, restaurant_id: int, tier_id: int):
        self._delete(self._owned(PricingTier, tier_id, restaurant_id), "deleting pricing tier")

    # Closures

    def add_closure(self, restaurant_id: int, data: ClosureCreate) -> Closure:
        self.store.get_restaurant(restaurant_id)
        if data.is_recurring:
            if data.day_of_week is None:
                raise ValidationError("Please select a recurring day")
            closure_date, weekday = None, data.day_of_week
        else:
            if data.date is None:
                raise ValidationError("Please select either a specific date or a recurring day")
            closure_date, weekday = data.date, None

        start = end = None
        if not data.is_all_day:
            if not data.start_time or not data.end_time:
                raise ValidationError("Partial closures need a start and end time")
            start, end = normalize_time(data.start_time), normalize_time(data.end_time)
            if to_minutes(start) >= to_minutes(end):
                raise ValidationError("End time must be after start time")

        closure = Closure(
            restaurant_id=restaurant_id,
            date=closure_date,
            is_recurring=data.is_recurring,
            day_of_week=weekday,
            is_all_day=data.is_all_day,
            start_time=start,
            end_time=end,
            reason=data.reason,
        )
        return self._save(closure, "adding closure")

    def list_closures(self, restaurant_id: int) -> List[Closure]:
        self.store.get_restaurant(restaurant_id)
        return self.store.closures(restaurant_id)

    def delete_closure(self, restaurant_id: int, closure_id: int):
        self._delete(self._owned(Closure, closure_id, restaurant_id), "deleting closure")

    # Reservation limits

    def add_reservation_limit(self, restaurant_id: int, data: ReservationLimitCreate) -> ReservationLimit:
        self.store.get_restaurant(restaurant_id)
        start, end = normalize_time(data.start_time), normalize_time(data.end_time)
        if to_minutes(start) >= to_minutes(end):
            raise ValidationError("End time must be after start time")
        if data.max_reservations < 1:
            raise ValidationError("Maximum reservations must be at least 1")
        limit = ReservationLimit(
            restaurant_id=restaurant_id,
            date=data.date,
            start_time=start,
            end_time=end,
            max_reservations=data.max_reservations,
        )
        return self._save(limit, "adding reservation limit")

    def update_reservation_limit(self, restaurant_id: int, limit_id: int, max_reservations: int) -> ReservationLimit:
        if max_reservations < 1:
            raise ValidationError("Maximum reservations must be at least 1")
        limit = self._owned(ReservationLimit, limit_id, restaurant_id)
        limit.max_reservations = max_reservations
        return self._save(limit, "updating reservation limit")

    def delete_reservation_limit(self, restaurant_id: int, limit_id: int):
        self._delete(self._owned(ReservationLimit, limit_id, restaurant_id), "deleting reservation limit")
