"""Data store gateway.

All reads and writes the resolvers need go through ``DataStoreGateway`` so
transport failures surface as a single ``DataStoreError`` kind. Location
payloads are normalised here and nowhere else.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .errors import DataStoreError, NotFoundError, TableNoLongerAvailable, ValidationError
from .models import (
    Closure, PricingTier, Reservation, ReservationLimit, Restaurant, Table,
    TABLE_ACTIVE
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90 <= self.latitude <= 90 or not -180 <= self.longitude <= 180:
            raise ValidationError("Coordinates out of range")


def parse_location(value) -> Optional[Coordinates]:
    """Accepts {lat, lng}, {latitude, longitude}, a JSON string of either,
    a "lat,lng" string, or an existing Coordinates value."""
    if value is None or value == "":
        return None
    if isinstance(value, Coordinates):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid location JSON: {e}") from e
        else:
            parts = [p.strip() for p in text.split(",")]
            if len(parts) != 2:
                raise ValidationError("Location must be 'lat,lng'")
            value = {"lat": parts[0], "lng": parts[1]}
    if not isinstance(value, dict):
        raise ValidationError("Unsupported location format")

    lat = value.get("lat", value.get("latitude"))
    lng = value.get("lng", value.get("longitude"))
    if lat is None or lng is None:
        raise ValidationError("Location needs both latitude and longitude")
    try:
        return Coordinates(float(lat), float(lng))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid coordinates: {e}") from e


class DataStoreGateway:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def guarded(self, action: str):
        try:
            yield
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("Data store failure while %s: %s", action, e)
            self.db.rollback()
            raise DataStoreError() from e

    def get_restaurant(self, restaurant_id: int) -> Restaurant:
        with self.guarded("loading restaurant"):
            restaurant = self.db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError(f"Restaurant {restaurant_id} not found")
        return restaurant

    def get_reservation(self, reservation_id: int) -> Reservation:
        with self.guarded("loading reservation"):
            reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    def active_tables(self, restaurant_id: int) -> List[Table]:
        with self.guarded("loading tables"):
            return self.db.query(Table).options(joinedload(Table.table_type)).filter(
                Table.restaurant_id == restaurant_id,
                Table.status == TABLE_ACTIVE,
            ).all()

    def active_reservations(self, restaurant_id: int, on: date, time: str | None = None) -> List[Reservation]:
        with self.guarded("loading reservations"):
            query = self.db.query(Reservation).filter(
                Reservation.restaurant_id == restaurant_id,
                Reservation.date == on,
                Reservation.cancelled == False,  # noqa: E712
            )
            if time is not None:
                query = query.filter(Reservation.time == time)
            return query.all()

    def user_has_booking(self, user_id: str | None, email: str, on: date, time: str) -> bool:
        """Duplicate check across all restaurants, keyed by user id or email"""
        with self.guarded("checking duplicate bookings"):
            query = self.db.query(Reservation.id).filter(
                Reservation.date == on,
                Reservation.time == time,
                Reservation.cancelled == False,  # noqa: E712
            )
            if user_id:
                query = query.filter(Reservation.user_id == user_id)
            else:
                query = query.filter(func.lower(Reservation.email) == email.strip().lower())
            return query.first() is not None

    def closures(self, restaurant_id: int) -> List[Closure]:
        with self.guarded("loading closures"):
            return self.db.query(Closure).filter(
                Closure.restaurant_id == restaurant_id
            ).order_by(Closure.date).all()

    def pricing_tiers(self, restaurant_id: int) -> List[PricingTier]:
        with self.guarded("loading pricing tiers"):
            return self.db.query(PricingTier).filter(
                PricingTier.restaurant_id == restaurant_id
            ).order_by(PricingTier.min_people).all()

    def reservation_limits(self, restaurant_id: int, on: date) -> List[ReservationLimit]:
        with self.guarded("loading reservation limits"):
            return self.db.query(ReservationLimit).filter(
                ReservationLimit.restaurant_id == restaurant_id,
                ReservationLimit.date == on,
            ).order_by(ReservationLimit.start_time).all()

    def table_has_reservations(self, table_id: int) -> bool:
        with self.guarded("checking table history"):
            return self.db.query(Reservation.id).filter(
                Reservation.table_id == table_id
            ).first() is not None

    def add_reservation(self, reservation: Reservation) -> Reservation:
        """Insert inside the caller's transaction. Losing a race on the
        table/slot unique index is reported as TableNoLongerAvailable."""
        try:
            with self.guarded("saving reservation"):
                self.db.add(reservation)
                self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(
                "Unique slot index rejected reservation for table %s on %s %s",
                reservation.table_id, reservation.date, reservation.time,
            )
            raise TableNoLongerAvailable() from e
        return reservation

    def commit(self):
        try:
            with self.guarded("committing"):
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise TableNoLongerAvailable() from e
