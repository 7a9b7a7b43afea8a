from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Float, ForeignKey, Boolean, Text,
    CheckConstraint, Index, false
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

from .config import settings

Base = declarative_base()

TABLE_ACTIVE = "active"
TABLE_ARCHIVED = "archived"

SLOT_MODE_FIXED = "fixed"
SLOT_MODE_GENERATED = "generated"

ASSIGNMENT_AUTOMATIC = "automatic"
ASSIGNMENT_MANUAL = "manual"


class Restaurant(Base):
    """A restaurant and its booking settings"""
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    address = Column(String(255))
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    owner_email = Column(String(120))
    phone = Column(String(20))
    booking_cost = Column(Integer, nullable=True)  # Flat deposit, overridden by tiers
    currency = Column(String(3), default=settings.default_currency)

    # Reservation window, HH:MM
    reservation_start_time = Column(String(5), default="12:00")
    reservation_end_time = Column(String(5), default="22:00")
    reservation_duration_minutes = Column(Integer, default=120)
    slot_mode = Column(String(10), default=SLOT_MODE_FIXED)  # fixed | generated
    table_assignment_mode = Column(String(10), default=ASSIGNMENT_MANUAL)  # automatic | manual

    created_at = Column(DateTime, default=datetime.utcnow)

    table_types = relationship("TableType", back_populates="restaurant")
    tables = relationship("Table", back_populates="restaurant")
    reservations = relationship("Reservation", back_populates="restaurant")


class TableType(Base):
    """A table size defined by the owner (e.g. "Standard", 4 seats)"""
    __tablename__ = "table_types"
    __table_args__ = (CheckConstraint("capacity >= 1", name="ck_table_types_capacity"),)

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    capacity = Column(Integer, nullable=False)
    description = Column(Text)

    restaurant = relationship("Restaurant", back_populates="table_types")
    tables = relationship("Table", back_populates="table_type")


class Table(Base):
    """Restaurant tables; archived tables keep their reservation history"""
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    table_type_id = Column(Integer, ForeignKey("table_types.id"), nullable=False)
    table_number = Column(String(10), nullable=False)
    position_description = Column(String(255))
    status = Column(String(10), default=TABLE_ACTIVE, nullable=False)  # active | archived

    restaurant = relationship("Restaurant", back_populates="tables")
    table_type = relationship("TableType", back_populates="tables")
    reservations = relationship("Reservation", back_populates="table")

    @property
    def is_active(self) -> bool:
        return self.status == TABLE_ACTIVE


class PricingTier(Base):
    """Party-size range mapped to a deposit cost"""
    __tablename__ = "booking_cost_tiers"
    __table_args__ = (CheckConstraint("min_people <= max_people", name="ck_tier_range"),)

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    min_people = Column(Integer, nullable=False)
    max_people = Column(Integer, nullable=False)
    cost = Column(Integer, nullable=False, default=0)


class Closure(Base):
    """A specific date or a recurring weekday on which the restaurant is closed"""
    __tablename__ = "restaurant_closures"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=True)
    is_recurring = Column(Boolean, default=False)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday ... 6 = Saturday
    is_all_day = Column(Boolean, default=True)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    reason = Column(String(255))


class ReservationLimit(Base):
    """Caps the number of reservations taken inside a time window on a date"""
    __tablename__ = "reservation_limits"
    __table_args__ = (CheckConstraint("max_reservations >= 1", name="ck_limit_max"),)

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    max_reservations = Column(Integer, nullable=False, default=10)


class Reservation(Base):
    """Customer reservations"""
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True)  # None in fallback mode
    user_id = Column(String(64), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False)
    phone = Column(String(20))
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM format
    party_size = Column(Integer, nullable=False)
    occasion = Column(String(50))
    special_request = Column(Text)
    cost = Column(Integer, default=0)
    payment_reference = Column(String(100))
    cancelled = Column(Boolean, default=False, nullable=False)
    attended = Column(Boolean, default=False, nullable=False)
    seen = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    restaurant = relationship("Restaurant", back_populates="reservations")
    table = relationship("Table", back_populates="reservations")


# At most one live reservation per table and slot. The insert that loses a
# booking race fails here.
Index(
    "uq_reservations_active_table_slot",
    Reservation.restaurant_id,
    Reservation.table_id,
    Reservation.date,
    Reservation.time,
    unique=True,
    sqlite_where=Reservation.cancelled == false(),
    postgresql_where=Reservation.cancelled == false(),
)


class Customer(Base):
    """Guests of a restaurant, one row per email"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100))
    email = Column(String(100), nullable=False)
    phone = Column(String(20))
    visits = Column(Integer, default=0)
    total_spend = Column(Integer, default=0)
    last_visit = Column(Date, nullable=True)


class EmailCampaign(Base):
    """A marketing email sent to a restaurant's customers"""
    __tablename__ = "email_campaigns"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    subject = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    recipients = Column(Integer, default=0)
    sent = Column(Integer, default=0)
    failed = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
