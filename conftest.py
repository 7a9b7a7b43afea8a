import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ.pop("PAYMENT_CHARGE_URL", None)

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from tablebook.database import get_db, make_engine  # noqa: E402
from tablebook.main import app  # noqa: E402
from tablebook.models import (  # noqa: E402
    Base, Closure, PricingTier, Reservation, Restaurant, Table, TableType
)
from tablebook.payments import NullPaymentGateway  # noqa: E402
from tablebook.reservation_service import ReservationService  # noqa: E402

BOOKING_DATE = date(2030, 6, 1)  # a Saturday


class FakeNotifier:
    """Records notifications instead of sending mail"""

    def __init__(self, succeed=True, refused=()):
        self.succeed = succeed
        self.refused = set(refused)
        self.sent = []

    def _record(self, kind, reservation):
        self.sent.append((kind, reservation.id))
        return self.succeed

    def send_owner_notification(self, restaurant, reservation):
        return self._record("owner", reservation)

    def send_confirmation_email(self, restaurant, reservation):
        return self._record("booker", reservation)

    def send_cancellation_email(self, restaurant, reservation):
        return self._record("cancellation", reservation)

    def send_reminder_email(self, restaurant, reservation):
        return self._record("reminder", reservation)

    def send_thank_you_email(self, restaurant, reservation):
        return self._record("thank-you", reservation)

    def send_marketing_email(self, restaurant, customer, subject, message):
        self.sent.append(("campaign", customer.email))
        return self.succeed and customer.email not in self.refused


class RecordingGateway(NullPaymentGateway):
    def __init__(self):
        self.charges = []

    def charge(self, amount, currency, email, reference=None):
        self.charges.append((amount, currency, email))
        return super().charge(amount, currency, email, reference)


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'tablebook.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def payments():
    return RecordingGateway()


@pytest.fixture
def service(db, notifier, payments):
    return ReservationService(db, payment_gateway=payments, notifier=notifier)


@pytest.fixture
def restaurant(db):
    r = Restaurant(name="Test Bistro", owner_email="owner@bistro.example", currency="GHS")
    db.add(r)
    db.commit()
    return r


@pytest.fixture
def make_table(db):
    def _make(restaurant, number, capacity, type_name=None):
        table_type = db.query(TableType).filter_by(
            restaurant_id=restaurant.id, capacity=capacity
        ).first()
        if table_type is None:
            table_type = TableType(restaurant_id=restaurant.id, name=type_name or f"{capacity}-seater",
                                   capacity=capacity)
            db.add(table_type)
            db.flush()
        table = Table(restaurant_id=restaurant.id, table_type_id=table_type.id, table_number=str(number))
        db.add(table)
        db.commit()
        return table
    return _make


@pytest.fixture
def make_reservation(db):
    def _make(restaurant, table=None, on=BOOKING_DATE, time="18:00", party_size=2,
              email="guest@example.com", cancelled=False, **extra):
        reservation = Reservation(
            restaurant_id=restaurant.id,
            table_id=table.id if table is not None else None,
            name=extra.pop("name", "Guest"),
            email=email,
            date=on,
            time=time,
            party_size=party_size,
            cancelled=cancelled,
            **extra,
        )
        db.add(reservation)
        db.commit()
        return reservation
    return _make


@pytest.fixture
def add_tier(db):
    def _add(restaurant, min_people, max_people, cost):
        tier = PricingTier(restaurant_id=restaurant.id, min_people=min_people,
                           max_people=max_people, cost=cost)
        db.add(tier)
        db.commit()
        return tier
    return _add


@pytest.fixture
def add_closure(db):
    def _add(restaurant, **fields):
        closure = Closure(restaurant_id=restaurant.id, **fields)
        db.add(closure)
        db.commit()
        return closure
    return _add


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
