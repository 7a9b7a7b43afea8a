"""
Booking guard tests: double booking, races, closures, limits and deposits
"""
import logging
from datetime import datetime

import pytest

from tablebook import reservation_service
from tablebook.errors import (
    DuplicateBooking, PaymentFailed, ReservationLimitReached, RestaurantClosed,
    TableNoLongerAvailable, ValidationError
)
from tablebook.models import ASSIGNMENT_AUTOMATIC, Customer, Reservation, ReservationLimit
from tablebook.payments import PaymentGateway
from tablebook.reservation_service import ReservationService
from tablebook.schemas import ReservationCreate

from conftest import BOOKING_DATE, FakeNotifier

NOW = datetime(2030, 5, 20, 9, 0)


def booking(restaurant, table=None, **overrides):
    fields = dict(
        restaurant_id=restaurant.id,
        table_id=table.id if table is not None else None,
        name="Ama Mensah",
        email="ama@example.com",
        phone="0201234567",
        date=BOOKING_DATE,
        time="19:00",
        party_size=2,
    )
    fields.update(overrides)
    return ReservationCreate(**fields)


class DecliningGateway(PaymentGateway):
    def charge(self, amount, currency, email, reference=None):
        raise PaymentFailed()


def test_commit_writes_reservation_and_notifies_both_parties(service, notifier, restaurant, make_table):
    table = make_table(restaurant, 1, 2)

    reservation = service.commit_reservation(booking(restaurant, table), now=NOW)

    assert reservation.id is not None
    assert reservation.table_id == table.id
    assert reservation.time == "19:00"
    assert reservation.cost == 0
    assert notifier.sent == [("owner", reservation.id), ("booker", reservation.id)]


def test_same_table_twice_is_rejected(service, restaurant, make_table):
    table = make_table(restaurant, 1, 2)
    service.commit_reservation(booking(restaurant, table), now=NOW)

    with pytest.raises(TableNoLongerAvailable):
        service.commit_reservation(booking(restaurant, table, email="kofi@example.com", name="Kofi"), now=NOW)


def test_same_guest_same_slot_is_a_duplicate(service, restaurant, make_table):
    first, second = make_table(restaurant, 1, 2), make_table(restaurant, 2, 2)
    service.commit_reservation(booking(restaurant, first), now=NOW)

    with pytest.raises(DuplicateBooking):
        service.commit_reservation(booking(restaurant, second, email="AMA@example.com"), now=NOW)


def test_duplicate_check_spans_restaurants_by_user_id(db, service, restaurant, make_table):
    from tablebook.models import Restaurant
    other = Restaurant(name="Other Place", owner_email="owner@other.example")
    db.add(other)
    db.commit()
    service.commit_reservation(booking(restaurant, make_table(restaurant, 1, 2), user_id="u-42"), now=NOW)

    with pytest.raises(DuplicateBooking):
        service.commit_reservation(
            booking(other, make_table(other, 1, 2), user_id="u-42", email="second@example.com"), now=NOW
        )


def test_cancelled_booking_does_not_count_as_duplicate(service, restaurant, make_table):
    table = make_table(restaurant, 1, 2)
    first = service.commit_reservation(booking(restaurant, table), now=NOW)
    service.cancel_reservation(first.id)

    again = service.commit_reservation(booking(restaurant, table), now=NOW)

    assert again.id != first.id


def test_lost_race_is_caught_by_unique_index(session_factory, monkeypatch, restaurant, make_table):
    table = make_table(restaurant, 1, 4)
    real_find = reservation_service.find_available_tables

    # The first guest's check ran before the second guest's write landed
    def stale_view(tables, reservations, party_size, editing_reservation_id=None):
        return real_find(tables, [], party_size, editing_reservation_id)

    winner_session, loser_session = session_factory(), session_factory()
    try:
        winner = ReservationService(winner_session, notifier=FakeNotifier())
        loser = ReservationService(loser_session, notifier=FakeNotifier())

        winner.commit_reservation(booking(restaurant, table, email="kofi@example.com"), now=NOW)
        monkeypatch.setattr(reservation_service, "find_available_tables", stale_view)

        with pytest.raises(TableNoLongerAvailable):
            loser.commit_reservation(booking(restaurant, table), now=NOW)
    finally:
        winner_session.close()
        loser_session.close()

    check = session_factory()
    try:
        live = check.query(Reservation).filter_by(table_id=table.id, cancelled=False).all()
        assert [r.email for r in live] == ["kofi@example.com"]
    finally:
        check.close()


def test_lost_race_after_payment_logs_refund(session_factory, monkeypatch, caplog, db, restaurant, make_table):
    restaurant.booking_cost = 40
    db.commit()
    table = make_table(restaurant, 1, 4)
    real_find = reservation_service.find_available_tables
    session = session_factory()
    try:
        ReservationService(session, notifier=FakeNotifier()).commit_reservation(
            booking(restaurant, table, email="kofi@example.com"), now=NOW
        )
    finally:
        session.close()

    monkeypatch.setattr(
        reservation_service, "find_available_tables",
        lambda tables, reservations, party_size, editing_reservation_id=None: real_find(tables, [], party_size),
    )
    service = ReservationService(db, notifier=FakeNotifier())

    with caplog.at_level(logging.ERROR, logger="tablebook.reservation_service"):
        with pytest.raises(TableNoLongerAvailable):
            service.commit_reservation(booking(restaurant, table), now=NOW)

    assert "refund required" in caplog.text


def test_fallback_mode_books_without_a_table(service, restaurant):
    first = service.commit_reservation(booking(restaurant, party_size=40), now=NOW)
    second = service.commit_reservation(booking(restaurant, email="kofi@example.com", name="Kofi"), now=NOW)

    assert first.table_id is None
    assert second.table_id is None


def test_manual_mode_requires_a_table(service, restaurant, make_table):
    make_table(restaurant, 1, 2)

    with pytest.raises(ValidationError):
        service.commit_reservation(booking(restaurant), now=NOW)


def test_automatic_mode_picks_the_smallest_table(db, service, restaurant, make_table):
    restaurant.table_assignment_mode = ASSIGNMENT_AUTOMATIC
    db.commit()
    make_table(restaurant, 1, 6)
    small = make_table(restaurant, 2, 2)

    reservation = service.commit_reservation(booking(restaurant), now=NOW)

    assert reservation.table_id == small.id


def test_automatic_mode_with_no_fitting_table(db, service, restaurant, make_table):
    restaurant.table_assignment_mode = ASSIGNMENT_AUTOMATIC
    db.commit()
    make_table(restaurant, 1, 2)

    with pytest.raises(TableNoLongerAvailable):
        service.commit_reservation(booking(restaurant, party_size=5), now=NOW)


def test_table_too_small_is_rejected(service, restaurant, make_table):
    table = make_table(restaurant, 1, 2)

    with pytest.raises(TableNoLongerAvailable):
        service.commit_reservation(booking(restaurant, table, party_size=3), now=NOW)


@pytest.mark.parametrize("overrides", [
    {"name": ""},
    {"name": "   "},
    {"email": None},
    {"party_size": 0},
    {"time": "7pm"},
])
def test_missing_or_malformed_details(service, restaurant, overrides):
    with pytest.raises(ValidationError):
        service.commit_reservation(booking(restaurant, **overrides), now=NOW)


def test_past_slot_today_is_rejected(service, restaurant):
    now = datetime.combine(BOOKING_DATE, datetime.min.time()).replace(hour=20)

    with pytest.raises(ValidationError):
        service.commit_reservation(booking(restaurant, time="19:00"), now=now)


def test_closed_date_is_rejected(service, restaurant, add_closure):
    add_closure(restaurant, date=BOOKING_DATE, is_all_day=True)

    with pytest.raises(RestaurantClosed):
        service.commit_reservation(booking(restaurant), now=NOW)


def test_partial_closure_only_blocks_its_hours(service, restaurant, add_closure):
    add_closure(restaurant, date=BOOKING_DATE, is_all_day=False, start_time="12:00", end_time="15:00")

    with pytest.raises(RestaurantClosed):
        service.commit_reservation(booking(restaurant, time="13:00"), now=NOW)
    assert service.commit_reservation(booking(restaurant, time="19:00"), now=NOW).id


def test_reservation_limit(db, service, restaurant):
    db.add(ReservationLimit(restaurant_id=restaurant.id, date=BOOKING_DATE,
                            start_time="18:00", end_time="21:00", max_reservations=1))
    db.commit()
    service.commit_reservation(booking(restaurant, time="18:00"), now=NOW)

    with pytest.raises(ReservationLimitReached):
        service.commit_reservation(booking(restaurant, email="kofi@example.com", time="20:00"), now=NOW)


def test_deposit_is_charged_from_matching_tier(service, payments, restaurant, add_tier):
    add_tier(restaurant, 1, 4, 50)
    add_tier(restaurant, 5, 12, 150)

    reservation = service.commit_reservation(booking(restaurant, party_size=6), now=NOW)

    assert reservation.cost == 150
    assert reservation.payment_reference
    assert payments.charges == [(150, "GHS", "ama@example.com")]


def test_no_charge_when_cost_is_zero(service, payments, restaurant):
    service.commit_reservation(booking(restaurant), now=NOW)

    assert payments.charges == []


def test_failed_payment_writes_nothing(db, notifier, restaurant):
    restaurant.booking_cost = 30
    db.commit()
    service = ReservationService(db, payment_gateway=DecliningGateway(), notifier=notifier)

    with pytest.raises(PaymentFailed):
        service.commit_reservation(booking(restaurant), now=NOW)

    assert db.query(Reservation).count() == 0
    assert notifier.sent == []


def test_notification_failure_keeps_the_reservation(db, restaurant, payments, caplog):
    service = ReservationService(db, payment_gateway=payments, notifier=FakeNotifier(succeed=False))

    with caplog.at_level(logging.ERROR, logger="tablebook.reservation_service"):
        reservation = service.commit_reservation(booking(restaurant), now=NOW)

    assert db.get(Reservation, reservation.id) is not None
    assert "Owner notification failed" in caplog.text
    assert "Booker confirmation failed" in caplog.text


def test_customer_record_is_upserted(db, service, restaurant, add_tier):
    add_tier(restaurant, 1, 10, 25)
    service.commit_reservation(booking(restaurant, time="12:00"), now=NOW)
    service.commit_reservation(booking(restaurant, time="19:00", email="Ama@Example.com"), now=NOW)

    customers = db.query(Customer).filter_by(restaurant_id=restaurant.id).all()

    assert len(customers) == 1
    assert customers[0].visits == 2
    assert customers[0].total_spend == 50
    assert customers[0].last_visit == BOOKING_DATE


def test_cancel_is_idempotent(service, notifier, restaurant):
    reservation = service.commit_reservation(booking(restaurant), now=NOW)

    service.cancel_reservation(reservation.id)
    again = service.cancel_reservation(reservation.id)

    assert again.cancelled is True
    assert [kind for kind, _ in notifier.sent].count("cancellation") == 1


def test_cancelled_reservation_cannot_be_marked_attended(service, restaurant):
    reservation = service.commit_reservation(booking(restaurant), now=NOW)
    service.cancel_reservation(reservation.id, send_notice=False)

    with pytest.raises(ValidationError):
        service.mark_attended(reservation.id)


def test_reassign_to_a_free_table(service, restaurant, make_table):
    first, second = make_table(restaurant, 1, 4), make_table(restaurant, 2, 4)
    reservation = service.commit_reservation(booking(restaurant, first), now=NOW)

    moved = service.reassign_table(reservation.id, second.id)

    assert moved.table_id == second.id


def test_reassign_to_a_taken_table_fails(service, restaurant, make_table):
    first, second = make_table(restaurant, 1, 4), make_table(restaurant, 2, 4)
    reservation = service.commit_reservation(booking(restaurant, first), now=NOW)
    service.commit_reservation(booking(restaurant, second, email="kofi@example.com"), now=NOW)

    with pytest.raises(TableNoLongerAvailable):
        service.reassign_table(reservation.id, second.id)


def test_reminders_cover_the_coming_window(service, notifier, restaurant, make_reservation):
    soon = make_reservation(restaurant, time="10:30")
    make_reservation(restaurant, time="19:00", email="later@example.com")
    make_reservation(restaurant, time="10:00", email="gone@example.com", cancelled=True)
    now = datetime.combine(BOOKING_DATE, datetime.min.time()).replace(hour=9)

    results = service.send_reminders(now=now, window_minutes=120)

    assert results == [(soon.id, True)]
    assert notifier.sent == [("reminder", soon.id)]


@pytest.mark.parametrize("time", ["18:15", "04:00"])
def test_time_off_the_slot_grid_is_rejected(service, restaurant, make_table, make_reservation, time):
    table = make_table(restaurant, 1, 4)
    make_reservation(restaurant, table, time="18:00")

    with pytest.raises(ValidationError):
        service.commit_reservation(booking(restaurant, table, time=time), now=NOW)
    assert [r.time for r in service.list_reservations(restaurant.id)] == ["18:00"]


def test_generated_slot_grid_is_enforced(db, service, restaurant):
    restaurant.slot_mode = "generated"
    restaurant.reservation_start_time = "17:00"
    restaurant.reservation_end_time = "21:00"
    restaurant.reservation_duration_minutes = 90
    db.commit()

    assert service.commit_reservation(booking(restaurant, time="18:30"), now=NOW).time == "18:30"
    with pytest.raises(ValidationError):
        service.commit_reservation(booking(restaurant, time="18:00", email="kofi@example.com"), now=NOW)


def test_closure_is_reported_before_duplicate(service, restaurant, add_closure):
    service.commit_reservation(booking(restaurant), now=NOW)
    add_closure(restaurant, date=BOOKING_DATE, is_all_day=True)

    with pytest.raises(RestaurantClosed):
        service.commit_reservation(booking(restaurant), now=NOW)


def test_missing_details_are_reported_before_closure(service, restaurant, add_closure):
    add_closure(restaurant, date=BOOKING_DATE, is_all_day=True)

    with pytest.raises(ValidationError):
        service.commit_reservation(booking(restaurant, name=""), now=NOW)


def test_duplicate_is_reported_before_taken_table(service, restaurant, make_table):
    table = make_table(restaurant, 1, 2)
    service.commit_reservation(booking(restaurant, table), now=NOW)

    with pytest.raises(DuplicateBooking):
        service.commit_reservation(booking(restaurant, table), now=NOW)


def test_reassign_in_fallback_mode(service, restaurant):
    reservation = service.commit_reservation(booking(restaurant), now=NOW)

    with pytest.raises(ValidationError):
        service.reassign_table(reservation.id, 1)
    assert service.reassign_table(reservation.id, None).table_id is None


def test_thank_you_goes_to_attended_guests_only(service, notifier, restaurant, make_reservation):
    yesterday = BOOKING_DATE
    came = make_reservation(restaurant, on=yesterday, time="19:00", attended=True)
    make_reservation(restaurant, on=yesterday, time="20:00", email="noshow@example.com")
    make_reservation(restaurant, on=yesterday, time="12:00", email="gone@example.com",
                     cancelled=True, attended=True)

    results = service.send_thank_you_emails(on=yesterday)

    assert results == [(came.id, True)]
    assert notifier.sent == [("thank-you", came.id)]
