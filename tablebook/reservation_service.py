from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import notify
from .availability import AvailableTable, find_available_tables, has_exact_match, smallest_fit
from .closures import is_closed_all_day, is_closed_at
from .config import settings
from .errors import (
    DataStoreError, DuplicateBooking, ReservationLimitReached, RestaurantClosed,
    TableNoLongerAvailable, ValidationError
)
from .gateway import DataStoreGateway
from .models import ASSIGNMENT_AUTOMATIC, Customer, Reservation
from .payments import PaymentGateway, payment_gateway_from_settings
from .pricing import cost_for
from .schemas import ReservationCreate
from .slots import bookable_slots, candidate_slots_for, is_past, normalize_time, to_minutes

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    tables: List[AvailableTable]
    fallback_mode: bool
    exact_match: bool


@dataclass
class SlotsResult:
    slots: List[str]
    fallback_mode: bool


def _limit_reached(limits, day_reservations, slot: str) -> bool:
    """True when ``slot`` falls in a limit window that is already full"""
    minutes = to_minutes(slot)
    for limit in limits:
        start, end = to_minutes(limit.start_time), to_minutes(limit.end_time)
        if not start <= minutes < end:
            continue
        taken = sum(1 for r in day_reservations if start <= to_minutes(r.time) < end)
        if taken >= limit.max_reservations:
            return True
    return False


class ReservationService:
    def __init__(self, db: Session, payment_gateway: PaymentGateway | None = None, notifier=notify):
        self.db = db
        self.store = DataStoreGateway(db)
        self.payment_gateway = payment_gateway or payment_gateway_from_settings()
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def find_available_tables(self, restaurant_id: int, on: date, time: str, party_size: int,
                              editing_reservation_id: Optional[int] = None,
                              on_grid_only: bool = True) -> AvailabilityResult:
        """Tables that can seat the party and are free at the exact date and time.

        With no tables configured the restaurant runs in fallback mode: every
        slot is open and bookings carry no table. ``time`` must be one of the
        restaurant's slots unless ``on_grid_only`` is False.
        """
        _check_party_size(party_size)
        time = normalize_time(time)
        restaurant = self.store.get_restaurant(restaurant_id)
        if on_grid_only:
            _check_slot(restaurant, time)

        tables = self.store.active_tables(restaurant_id)
        if not tables:
            return AvailabilityResult(tables=[], fallback_mode=True, exact_match=True)

        reservations = self.store.active_reservations(restaurant_id, on, time)
        options = find_available_tables(tables, reservations, party_size, editing_reservation_id)
        return AvailabilityResult(
            tables=options,
            fallback_mode=False,
            exact_match=has_exact_match(options, party_size),
        )

    def bookable_slots(self, restaurant_id: int, on: date, party_size: int,
                       candidate_slots: Optional[List[str]] = None,
                       now: Optional[datetime] = None) -> SlotsResult:
        """Slots a diner can pick for ``on``, in chronological order"""
        _check_party_size(party_size)
        now = now or datetime.now()
        restaurant = self.store.get_restaurant(restaurant_id)
        tables = self.store.active_tables(restaurant_id)
        fallback = not tables

        if on < now.date():
            return SlotsResult(slots=[], fallback_mode=fallback)

        closures = self.store.closures(restaurant_id)
        if is_closed_all_day(closures, on):
            return SlotsResult(slots=[], fallback_mode=fallback)

        if candidate_slots is None:
            candidate_slots = candidate_slots_for(restaurant)
        candidates = [normalize_time(s) for s in candidate_slots]
        candidates = [s for s in candidates if not is_closed_at(closures, on, s)]

        day_reservations = self.store.active_reservations(restaurant_id, on)
        limits = self.store.reservation_limits(restaurant_id, on)
        if limits:
            candidates = [s for s in candidates if not _limit_reached(limits, day_reservations, s)]

        is_available = None
        if not fallback:
            by_time = defaultdict(list)
            for r in day_reservations:
                by_time[r.time].append(r)

            def _has_free_table(slot):
                return bool(find_available_tables(tables, by_time[slot], party_size))

            is_available = _has_free_table

        return SlotsResult(
            slots=bookable_slots(on, candidates, now, is_available),
            fallback_mode=fallback,
        )

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def commit_reservation(self, data: ReservationCreate, now: Optional[datetime] = None) -> Reservation:
        """Validate a booking and write it.

        Checks run in order and the first failure is raised: missing details,
        closure, duplicate booking, table availability, reservation limit,
        deposit payment. The unique slot index on reservations has the final
        word when two bookings race for the same table.
        """
        now = now or datetime.now()
        restaurant = self.store.get_restaurant(data.restaurant_id)

        name = (data.name or "").strip()
        email = (data.email or "").strip()
        if not name or not email:
            raise ValidationError("Name and email are required to book a table")
        _check_party_size(data.party_size)
        time = normalize_time(data.time)
        _check_slot(restaurant, time)
        if data.date < now.date() or (data.date == now.date() and is_past(data.date, time, now)):
            raise ValidationError("That time has already passed")

        tables = self.store.active_tables(restaurant.id)
        fallback = not tables
        automatic = restaurant.table_assignment_mode == ASSIGNMENT_AUTOMATIC
        if not fallback and data.table_id is None and not automatic:
            raise ValidationError("Please choose a table")

        closures = self.store.closures(restaurant.id)
        if is_closed_at(closures, data.date, time):
            raise RestaurantClosed()

        if self.store.user_has_booking(data.user_id, email, data.date, time):
            raise DuplicateBooking()

        table_id = None
        if not fallback:
            slot_reservations = self.store.active_reservations(restaurant.id, data.date, time)
            options = find_available_tables(tables, slot_reservations, data.party_size)
            if data.table_id is None:
                choice = smallest_fit(options)
                if choice is None:
                    raise TableNoLongerAvailable("No table can seat your party at that time")
                table_id = choice.table.id
            elif data.table_id in {o.table.id for o in options}:
                table_id = data.table_id
            else:
                logger.warning(
                    "Table %s no longer available for restaurant %s on %s %s",
                    data.table_id, restaurant.id, data.date, time,
                )
                raise TableNoLongerAvailable()

        limits = self.store.reservation_limits(restaurant.id, data.date)
        if limits and _limit_reached(limits, self.store.active_reservations(restaurant.id, data.date), time):
            raise ReservationLimitReached()

        cost = cost_for(restaurant.booking_cost, self.store.pricing_tiers(restaurant.id), data.party_size)
        payment_reference = data.payment_reference
        if cost > 0:
            # PaymentFailed propagates before anything is written
            payment_reference = self.payment_gateway.charge(
                cost, restaurant.currency or settings.default_currency, email, data.payment_reference
            )

        reservation = Reservation(
            restaurant_id=restaurant.id,
            table_id=table_id,
            user_id=data.user_id,
            name=name,
            email=email,
            phone=data.phone,
            date=data.date,
            time=time,
            party_size=data.party_size,
            occasion=data.occasion,
            special_request=data.special_request,
            cost=cost,
            payment_reference=payment_reference,
        )
        try:
            self.store.add_reservation(reservation)
            self.store.commit()
        except TableNoLongerAvailable:
            if cost > 0:
                logger.error(
                    "Deposit %s collected (ref %s) but booking lost the table race; refund required",
                    cost, payment_reference,
                )
            raise

        self.db.refresh(reservation)
        logger.info(
            "Reservation %s committed: restaurant=%s table=%s %s %s party=%s",
            reservation.id, restaurant.id, table_id, data.date, time, data.party_size,
        )
        self._after_commit(restaurant, reservation)
        return reservation

    def _after_commit(self, restaurant, reservation: Reservation):
        # The reservation is already committed; nothing below may undo it
        try:
            self._record_customer(reservation)
        except DataStoreError:
            logger.error("Could not update customer record for reservation %s", reservation.id)

        if not self.notifier.send_owner_notification(restaurant, reservation):
            logger.error("Owner notification failed for reservation %s", reservation.id)
        if not self.notifier.send_confirmation_email(restaurant, reservation):
            logger.error("Booker confirmation failed for reservation %s", reservation.id)

    def _record_customer(self, reservation: Reservation):
        with self.store.guarded("recording customer"):
            customer = self.db.query(Customer).filter(
                Customer.restaurant_id == reservation.restaurant_id,
                func.lower(Customer.email) == reservation.email.lower(),
            ).first()
            if customer is None:
                customer = Customer(
                    restaurant_id=reservation.restaurant_id,
                    email=reservation.email,
                    visits=0,
                    total_spend=0,
                )
                self.db.add(customer)
            customer.name = reservation.name
            customer.phone = reservation.phone or customer.phone
            customer.visits = (customer.visits or 0) + 1
            customer.total_spend = (customer.total_spend or 0) + (reservation.cost or 0)
            if customer.last_visit is None or reservation.date > customer.last_visit:
                customer.last_visit = reservation.date
            self.db.commit()

    # ------------------------------------------------------------------
    # Owner and diner updates
    # ------------------------------------------------------------------

    def cancel_reservation(self, reservation_id: int, send_notice: bool = True) -> Reservation:
        """Cancel a reservation"""
        reservation = self.store.get_reservation(reservation_id)
        if reservation.cancelled:
            return reservation

        reservation.cancelled = True
        self.store.commit()
        logger.info("Reservation %s cancelled", reservation_id)

        if send_notice and not self.notifier.send_cancellation_email(reservation.restaurant, reservation):
            logger.error("Cancellation notice failed for reservation %s", reservation_id)
        return reservation

    def mark_seen(self, reservation_id: int) -> Reservation:
        reservation = self.store.get_reservation(reservation_id)
        reservation.seen = True
        self.store.commit()
        return reservation

    def mark_attended(self, reservation_id: int, attended: bool = True) -> Reservation:
        reservation = self.store.get_reservation(reservation_id)
        if reservation.cancelled and attended:
            raise ValidationError("A cancelled reservation cannot be marked as attended")
        reservation.attended = attended
        self.store.commit()
        return reservation

    def reassign_table(self, reservation_id: int, table_id: Optional[int]) -> Reservation:
        """Move a reservation to another table, or unassign it with None"""
        reservation = self.store.get_reservation(reservation_id)
        if reservation.cancelled:
            raise ValidationError("A cancelled reservation cannot be moved")

        if table_id is not None and table_id != reservation.table_id:
            # Reservations made before a slot change keep their time
            result = self.find_available_tables(
                reservation.restaurant_id, reservation.date, reservation.time,
                reservation.party_size, editing_reservation_id=reservation.id,
                on_grid_only=False,
            )
            if result.fallback_mode:
                raise ValidationError("This restaurant has no tables to assign")
            if table_id not in {o.table.id for o in result.tables}:
                raise TableNoLongerAvailable()

        reservation.table_id = table_id
        self.store.commit()
        logger.info("Reservation %s assigned to table %s", reservation_id, table_id)
        return reservation

    def list_reservations(self, restaurant_id: int, on: Optional[date] = None,
                          include_cancelled: bool = False) -> List[Reservation]:
        self.store.get_restaurant(restaurant_id)
        with self.store.guarded("listing reservations"):
            query = self.db.query(Reservation).filter(Reservation.restaurant_id == restaurant_id)
            if on is not None:
                query = query.filter(Reservation.date == on)
            if not include_cancelled:
                query = query.filter(Reservation.cancelled == False)  # noqa: E712
            return query.order_by(Reservation.date, Reservation.time).all()

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def upcoming_reservations(self, now: datetime, window_minutes: int = 120) -> List[Reservation]:
        """Today's live reservations starting within the next ``window_minutes``"""
        start = now.strftime("%H:%M")
        later = now + timedelta(minutes=window_minutes)
        end = "23:59" if later.date() != now.date() else later.strftime("%H:%M")
        with self.store.guarded("loading upcoming reservations"):
            return self.db.query(Reservation).filter(
                Reservation.date == now.date(),
                Reservation.time >= start,
                Reservation.time <= end,
                Reservation.cancelled == False,  # noqa: E712
            ).order_by(Reservation.time).all()

    def send_reminders(self, now: Optional[datetime] = None, window_minutes: int = 120):
        now = now or datetime.now()
        results = []
        for reservation in self.upcoming_reservations(now, window_minutes):
            sent = self.notifier.send_reminder_email(reservation.restaurant, reservation)
            if not sent:
                logger.error("Reminder failed for reservation %s", reservation.id)
            results.append((reservation.id, sent))
        logger.info("Sent %d of %d reminders", sum(1 for _, ok in results if ok), len(results))
        return results

    def send_thank_you_emails(self, on: Optional[date] = None):
        """Thank guests who attended on ``on`` (yesterday by default)"""
        on = on or date.today() - timedelta(days=1)
        with self.store.guarded("loading attended reservations"):
            attended = self.db.query(Reservation).filter(
                Reservation.date == on,
                Reservation.attended == True,  # noqa: E712
                Reservation.cancelled == False,  # noqa: E712
            ).order_by(Reservation.restaurant_id, Reservation.time).all()

        results = []
        for reservation in attended:
            sent = self.notifier.send_thank_you_email(reservation.restaurant, reservation)
            if not sent:
                logger.error("Thank-you email failed for reservation %s", reservation.id)
            results.append((reservation.id, sent))
        logger.info("Sent %d of %d thank-you emails for %s",
                    sum(1 for _, ok in results if ok), len(results), on)
        return results


def _check_party_size(party_size: int):
    if party_size is None or party_size < 1:
        raise ValidationError("Party size must be at least 1")


def _check_slot(restaurant, time: str):
    if time not in candidate_slots_for(restaurant):
        raise ValidationError(f"{time} is not one of {restaurant.name}'s reservation times")
