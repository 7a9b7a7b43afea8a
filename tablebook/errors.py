"""Reservation error taxonomy.

Every kind carries a default human-readable message and the HTTP status the
API layer answers with. Only ``DataStoreError`` is worth retrying.
"""


class ReservationError(Exception):
    """Base class for all booking and management errors"""

    default_message = "The request could not be completed."
    status_code = 400
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(ReservationError):
    default_message = "Some required booking details are missing or malformed."
    status_code = 422


class NotFoundError(ReservationError):
    default_message = "The requested record does not exist."
    status_code = 404


class ConflictError(ReservationError):
    default_message = "The change conflicts with existing restaurant data."
    status_code = 409


class RestaurantClosed(ReservationError):
    default_message = "The restaurant is closed at the selected date and time."
    status_code = 409


class TableNoLongerAvailable(ReservationError):
    default_message = "That table was just booked by another guest. Please pick another table or time."
    status_code = 409


class DuplicateBooking(ReservationError):
    default_message = "You already have a reservation at this date and time."
    status_code = 409


class ReservationLimitReached(ReservationError):
    default_message = "The restaurant is fully booked for this time window."
    status_code = 409


class OverlappingTierError(ReservationError):
    default_message = "This party-size range overlaps with an existing pricing tier."
    status_code = 409


class PaymentFailed(ReservationError):
    default_message = "The deposit payment did not go through. No reservation was made."
    status_code = 402


class DataStoreError(ReservationError):
    default_message = "We could not reach the reservation database. Please try again."
    status_code = 503
    retryable = True
