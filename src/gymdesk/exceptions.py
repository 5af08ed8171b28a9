"""
Errors raised by the booking lifecycle.

Every error carries a short user-facing message; the REST layer maps each
class to an HTTP status in `bookings.api`.
"""


class BookingError(Exception):
    """Base class for booking lifecycle errors."""
    default_message = 'Booking request rejected'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(BookingError):
    default_message = 'Not found'


class CapacityExceededError(BookingError):
    default_message = 'Class is full'


class AlreadyPaidError(BookingError):
    default_message = 'Booking is already paid'


class InvalidSignatureError(BookingError):
    default_message = 'Invalid webhook signature'


class InvalidTransitionError(BookingError):
    default_message = 'Booking cannot move to that status'


class SessionDateError(BookingError):
    default_message = 'Class does not run on that date'


class MemberNotActiveError(BookingError):
    default_message = 'Membership is not active'
