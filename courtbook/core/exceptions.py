"""Booking error types."""


class BookingError(Exception):
    """Base class for errors raised by the booking coordinator."""


class BookingValidationError(BookingError, ValueError):
    """The request was rejected before any backend call was made."""


class ReservationInProgressError(BookingError):
    """A reservation attempt is already in flight for this session."""


class SessionNotFoundError(BookingError, LookupError):
    """No booking session exists with the given id."""
