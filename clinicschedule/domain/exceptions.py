"""
Domain-specific exception hierarchy for the scheduling engine.

Expected booking rejections (slot taken, day off, lead time) are not
exceptions; they are returned as ``ValidationResult`` values.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(SchedulingError):
    """Raised when schedule data is malformed (overlapping windows, missing bounds)."""


class RepositoryError(SchedulingError):
    """Raised when schedule or booking data cannot be fetched, stored or parsed."""


class BookingConflictError(RepositoryError):
    """Raised when a non-cancelled booking already holds the provider, date and start time."""


class AppointmentNotFoundError(RepositoryError):
    """Raised when an appointment id does not exist."""
