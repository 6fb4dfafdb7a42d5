"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .availability import AvailabilityResolver
from .booking_validator import BookingValidator
from .exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    ConfigurationError,
    RepositoryError,
    SchedulingError,
)
from .models import (
    AppointmentStatus,
    AvailableSlot,
    BlockedInterval,
    BlockKind,
    BookedAppointment,
    BookingRequest,
    CancellationOutcome,
    CandidateSlot,
    DayAvailability,
    DayStatus,
    FeeDecision,
    Party,
    RejectionReason,
    RescheduleContext,
    RescheduleEvent,
    RescheduleOutcome,
    ScheduleSnapshot,
    SlotRequest,
    TimeWindow,
    UnavailableReason,
    ValidationResult,
    WeeklySchedule,
    WeeklyScheduleDay,
)
from .reschedule_fee import RescheduleFeePolicy
from .slot_generator import SlotGenerator

__all__ = [
    "AppointmentNotFoundError",
    "AppointmentStatus",
    "AvailabilityResolver",
    "AvailableSlot",
    "BlockedInterval",
    "BlockKind",
    "BookedAppointment",
    "BookingConflictError",
    "BookingRequest",
    "BookingValidator",
    "CancellationOutcome",
    "CandidateSlot",
    "ConfigurationError",
    "DayAvailability",
    "DayStatus",
    "FeeDecision",
    "Party",
    "RejectionReason",
    "RepositoryError",
    "RescheduleContext",
    "RescheduleEvent",
    "RescheduleFeePolicy",
    "RescheduleOutcome",
    "ScheduleSnapshot",
    "SchedulingError",
    "SlotGenerator",
    "SlotRequest",
    "TimeWindow",
    "UnavailableReason",
    "ValidationResult",
    "WeeklySchedule",
    "WeeklyScheduleDay",
]
