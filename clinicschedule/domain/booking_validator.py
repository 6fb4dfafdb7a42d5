"""
Commit-time validation of a chosen slot against a freshly read snapshot.
"""

import logging
from datetime import datetime

from .availability import AvailabilityResolver
from .models import (
    BookingRequest,
    DayStatus,
    RejectionReason,
    ScheduleSnapshot,
    UnavailableReason,
    ValidationResult,
)
from .slot_generator import SlotGenerator
from .time_utils import format_time

logger = logging.getLogger(__name__)

_REASON_MAP = {
    UnavailableReason.BLOCKED: RejectionReason.SLOT_NO_LONGER_AVAILABLE,
    UnavailableReason.BOOKED: RejectionReason.SLOT_NO_LONGER_AVAILABLE,
    UnavailableReason.PAST: RejectionReason.LEAD_TIME_VIOLATION,
    UnavailableReason.LEAD_TIME: RejectionReason.LEAD_TIME_VIOLATION,
}


class BookingValidator:
    """
    Gates a booking by re-running generation and resolution.

    A client-supplied "available" flag from an earlier read is never trusted;
    the snapshot passed in must be fetched right before the commit.
    """

    def __init__(self, generator: SlotGenerator, resolver: AvailabilityResolver):
        self.generator = generator
        self.resolver = resolver

    def validate(
        self,
        request: BookingRequest,
        snapshot: ScheduleSnapshot,
        now: datetime,
    ) -> ValidationResult:
        """
        Check ``request`` against ``snapshot``.

        Returns:
            ValidationResult.accepted with the resolved slot, or a typed rejection
        """
        if not self.generator.is_supported(request.duration_minutes):
            return ValidationResult.rejected(
                RejectionReason.INVALID_DURATION,
                f"Duration {request.duration_minutes} min is not offered",
            )

        status = snapshot.day_status(request.date)
        if status is not DayStatus.WORKING:
            return ValidationResult.rejected(
                RejectionReason.PROVIDER_NOT_WORKING,
                f"Provider {request.provider_id} does not work on {request.date.isoformat()}",
            )

        candidates = [
            c for c in self.generator.generate(
                request.date,
                request.duration_minutes,
                snapshot.weekly_schedule.windows_for(request.date),
            )
            if c.start_time == request.start_time
        ]
        if not candidates:
            return ValidationResult.rejected(
                RejectionReason.SLOT_NOT_OFFERED,
                f"{format_time(request.start_time)} is not a bookable start time",
            )

        slot = self.resolver.resolve(
            candidates,
            snapshot.blocked_intervals,
            snapshot.booked_appointments,
            now,
        )[0]

        if slot.available:
            return ValidationResult.accepted(slot)

        reason = _REASON_MAP[slot.reason]
        logger.debug(
            "Rejected %s %s for provider %s: %s",
            request.date, format_time(request.start_time), request.provider_id, slot.reason.value,
        )
        return ValidationResult(
            ok=False,
            reason=reason,
            slot=slot,
            message=f"Slot {format_time(slot.start_time)} is unavailable ({slot.reason.value})",
        )
