"""
Core business logic for deciding which candidate slots can be booked.

This is pure domain logic: the resolver receives immutable snapshots of
blocked intervals and booked appointments plus an explicit ``now`` and
never performs I/O or keeps state between calls.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from .models import (
    AvailableSlot,
    BlockedInterval,
    BookedAppointment,
    CandidateSlot,
    UnavailableReason,
)
from .time_utils import as_instant, combine, format_time, ranges_overlap

logger = logging.getLogger(__name__)

DEFAULT_MIN_LEAD_TIME_MINUTES = 60

CONFLICT_EXACT_START = "exact_start"
CONFLICT_OVERLAP = "overlap"
CONFLICT_MODES = (CONFLICT_EXACT_START, CONFLICT_OVERLAP)


class AvailabilityResolver:
    """
    Marks candidate slots available or unavailable.

    Rules, first match wins:
    1. BLOCKED: a full-day block covers the date, or a time-range block
       overlaps the slot
    2. BOOKED: a non-cancelled appointment starts at the same HH:MM
       (or overlaps the slot when ``conflict_mode="overlap"``)
    3. PAST / LEAD_TIME: on today's date, slots at or before ``now`` are past
       and slots starting less than the lead time after ``now`` are too soon.
       Earlier dates are always past, later dates are never restricted.
    """

    def __init__(
        self,
        timezone: str = "Asia/Ho_Chi_Minh",
        min_lead_time_minutes: int = DEFAULT_MIN_LEAD_TIME_MINUTES,
        conflict_mode: str = CONFLICT_EXACT_START,
    ):
        if conflict_mode not in CONFLICT_MODES:
            raise ValueError(f"Unknown conflict mode '{conflict_mode}', expected one of {CONFLICT_MODES}")
        if min_lead_time_minutes < 0:
            raise ValueError("min_lead_time_minutes must not be negative")

        self.timezone = timezone
        self.min_lead_time_minutes = min_lead_time_minutes
        self.conflict_mode = conflict_mode

    def resolve(
        self,
        candidates: Iterable[CandidateSlot],
        blocked_intervals: Sequence[BlockedInterval],
        booked_appointments: Sequence[BookedAppointment],
        now: datetime,
        min_lead_time_minutes: Optional[int] = None,
    ) -> List[AvailableSlot]:
        """
        Resolve availability for every candidate, preserving their order.

        Args:
            candidates: Slots produced by the generator
            blocked_intervals: Provider's blocked intervals
            booked_appointments: Provider's appointments (cancelled ones are ignored)
            now: Current instant, injected by the caller
            min_lead_time_minutes: Override for the configured lead time

        Returns:
            One AvailableSlot per candidate
        """
        lead_time = (
            self.min_lead_time_minutes
            if min_lead_time_minutes is None
            else min_lead_time_minutes
        )
        current = as_instant(now, self.timezone)
        occupying = [a for a in booked_appointments if a.occupies_slot]

        result = [
            self._resolve_one(candidate, blocked_intervals, occupying, current, lead_time)
            for candidate in candidates
        ]

        logger.debug(
            "Resolved %d slot(s), %d available",
            len(result), sum(1 for slot in result if slot.available),
        )
        return result

    def _resolve_one(
        self,
        candidate: CandidateSlot,
        blocked_intervals: Sequence[BlockedInterval],
        occupying: Sequence[BookedAppointment],
        now,
        lead_time: int,
    ) -> AvailableSlot:
        reason = (
            self._blocked_reason(candidate, blocked_intervals)
            or self._booked_reason(candidate, occupying)
            or self._timing_reason(candidate, now, lead_time)
        )
        return AvailableSlot(
            date=candidate.date,
            start_time=candidate.start_time,
            end_time=candidate.end_time,
            available=reason is None,
            reason=reason,
        )

    @staticmethod
    def _blocked_reason(
        candidate: CandidateSlot,
        blocked_intervals: Sequence[BlockedInterval],
    ) -> Optional[UnavailableReason]:
        for block in blocked_intervals:
            if block.blocks(candidate.date, candidate.start_time, candidate.end_time):
                return UnavailableReason.BLOCKED
        return None

    def _booked_reason(
        self,
        candidate: CandidateSlot,
        occupying: Sequence[BookedAppointment],
    ) -> Optional[UnavailableReason]:
        for appointment in occupying:
            if appointment.date != candidate.date:
                continue
            if self._conflicts(candidate, appointment):
                return UnavailableReason.BOOKED
        return None

    def _conflicts(self, candidate: CandidateSlot, appointment: BookedAppointment) -> bool:
        if self.conflict_mode == CONFLICT_OVERLAP:
            return ranges_overlap(
                candidate.start_time, candidate.end_time,
                appointment.start_time, appointment.end_time,
            )
        # Equality on normalised HH:MM only
        return format_time(candidate.start_time) == format_time(appointment.start_time)

    def _timing_reason(
        self,
        candidate: CandidateSlot,
        now,
        lead_time: int,
    ) -> Optional[UnavailableReason]:
        today: date = now.date()

        if candidate.date > today:
            return None
        if candidate.date < today:
            return UnavailableReason.PAST

        starts_at = combine(candidate.date, candidate.start_time, self.timezone)
        seconds_ahead = (starts_at - now).total_seconds()

        if seconds_ahead <= 0:
            return UnavailableReason.PAST
        if seconds_ahead < lead_time * 60:
            return UnavailableReason.LEAD_TIME
        return None
