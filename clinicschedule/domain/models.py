"""
Domain models for provider schedules, bookings and derived availability.
"""

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import ConfigurationError
from .time_utils import (
    add_minutes,
    day_index,
    format_time,
    minutes_between,
    parse_date,
    parse_time,
    ranges_overlap,
)


# Opening hours of the clinic default plan; no slot may end after closing
CLINIC_OPENING_TIME = time(8, 0)
CLINIC_CLOSING_TIME = time(17, 0)


@dataclass(frozen=True)
class TimeWindow:
    """
    A contiguous time-of-day range [start, end) on a working day.

    Invariant: start must be before end.
    """
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ConfigurationError(
                f"Window start {format_time(self.start)} must be before end {format_time(self.end)}"
            )

    @classmethod
    def parse(cls, start: Any, end: Any) -> "TimeWindow":
        """Build a window from ``HH:MM`` strings or time objects."""
        try:
            return cls(start=parse_time(start), end=parse_time(end))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return minutes_between(self.start, self.end)

    def overlaps(self, other: "TimeWindow") -> bool:
        """Check if this window overlaps with another."""
        return ranges_overlap(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{format_time(self.start)}-{format_time(self.end)}"


@dataclass(frozen=True)
class WeeklyScheduleDay:
    """
    Working hours for one weekday.

    ``day_index`` follows the clinic convention 0 = Sunday ... 6 = Saturday.
    """
    day_index: int
    is_working: bool
    work_windows: Tuple[TimeWindow, ...] = ()

    def __post_init__(self):
        if self.day_index not in range(7):
            raise ConfigurationError(f"day_index must be between 0 and 6, got {self.day_index}")

        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, "work_windows", tuple(self.work_windows))

        for previous, current in zip(self.work_windows, self.work_windows[1:]):
            if current.start < previous.end:
                raise ConfigurationError(
                    f"Work windows {previous} and {current} on day {self.day_index} "
                    "overlap or are out of order"
                )

    @property
    def windows(self) -> Tuple[TimeWindow, ...]:
        """Windows that actually accept bookings (none on a day off)."""
        return self.work_windows if self.is_working else ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeeklyScheduleDay":
        try:
            windows = [
                TimeWindow.parse(w["start"], w["end"])
                for w in data.get("work_windows", [])
            ]
            return cls(
                day_index=int(data["day_index"]),
                is_working=bool(data.get("is_working", True)),
                work_windows=tuple(windows),
            )
        except (KeyError, TypeError) as exc:
            raise ConfigurationError(f"Malformed schedule day {data!r}: {exc}") from exc


@dataclass(frozen=True)
class WeeklySchedule:
    """A provider's recurring weekly availability."""
    provider_id: str
    days: Tuple[WeeklyScheduleDay, ...]

    def __post_init__(self):
        object.__setattr__(self, "days", tuple(self.days))
        seen: set[int] = set()
        for day in self.days:
            if day.day_index in seen:
                raise ConfigurationError(
                    f"Duplicate day_index {day.day_index} in schedule of provider {self.provider_id}"
                )
            seen.add(day.day_index)

    def day_for(self, target: date) -> Optional[WeeklyScheduleDay]:
        """Return the schedule entry for the weekday of ``target``, if any."""
        index = day_index(target)
        for day in self.days:
            if day.day_index == index:
                return day
        return None

    def windows_for(self, target: date) -> Tuple[TimeWindow, ...]:
        """Working windows on ``target``; empty for days off."""
        day = self.day_for(target)
        return day.windows if day else ()

    @classmethod
    def default(cls, provider_id: str) -> "WeeklySchedule":
        """Clinic default plan: every day of the week, 08:00-17:00."""
        window = TimeWindow(start=CLINIC_OPENING_TIME, end=CLINIC_CLOSING_TIME)
        return cls(
            provider_id=provider_id,
            days=tuple(
                WeeklyScheduleDay(day_index=i, is_working=True, work_windows=(window,))
                for i in range(7)
            ),
        )

    @classmethod
    def from_dict(cls, provider_id: str, data: List[Dict[str, Any]]) -> "WeeklySchedule":
        return cls(
            provider_id=provider_id,
            days=tuple(WeeklyScheduleDay.from_dict(d) for d in data),
        )


class BlockKind(str, Enum):
    FULL_DAY = "full_day"
    TIME_RANGE = "time_range"


@dataclass(frozen=True)
class BlockedInterval:
    """
    An ad-hoc exception removing availability over an inclusive date range,
    either for whole days or for a time-of-day sub-range of each day.
    """
    id: str
    provider_id: str
    kind: BlockKind
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: str = ""

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ConfigurationError(
                f"Blocked interval {self.id}: end_date {self.end_date} is before start_date {self.start_date}"
            )
        if self.kind is BlockKind.TIME_RANGE:
            if self.start_time is None or self.end_time is None:
                raise ConfigurationError(
                    f"Blocked interval {self.id}: time_range requires start_time and end_time"
                )
            if self.start_time >= self.end_time:
                raise ConfigurationError(
                    f"Blocked interval {self.id}: start_time must be before end_time"
                )

    def covers_date(self, target: date) -> bool:
        return self.start_date <= target <= self.end_date

    def time_range_on(self, target: date) -> Optional[Tuple[time, time]]:
        """The blocked time-of-day range on ``target`` for a time-range block."""
        if self.kind is BlockKind.TIME_RANGE and self.covers_date(target):
            return self.start_time, self.end_time
        return None

    def blocks_whole_day(self, target: date) -> bool:
        return self.kind is BlockKind.FULL_DAY and self.covers_date(target)

    def blocks(self, target: date, start: time, end: time) -> bool:
        """Check whether this interval removes [start, end) on ``target``."""
        if not self.covers_date(target):
            return False
        if self.kind is BlockKind.FULL_DAY:
            return True
        return ranges_overlap(start, end, self.start_time, self.end_time)

    @classmethod
    def from_dict(cls, provider_id: str, data: Dict[str, Any]) -> "BlockedInterval":
        try:
            kind = BlockKind(data.get("kind") or data["type"])
            start_time = data.get("start_time") or data.get("startTime")
            end_time = data.get("end_time") or data.get("endTime")
            return cls(
                id=str(data["id"]),
                provider_id=provider_id,
                kind=kind,
                start_date=parse_date(data.get("start_date") or data["startDate"]),
                end_date=parse_date(data.get("end_date") or data["endDate"]),
                start_time=parse_time(start_time) if start_time else None,
                end_time=parse_time(end_time) if end_time else None,
                reason=data.get("reason") or "",
            )
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(f"Malformed blocked interval {data!r}: {exc}") from exc


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def occupies_slot(self) -> bool:
        return self is not AppointmentStatus.CANCELLED

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


@dataclass(frozen=True)
class BookedAppointment:
    """An existing appointment, read-only to the engine."""
    id: str
    provider_id: str
    date: date
    start_time: time
    end_time: time
    status: AppointmentStatus = AppointmentStatus.PENDING
    patient_id: Optional[str] = None

    @property
    def occupies_slot(self) -> bool:
        return self.status.occupies_slot

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookedAppointment":
        try:
            start = parse_time(data.get("start_time") or data["startTime"])
            end_raw = data.get("end_time") or data.get("endTime")
            if end_raw:
                end = parse_time(end_raw)
            else:
                end = add_minutes(start, int(data.get("duration") or 30))
            return cls(
                id=str(data.get("id") or data["_id"]),
                provider_id=str(data.get("provider_id") or data["doctorId"]),
                date=parse_date(data.get("date") or data["appointmentDate"]),
                start_time=start,
                end_time=end,
                status=AppointmentStatus(data.get("status", "pending")),
                patient_id=data.get("patient_id") or data.get("patientId"),
            )
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(f"Malformed appointment {data!r}: {exc}") from exc


@dataclass(frozen=True)
class SlotRequest:
    """A query for the bookable slots of one provider on one day."""
    provider_id: str
    date: date
    duration_minutes: int
    now: Any


@dataclass(frozen=True)
class CandidateSlot:
    """A slot produced by the generator before any availability rule runs."""
    date: date
    start_time: time
    end_time: time

    def duration_minutes(self) -> int:
        return minutes_between(self.start_time, self.end_time)

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {format_time(self.start_time)}-{format_time(self.end_time)}"


class UnavailableReason(str, Enum):
    BLOCKED = "blocked"
    BOOKED = "booked"
    PAST = "past"
    LEAD_TIME = "lead_time"


@dataclass(frozen=True)
class AvailableSlot:
    """
    A candidate slot after availability resolution.

    ``available`` is authoritative; ``reason`` only explains a rejection.
    """
    date: date
    start_time: time
    end_time: time
    available: bool
    reason: Optional[UnavailableReason] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "date": self.date.isoformat(),
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "available": self.available,
            "reason": self.reason.value if self.reason else None,
        }


class DayStatus(str, Enum):
    WORKING = "working"
    DAY_OFF = "day_off"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class DayAvailability:
    """Slots for one day plus why the list may be empty."""
    date: date
    status: DayStatus
    slots: Tuple[AvailableSlot, ...] = ()

    @property
    def available_slots(self) -> List[AvailableSlot]:
        return [slot for slot in self.slots if slot.available]

    @property
    def fully_booked(self) -> bool:
        return self.status is DayStatus.WORKING and not self.available_slots


@dataclass(frozen=True)
class ScheduleSnapshot:
    """One consistent read of a provider's schedule, blocks and bookings."""
    weekly_schedule: WeeklySchedule
    blocked_intervals: Tuple[BlockedInterval, ...] = ()
    booked_appointments: Tuple[BookedAppointment, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "blocked_intervals", tuple(self.blocked_intervals))
        object.__setattr__(self, "booked_appointments", tuple(self.booked_appointments))

    def is_fully_blocked(self, target: date) -> bool:
        """
        True when a full-day block covers ``target`` or the day's time-range
        blocks together cover every working window.
        """
        if any(block.blocks_whole_day(target) for block in self.blocked_intervals):
            return True

        windows = self.weekly_schedule.windows_for(target)
        if not windows:
            return False

        ranges = sorted(
            r for r in (block.time_range_on(target) for block in self.blocked_intervals) if r
        )
        return all(_window_covered(window, ranges) for window in windows)

    def day_status(self, target: date) -> DayStatus:
        if not self.weekly_schedule.windows_for(target):
            return DayStatus.DAY_OFF
        if self.is_fully_blocked(target):
            return DayStatus.BLOCKED
        return DayStatus.WORKING


@dataclass(frozen=True)
class BookingRequest:
    provider_id: str
    date: date
    start_time: time
    duration_minutes: int


class RejectionReason(str, Enum):
    INVALID_DURATION = "invalid_duration"
    PROVIDER_NOT_WORKING = "provider_not_working"
    SLOT_NOT_OFFERED = "slot_not_offered"
    LEAD_TIME_VIOLATION = "lead_time_violation"
    SLOT_NO_LONGER_AVAILABLE = "slot_no_longer_available"
    APPOINTMENT_NOT_RESCHEDULABLE = "appointment_not_reschedulable"
    APPOINTMENT_NOT_CANCELLABLE = "appointment_not_cancellable"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a commit-time check: either ok or a typed rejection."""
    ok: bool
    reason: Optional[RejectionReason] = None
    slot: Optional[AvailableSlot] = None
    message: str = ""

    @classmethod
    def accepted(cls, slot: AvailableSlot) -> "ValidationResult":
        return cls(ok=True, slot=slot)

    @classmethod
    def rejected(cls, reason: RejectionReason, message: str = "") -> "ValidationResult":
        return cls(ok=False, reason=reason, message=message)

    @property
    def is_stale(self) -> bool:
        """True when the slot was taken or blocked after it was displayed."""
        return self.reason is RejectionReason.SLOT_NO_LONGER_AVAILABLE


@dataclass(frozen=True)
class RescheduleContext:
    appointment_id: str
    old_date: date
    old_start_time: time
    new_date: date
    new_start_time: time
    now: Any


@dataclass(frozen=True)
class FeeDecision:
    fee_charged: bool
    amount: Decimal = Decimal("0")
    currency: str = "VND"

    @classmethod
    def no_fee(cls, currency: str = "VND") -> "FeeDecision":
        return cls(fee_charged=False, amount=Decimal("0"), currency=currency)


class Party(str, Enum):
    PATIENT = "patient"
    PROVIDER = "provider"


@dataclass(frozen=True)
class RescheduleEvent:
    """Emitted after a successful reschedule, for the notification collaborator."""
    appointment_id: str
    new_appointment_id: str
    provider_id: str
    patient_id: Optional[str]
    requested_by: Party
    old_date: date
    old_start_time: time
    new_date: date
    new_start_time: time
    fee_charged: bool
    fee_amount: Decimal = Decimal("0")

    @property
    def notify_party(self) -> Party:
        """The other party is notified: patient reschedules notify the provider and vice versa."""
        return Party.PROVIDER if self.requested_by is Party.PATIENT else Party.PATIENT

    @property
    def recipient_id(self) -> Optional[str]:
        return self.provider_id if self.notify_party is Party.PROVIDER else self.patient_id


@dataclass(frozen=True)
class RescheduleOutcome:
    result: ValidationResult
    fee: FeeDecision = field(default_factory=FeeDecision.no_fee)
    new_appointment_id: Optional[str] = None
    receipt: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result.ok


@dataclass(frozen=True)
class CancellationOutcome:
    result: ValidationResult
    fee: FeeDecision = field(default_factory=FeeDecision.no_fee)
    receipt: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result.ok


def _window_covered(window: TimeWindow, ranges: List[Tuple[time, time]]) -> bool:
    """Check that ``ranges`` (sorted by start) leave no gap inside ``window``."""
    cursor = window.start
    for start, end in ranges:
        if end <= cursor:
            continue
        if start > cursor:
            return False
        cursor = end
        if cursor >= window.end:
            return True
    return cursor >= window.end
