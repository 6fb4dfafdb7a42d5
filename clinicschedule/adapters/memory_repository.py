"""
In-memory repositories, optionally seeded from a JSON snapshot file.

Used by the CLI's ``--data`` mode and by tests, without any backend or
database. The booking repository enforces the same uniqueness guarantee a
real persistence layer must provide.
"""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, replace
from datetime import date, time
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..domain.exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    ConfigurationError,
    RepositoryError,
)
from ..domain.models import (
    AppointmentStatus,
    BlockedInterval,
    BookedAppointment,
    RescheduleEvent,
    WeeklySchedule,
)
from ..domain.time_utils import format_time

logger = logging.getLogger(__name__)


class InMemoryScheduleRepository:
    """Weekly schedules and blocked intervals held in dictionaries."""

    def __init__(
        self,
        schedules: Optional[Dict[str, WeeklySchedule]] = None,
        blocked_intervals: Optional[Iterable[BlockedInterval]] = None,
    ):
        self._schedules: Dict[str, WeeklySchedule] = dict(schedules or {})
        self._blocked: List[BlockedInterval] = list(blocked_intervals or [])

    def set_schedule(self, schedule: WeeklySchedule) -> None:
        self._schedules[schedule.provider_id] = schedule

    def add_blocked_interval(self, blocked: BlockedInterval) -> None:
        self._blocked.append(blocked)

    def remove_blocked_interval(self, blocked_id: str) -> None:
        self._blocked = [b for b in self._blocked if b.id != blocked_id]

    @property
    def provider_ids(self) -> List[str]:
        return sorted(self._schedules)

    async def get_weekly_schedule(self, provider_id: str) -> WeeklySchedule:
        """Return the stored plan, or the clinic default for unknown providers."""
        schedule = self._schedules.get(provider_id)
        if schedule is None:
            return WeeklySchedule.default(provider_id)
        return schedule

    async def get_blocked_intervals(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
    ) -> List[BlockedInterval]:
        return [
            b for b in self._blocked
            if b.provider_id == provider_id
            and b.start_date <= end_date
            and b.end_date >= start_date
        ]


class InMemoryBookingRepository:
    """
    Appointments held in memory.

    ``create_booking`` holds a lock while it checks and inserts, so at most
    one non-cancelled booking can exist per provider, date and start time.
    """

    def __init__(self, appointments: Optional[Iterable[BookedAppointment]] = None):
        self._appointments: Dict[str, BookedAppointment] = {
            a.id: a for a in (appointments or [])
        }
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)

    @property
    def appointments(self) -> List[BookedAppointment]:
        return list(self._appointments.values())

    async def get_booked_appointments(self, provider_id: str, day: date) -> List[BookedAppointment]:
        return [
            a for a in self._appointments.values()
            if a.provider_id == provider_id and a.date == day and a.occupies_slot
        ]

    async def get_appointment(self, appointment_id: str) -> BookedAppointment:
        try:
            return self._appointments[appointment_id]
        except KeyError:
            raise AppointmentNotFoundError(f"Appointment {appointment_id} not found") from None

    async def create_booking(
        self,
        provider_id: str,
        day: date,
        start_time: time,
        end_time: time,
        duration_minutes: int,
        patient_id: Optional[str] = None,
    ) -> str:
        async with self._lock:
            for existing in self._appointments.values():
                if (
                    existing.provider_id == provider_id
                    and existing.date == day
                    and existing.start_time == start_time
                    and existing.occupies_slot
                ):
                    raise BookingConflictError(
                        f"Provider {provider_id} already has appointment {existing.id} "
                        f"on {day.isoformat()} at {format_time(start_time)}"
                    )

            booking_id = self._next_id()
            self._appointments[booking_id] = BookedAppointment(
                id=booking_id,
                provider_id=provider_id,
                date=day,
                start_time=start_time,
                end_time=end_time,
                status=AppointmentStatus.PENDING,
                patient_id=patient_id,
            )
            return booking_id

    async def cancel_appointment(self, appointment_id: str, reason: str) -> None:
        async with self._lock:
            appointment = await self.get_appointment(appointment_id)
            self._appointments[appointment_id] = replace(
                appointment, status=AppointmentStatus.CANCELLED
            )
        logger.debug("Cancelled appointment %s: %s", appointment_id, reason)

    def _next_id(self) -> str:
        while True:
            candidate = f"apt-{next(self._ids)}"
            if candidate not in self._appointments:
                return candidate


@dataclass(frozen=True)
class LedgerEntry:
    account_id: str
    amount: Decimal
    reference_id: str
    receipt_id: str


class InMemoryBillingGateway:
    """Records the charge against the payer and the matching credit to the payee."""

    def __init__(self):
        self.entries: List[LedgerEntry] = []
        self._receipts = itertools.count(1)

    async def charge_fee(
        self,
        payer_id: str,
        payee_id: str,
        amount: Decimal,
        reference_id: str,
    ) -> str:
        receipt_id = f"rcpt-{next(self._receipts)}"
        self.entries.append(LedgerEntry(payer_id, -amount, reference_id, receipt_id))
        self.entries.append(LedgerEntry(payee_id, amount, reference_id, receipt_id))
        return receipt_id

    def balance(self, account_id: str) -> Decimal:
        return sum((e.amount for e in self.entries if e.account_id == account_id), Decimal("0"))


class RecordingNotifier:
    """Notifier that keeps delivered events in memory."""

    def __init__(self):
        self.events: List[RescheduleEvent] = []

    async def notify(self, event: RescheduleEvent) -> None:
        self.events.append(event)


def load_snapshot_file(
    data_file: Path,
) -> Tuple[InMemoryScheduleRepository, InMemoryBookingRepository]:
    """
    Build in-memory repositories from a JSON snapshot.

    Expected layout::

        {
          "providers": [
            {"provider_id": "...", "weekly_schedule": [...], "blocked_intervals": [...]}
          ],
          "appointments": [...]
        }

    Providers without ``weekly_schedule`` get the clinic default plan.

    Raises:
        FileNotFoundError: If the file does not exist
        RepositoryError: If the file is not valid JSON
        ConfigurationError: If schedule data is malformed
    """
    if not data_file.exists():
        raise FileNotFoundError(f"Snapshot file not found: {data_file}")

    try:
        with open(data_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise RepositoryError(f"Invalid JSON in {data_file}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Snapshot file must contain a mapping at the root level.")

    schedules = InMemoryScheduleRepository()
    for provider in data.get("providers", []):
        provider_id = str(provider["provider_id"])
        if provider.get("weekly_schedule"):
            schedules.set_schedule(WeeklySchedule.from_dict(provider_id, provider["weekly_schedule"]))
        else:
            schedules.set_schedule(WeeklySchedule.default(provider_id))
        for blocked in provider.get("blocked_intervals", []):
            schedules.add_blocked_interval(BlockedInterval.from_dict(provider_id, blocked))

    bookings = InMemoryBookingRepository(
        BookedAppointment.from_dict(item) for item in data.get("appointments", [])
    )

    logger.debug(
        "Loaded %d provider(s) and %d appointment(s) from %s",
        len(schedules.provider_ids), len(bookings.appointments), data_file,
    )
    return schedules, bookings
