"""
Application services for listing, booking and rescheduling appointments.

The service fetches a fresh snapshot through repository adapters and hands it
to the pure domain components (``SlotGenerator``, ``AvailabilityResolver``,
``BookingValidator``, ``RescheduleFeePolicy``). Collaborators are described
by protocols so tests and the CLI can plug in in-memory implementations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional, Protocol

from ..domain.availability import AvailabilityResolver
from ..domain.booking_validator import BookingValidator
from ..domain.exceptions import BookingConflictError, SchedulingError
from ..domain.models import (
    AvailableSlot,
    BlockedInterval,
    BookedAppointment,
    BookingRequest,
    CancellationOutcome,
    DayAvailability,
    DayStatus,
    FeeDecision,
    Party,
    RejectionReason,
    RescheduleEvent,
    RescheduleOutcome,
    ScheduleSnapshot,
    SlotRequest,
    ValidationResult,
    WeeklySchedule,
)
from ..domain.reschedule_fee import RescheduleFeePolicy
from ..domain.slot_generator import SlotGenerator
from ..domain.time_utils import combine, format_time, parse_time
from .events import EventDispatcher

logger = logging.getLogger(__name__)


class ScheduleRepositoryProtocol(Protocol):
    """Read-only access to a provider's weekly plan and blocked intervals."""

    async def get_weekly_schedule(self, provider_id: str) -> WeeklySchedule:
        ...

    async def get_blocked_intervals(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
    ) -> List[BlockedInterval]:
        ...


class BookingRepositoryProtocol(Protocol):
    """
    Access to booked appointments.

    ``create_booking`` must guarantee at most one non-cancelled booking per
    provider, date and start time, raising ``BookingConflictError`` otherwise.
    """

    async def get_booked_appointments(self, provider_id: str, day: date) -> List[BookedAppointment]:
        ...

    async def get_appointment(self, appointment_id: str) -> BookedAppointment:
        ...

    async def create_booking(
        self,
        provider_id: str,
        day: date,
        start_time: time,
        end_time: time,
        duration_minutes: int,
        patient_id: Optional[str] = None,
    ) -> str:
        ...

    async def cancel_appointment(self, appointment_id: str, reason: str) -> None:
        ...


class BillingGatewayProtocol(Protocol):
    """Creates the charge against the payer and the credit to the payee."""

    async def charge_fee(
        self,
        payer_id: str,
        payee_id: str,
        amount: Decimal,
        reference_id: str,
    ) -> str:
        """Return a receipt id."""


@dataclass(frozen=True)
class BookingOutcome:
    result: ValidationResult
    booking_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result.ok


class SchedulingService:
    """
    Orchestrates snapshot retrieval and the pure scheduling components.

    Every call reads a new snapshot; nothing is cached between requests.
    """

    def __init__(
        self,
        schedule_repository: ScheduleRepositoryProtocol,
        booking_repository: BookingRepositoryProtocol,
        generator: SlotGenerator,
        resolver: AvailabilityResolver,
        fee_policy: RescheduleFeePolicy,
        billing_gateway: Optional[BillingGatewayProtocol] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ) -> None:
        self._schedule_repository = schedule_repository
        self._booking_repository = booking_repository
        self._generator = generator
        self._resolver = resolver
        self._validator = BookingValidator(generator=generator, resolver=resolver)
        self._fee_policy = fee_policy
        self._billing_gateway = billing_gateway
        self._dispatcher = dispatcher

    @property
    def timezone(self) -> str:
        return self._resolver.timezone

    async def fetch_snapshot(self, provider_id: str, day: date) -> ScheduleSnapshot:
        """Read schedule, blocks and bookings for one provider and day."""
        weekly, blocked, booked = await asyncio.gather(
            self._schedule_repository.get_weekly_schedule(provider_id),
            self._schedule_repository.get_blocked_intervals(provider_id, day, day),
            self._booking_repository.get_booked_appointments(provider_id, day),
        )
        return ScheduleSnapshot(
            weekly_schedule=weekly,
            blocked_intervals=tuple(blocked),
            booked_appointments=tuple(booked),
        )

    def calculate_day(
        self,
        snapshot: ScheduleSnapshot,
        day: date,
        duration_minutes: int,
        now: datetime,
    ) -> DayAvailability:
        """Compute the day's slots from an already fetched snapshot."""
        if not self._generator.is_supported(duration_minutes):
            raise ValueError(f"Unsupported duration {duration_minutes} min")

        status = snapshot.day_status(day)
        if status is not DayStatus.WORKING:
            return DayAvailability(date=day, status=status)

        candidates = self._generator.generate(
            day, duration_minutes, snapshot.weekly_schedule.windows_for(day)
        )
        slots = self._resolver.resolve(
            candidates,
            snapshot.blocked_intervals,
            snapshot.booked_appointments,
            now,
        )
        return DayAvailability(date=day, status=status, slots=tuple(slots))

    async def get_day_availability(
        self,
        provider_id: str,
        day: date,
        duration_minutes: int,
        now: datetime,
    ) -> DayAvailability:
        snapshot = await self.fetch_snapshot(provider_id, day)
        return self.calculate_day(snapshot, day, duration_minutes, now)

    async def query(self, request: SlotRequest) -> DayAvailability:
        """Answer a slot query for one provider and day."""
        return await self.get_day_availability(
            request.provider_id, request.date, request.duration_minutes, request.now
        )

    async def list_available_slots(
        self,
        provider_id: str,
        day: date,
        duration_minutes: int,
        now: datetime,
    ) -> List[AvailableSlot]:
        """
        Slots of the day with their availability flags.

        Days off and fully blocked days yield an empty list; use
        ``get_day_availability`` to tell those apart from a fully booked day.
        """
        availability = await self.get_day_availability(provider_id, day, duration_minutes, now)
        return list(availability.slots)

    async def validate_booking(
        self,
        provider_id: str,
        day: date,
        start_time,
        duration_minutes: int,
        now: datetime,
    ) -> ValidationResult:
        """Re-validate a chosen slot against a freshly read snapshot."""
        request = BookingRequest(
            provider_id=provider_id,
            date=day,
            start_time=parse_time(start_time),
            duration_minutes=duration_minutes,
        )
        snapshot = await self.fetch_snapshot(provider_id, day)
        return self._validator.validate(request, snapshot, now)

    async def book(
        self,
        provider_id: str,
        day: date,
        start_time,
        duration_minutes: int,
        now: datetime,
        patient_id: Optional[str] = None,
    ) -> BookingOutcome:
        """
        Validate and create a booking.

        A uniqueness violation raised by the repository means another request
        won the race after our check; it is reported as stale availability.
        """
        result = await self.validate_booking(provider_id, day, start_time, duration_minutes, now)
        if not result.ok:
            return BookingOutcome(result=result)

        slot = result.slot
        try:
            booking_id = await self._booking_repository.create_booking(
                provider_id=provider_id,
                day=day,
                start_time=slot.start_time,
                end_time=slot.end_time,
                duration_minutes=duration_minutes,
                patient_id=patient_id,
            )
        except BookingConflictError as exc:
            logger.info(
                "Booking conflict for provider %s on %s at %s: %s",
                provider_id, day, format_time(slot.start_time), exc,
            )
            return BookingOutcome(
                result=ValidationResult(
                    ok=False,
                    reason=RejectionReason.SLOT_NO_LONGER_AVAILABLE,
                    slot=slot,
                    message="This slot was just taken",
                )
            )

        logger.info(
            "Booked %s for provider %s on %s at %s",
            booking_id, provider_id, day, format_time(slot.start_time),
        )
        return BookingOutcome(result=result, booking_id=booking_id)

    def evaluate_reschedule(self, old_appointment_datetime: datetime, now: datetime) -> FeeDecision:
        return self._fee_policy.evaluate(old_appointment_datetime, now)

    async def reschedule(
        self,
        appointment_id: str,
        new_date: date,
        new_start_time,
        duration_minutes: int,
        requested_by: Party,
        now: datetime,
    ) -> RescheduleOutcome:
        """
        Move an appointment to a new slot.

        Steps:
        1. Refuse completed or cancelled appointments
        2. Decide the late-change fee from the old slot and ``now``
           (a due fee needs a billing gateway and a payer before anything is written)
        3. Book the new slot (commit-time validation included)
        4. Charge the fee through the billing gateway when it applies
        5. Cancel the old appointment
        6. Emit a RescheduleEvent for the other party

        If step 4 or 5 fails, the new booking is cancelled again before the
        error propagates, so the patient never holds two slots.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            SchedulingError: If a fee applies but no billing gateway or payer is known
        """
        appointment = await self._booking_repository.get_appointment(appointment_id)

        if appointment.status.is_terminal:
            return RescheduleOutcome(
                result=ValidationResult.rejected(
                    RejectionReason.APPOINTMENT_NOT_RESCHEDULABLE,
                    f"Appointment {appointment_id} is {appointment.status.value}",
                ),
                fee=FeeDecision.no_fee(self._fee_policy.currency),
            )

        old_start = combine(appointment.date, appointment.start_time, self.timezone)
        fee = self.evaluate_reschedule(old_start, now)
        if fee.fee_charged:
            self._ensure_chargeable(appointment)

        booking = await self.book(
            provider_id=appointment.provider_id,
            day=new_date,
            start_time=new_start_time,
            duration_minutes=duration_minutes,
            now=now,
            patient_id=appointment.patient_id,
        )
        if not booking.ok:
            return RescheduleOutcome(
                result=booking.result,
                fee=FeeDecision.no_fee(self._fee_policy.currency),
            )

        receipt = None
        try:
            if fee.fee_charged:
                receipt = await self._charge_fee(appointment, fee)

            await self._booking_repository.cancel_appointment(
                appointment.id,
                "Rescheduled (reservation fee charged)" if fee.fee_charged else "Rescheduled",
            )
        except Exception:
            await self._release_booking(booking.booking_id, appointment.id)
            raise

        self._emit(
            RescheduleEvent(
                appointment_id=appointment.id,
                new_appointment_id=booking.booking_id,
                provider_id=appointment.provider_id,
                patient_id=appointment.patient_id,
                requested_by=requested_by,
                old_date=appointment.date,
                old_start_time=appointment.start_time,
                new_date=new_date,
                new_start_time=booking.result.slot.start_time,
                fee_charged=fee.fee_charged,
                fee_amount=fee.amount,
            )
        )

        return RescheduleOutcome(
            result=booking.result,
            fee=fee,
            new_appointment_id=booking.booking_id,
            receipt=receipt,
        )

    async def cancel(
        self,
        appointment_id: str,
        requested_by: Party,
        now: datetime,
        reason: str = "",
    ) -> CancellationOutcome:
        """
        Cancel an appointment, charging the late-change fee when the patient
        cancels inside the fee window. Provider cancellations are free.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            SchedulingError: If a fee applies but no billing gateway or payer is known
        """
        appointment = await self._booking_repository.get_appointment(appointment_id)

        if appointment.status.is_terminal:
            return CancellationOutcome(
                result=ValidationResult.rejected(
                    RejectionReason.APPOINTMENT_NOT_CANCELLABLE,
                    f"Appointment {appointment_id} is {appointment.status.value}",
                ),
                fee=FeeDecision.no_fee(self._fee_policy.currency),
            )

        fee = FeeDecision.no_fee(self._fee_policy.currency)
        if requested_by is Party.PATIENT:
            old_start = combine(appointment.date, appointment.start_time, self.timezone)
            fee = self._fee_policy.evaluate(old_start, now)

        receipt = None
        if fee.fee_charged:
            receipt = await self._charge_fee(appointment, fee)

        await self._booking_repository.cancel_appointment(
            appointment.id, reason or f"Cancelled by {requested_by.value}"
        )
        logger.info(
            "Cancelled appointment %s at the request of the %s (fee charged: %s)",
            appointment.id, requested_by.value, fee.fee_charged,
        )
        return CancellationOutcome(result=ValidationResult(ok=True), fee=fee, receipt=receipt)

    def _ensure_chargeable(self, appointment: BookedAppointment) -> None:
        if self._billing_gateway is None:
            raise SchedulingError("A late-change fee applies but no billing gateway is configured")
        if not appointment.patient_id:
            raise SchedulingError(
                f"A late-change fee applies but appointment {appointment.id} has no patient"
            )

    async def _release_booking(self, booking_id: str, appointment_id: str) -> None:
        """Undo the new booking of a reschedule that failed halfway."""
        try:
            await self._booking_repository.cancel_appointment(
                booking_id, f"Reschedule of {appointment_id} failed"
            )
        except SchedulingError:
            logger.exception(
                "Could not release booking %s after failed reschedule of %s",
                booking_id, appointment_id,
            )
        else:
            logger.warning(
                "Released booking %s after failed reschedule of %s", booking_id, appointment_id
            )

    async def _charge_fee(self, appointment: BookedAppointment, fee: FeeDecision) -> str:
        self._ensure_chargeable(appointment)
        receipt = await self._billing_gateway.charge_fee(
            payer_id=appointment.patient_id,
            payee_id=appointment.provider_id,
            amount=fee.amount,
            reference_id=appointment.id,
        )
        logger.info(
            "Charged late-change fee %s %s for appointment %s (receipt %s)",
            fee.amount, fee.currency, appointment.id, receipt,
        )
        return receipt

    def _emit(self, event: RescheduleEvent) -> None:
        if self._dispatcher is None:
            logger.debug("No dispatcher configured, dropping reschedule event for %s", event.appointment_id)
            return
        self._dispatcher.emit(event)
