"""
Wiring of the scheduling service from application configuration.
"""

from typing import Optional

from ..config import AppConfig
from ..domain.availability import AvailabilityResolver
from ..domain.reschedule_fee import RescheduleFeePolicy
from ..domain.slot_generator import SlotGenerator
from .events import EventDispatcher, NotifierProtocol
from .scheduling import (
    BillingGatewayProtocol,
    BookingRepositoryProtocol,
    ScheduleRepositoryProtocol,
    SchedulingService,
)


def build_fee_policy(config: AppConfig) -> RescheduleFeePolicy:
    return RescheduleFeePolicy(
        fee_amount=config.fees.reschedule_fee_amount,
        currency=config.fees.currency,
        window_minutes=config.fees.fee_window_minutes,
        timezone=config.timezone,
    )


def build_scheduling_service(
    config: AppConfig,
    schedule_repository: ScheduleRepositoryProtocol,
    booking_repository: BookingRepositoryProtocol,
    billing_gateway: Optional[BillingGatewayProtocol] = None,
    notifier: Optional[NotifierProtocol] = None,
) -> SchedulingService:
    """Create a SchedulingService whose rules follow ``config``."""
    generator = SlotGenerator(supported_durations=config.booking.allowed_durations)
    resolver = AvailabilityResolver(
        timezone=config.timezone,
        min_lead_time_minutes=config.booking.min_lead_time_minutes,
        conflict_mode=config.booking.conflict_mode,
    )
    dispatcher = EventDispatcher(notifier) if notifier is not None else None

    return SchedulingService(
        schedule_repository=schedule_repository,
        booking_repository=booking_repository,
        generator=generator,
        resolver=resolver,
        fee_policy=build_fee_policy(config),
        billing_gateway=billing_gateway,
        dispatcher=dispatcher,
    )
