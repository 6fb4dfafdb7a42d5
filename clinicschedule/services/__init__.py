"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .events import EventDispatcher, NotifierProtocol
from .factory import build_fee_policy, build_scheduling_service
from .scheduling import (
    BillingGatewayProtocol,
    BookingOutcome,
    BookingRepositoryProtocol,
    ScheduleRepositoryProtocol,
    SchedulingService,
)

__all__ = [
    "BillingGatewayProtocol",
    "BookingOutcome",
    "BookingRepositoryProtocol",
    "EventDispatcher",
    "NotifierProtocol",
    "ScheduleRepositoryProtocol",
    "SchedulingService",
    "build_fee_policy",
    "build_scheduling_service",
]
