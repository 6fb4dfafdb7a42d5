"""
Adapters layer - Repositories for the clinic backend and in-memory snapshots.
"""

from .http_repository import (
    ClinicApiClient,
    HttpBillingGateway,
    HttpBookingRepository,
    HttpScheduleRepository,
)
from .memory_repository import (
    InMemoryBillingGateway,
    InMemoryBookingRepository,
    InMemoryScheduleRepository,
    RecordingNotifier,
    load_snapshot_file,
)

__all__ = [
    "ClinicApiClient",
    "HttpBillingGateway",
    "HttpBookingRepository",
    "HttpScheduleRepository",
    "InMemoryBillingGateway",
    "InMemoryBookingRepository",
    "InMemoryScheduleRepository",
    "RecordingNotifier",
    "load_snapshot_file",
]
