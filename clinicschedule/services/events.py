"""
Fire-and-forget delivery of reschedule events to the notification collaborator.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Set

from ..domain.models import RescheduleEvent

logger = logging.getLogger(__name__)


class NotifierProtocol(Protocol):
    """Protocol describing the notification behaviour needed by the dispatcher."""

    async def notify(self, event: RescheduleEvent) -> None:
        """Deliver the event to the party that did not request the change."""


class EventDispatcher:
    """
    Hands events to a notifier on background tasks.

    ``emit`` returns immediately; delivery failures are logged and never
    reach the code that emitted the event. ``drain`` waits for everything
    still in flight (used on shutdown and in tests).
    """

    def __init__(self, notifier: NotifierProtocol) -> None:
        self._notifier = notifier
        self._pending: Set[asyncio.Task] = set()

    def emit(self, event: RescheduleEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _deliver(self, event: RescheduleEvent) -> None:
        try:
            await self._notifier.notify(event)
        except Exception:
            logger.exception(
                "Failed to notify %s about reschedule of appointment %s",
                event.notify_party.value, event.appointment_id,
            )
        else:
            logger.info(
                "Notified %s %s about reschedule of appointment %s",
                event.notify_party.value, event.recipient_id, event.appointment_id,
            )

