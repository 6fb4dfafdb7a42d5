"""
Candidate slot generation from a day's working windows.
"""

import logging
from datetime import date
from typing import Iterable, List, Sequence

from .models import CandidateSlot, TimeWindow
from .time_utils import add_minutes, to_minutes

logger = logging.getLogger(__name__)

SUPPORTED_DURATIONS = (30, 60)


class SlotGenerator:
    """
    Splits working windows into fixed-length candidate slots.

    Algorithm:
    1. For each window, step from its start by ``duration_minutes``
    2. Emit [start, start + duration) while it still fits in the window
    3. Drop the trailing partial slot
    4. Concatenate windows in chronological order
    """

    def __init__(self, supported_durations: Sequence[int] = SUPPORTED_DURATIONS):
        self.supported_durations = tuple(supported_durations)

    def is_supported(self, duration_minutes: int) -> bool:
        return duration_minutes in self.supported_durations

    def generate(
        self,
        target_date: date,
        duration_minutes: int,
        work_windows: Iterable[TimeWindow],
    ) -> List[CandidateSlot]:
        """
        Generate the ordered candidate slots for one day.

        Args:
            target_date: Day the slots belong to
            duration_minutes: Visit length, one of the supported durations
            work_windows: Ordered, non-overlapping working windows (empty on a day off)

        Returns:
            Candidate slots in chronological order

        Raises:
            ValueError: If the duration is not supported
        """
        if not self.is_supported(duration_minutes):
            raise ValueError(
                f"Unsupported duration {duration_minutes} min, "
                f"expected one of {list(self.supported_durations)}"
            )

        candidates: List[CandidateSlot] = []

        for window in sorted(work_windows, key=lambda w: w.start):
            candidates.extend(self._split_window(target_date, window, duration_minutes))

        logger.debug(
            "Generated %d candidate(s) of %d min on %s",
            len(candidates), duration_minutes, target_date,
        )
        return candidates

    @staticmethod
    def _split_window(
        target_date: date,
        window: TimeWindow,
        duration_minutes: int,
    ) -> List[CandidateSlot]:
        """
        Example (30 min):
        Window: 08:00 - 09:45
        Result: [08:00-08:30, 08:30-09:00, 09:00-09:30]
        """
        slots: List[CandidateSlot] = []
        window_end = to_minutes(window.end)
        current = window.start

        while to_minutes(current) + duration_minutes <= window_end:
            end = add_minutes(current, duration_minutes)
            slots.append(CandidateSlot(date=target_date, start_time=current, end_time=end))
            if to_minutes(end) >= window_end:
                break
            current = end

        return slots
