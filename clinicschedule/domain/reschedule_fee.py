"""
Late-change fee decision for reschedules.
"""

from datetime import datetime
from decimal import Decimal
from typing import Union

from .models import FeeDecision, RescheduleContext
from .time_utils import as_instant, combine

DEFAULT_FEE_AMOUNT = Decimal("50000")
DEFAULT_FEE_WINDOW_MINUTES = 30


class RescheduleFeePolicy:
    """
    Charges a fixed fee when a reschedule is requested shortly before the visit.

    The fee applies only while strictly less than ``window_minutes`` remain
    and the original slot has not started yet. Exactly ``window_minutes``
    before the visit is still free of charge.
    """

    def __init__(
        self,
        fee_amount: Union[Decimal, int, str] = DEFAULT_FEE_AMOUNT,
        currency: str = "VND",
        window_minutes: int = DEFAULT_FEE_WINDOW_MINUTES,
        timezone: str = "Asia/Ho_Chi_Minh",
    ):
        amount = Decimal(str(fee_amount))
        if amount < 0:
            raise ValueError("fee_amount must not be negative")
        if window_minutes <= 0:
            raise ValueError("window_minutes must be greater than zero")

        self.fee_amount = amount
        self.currency = currency
        self.window_minutes = window_minutes
        self.timezone = timezone

    def evaluate(self, old_appointment_datetime: datetime, now: datetime) -> FeeDecision:
        """Decide the fee for moving an appointment that starts at ``old_appointment_datetime``."""
        starts_at = as_instant(old_appointment_datetime, self.timezone)
        current = as_instant(now, self.timezone)
        seconds_left = (starts_at - current).total_seconds()

        if 0 < seconds_left < self.window_minutes * 60:
            return FeeDecision(fee_charged=True, amount=self.fee_amount, currency=self.currency)
        return FeeDecision.no_fee(self.currency)

    def evaluate_context(self, context: RescheduleContext) -> FeeDecision:
        """Same as ``evaluate`` with the old slot given as clinic-local date and time."""
        old = combine(context.old_date, context.old_start_time, self.timezone)
        return self.evaluate(old, context.now)
