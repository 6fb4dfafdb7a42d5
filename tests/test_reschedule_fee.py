"""
Tests for the reschedule fee policy.
"""

import pendulum
import pytest
from datetime import date, time
from decimal import Decimal

from clinicschedule.domain.models import RescheduleContext
from clinicschedule.domain.reschedule_fee import RescheduleFeePolicy


TZ = "Asia/Ho_Chi_Minh"
VISIT = pendulum.datetime(2025, 12, 15, 10, 0, tz=TZ)


class TestRescheduleFeePolicy:
    """Tests for RescheduleFeePolicy."""

    def test_fee_within_window(self):
        """15 minutes before the visit a fee applies."""
        policy = RescheduleFeePolicy(timezone=TZ)

        decision = policy.evaluate(VISIT, VISIT.subtract(minutes=15))

        assert decision.fee_charged
        assert decision.amount == Decimal("50000")
        assert decision.currency == "VND"

    def test_no_fee_outside_window(self):
        policy = RescheduleFeePolicy(timezone=TZ)

        decision = policy.evaluate(VISIT, VISIT.subtract(minutes=45))

        assert not decision.fee_charged
        assert decision.amount == Decimal("0")

    def test_exactly_thirty_minutes_is_free(self):
        policy = RescheduleFeePolicy(timezone=TZ)

        assert not policy.evaluate(VISIT, VISIT.subtract(minutes=30)).fee_charged

    def test_just_under_thirty_minutes_is_charged(self):
        policy = RescheduleFeePolicy(timezone=TZ)

        assert policy.evaluate(VISIT, VISIT.subtract(minutes=29, seconds=59)).fee_charged

    @pytest.mark.parametrize("offset_minutes", [0, 5, 120])
    def test_no_fee_once_visit_started(self, offset_minutes):
        policy = RescheduleFeePolicy(timezone=TZ)

        assert not policy.evaluate(VISIT, VISIT.add(minutes=offset_minutes)).fee_charged

    def test_configured_amount_and_window(self):
        policy = RescheduleFeePolicy(fee_amount=100000, currency="VND", window_minutes=60, timezone=TZ)

        decision = policy.evaluate(VISIT, VISIT.subtract(minutes=45))

        assert decision.fee_charged
        assert decision.amount == Decimal("100000")

    def test_now_in_utc(self):
        policy = RescheduleFeePolicy(timezone=TZ)
        now = pendulum.datetime(2025, 12, 15, 2, 50, tz="UTC")  # 09:50 local

        assert policy.evaluate(VISIT, now).fee_charged

    def test_evaluate_context(self):
        policy = RescheduleFeePolicy(timezone=TZ)
        context = RescheduleContext(
            appointment_id="a1",
            old_date=date(2025, 12, 15),
            old_start_time=time(10, 0),
            new_date=date(2025, 12, 16),
            new_start_time=time(9, 0),
            now=VISIT.subtract(minutes=10),
        )

        assert policy.evaluate_context(context).fee_charged

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            RescheduleFeePolicy(fee_amount=-1)
        with pytest.raises(ValueError):
            RescheduleFeePolicy(window_minutes=0)
