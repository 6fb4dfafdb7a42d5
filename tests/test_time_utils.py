"""
Tests for the shared time helpers.
"""

from datetime import date, datetime, time

import pendulum
import pytest

from clinicschedule.domain.time_utils import (
    add_minutes,
    as_instant,
    combine,
    day_index,
    format_time,
    minutes_between,
    parse_date,
    parse_time,
    ranges_overlap,
)

TZ = "Asia/Ho_Chi_Minh"


class TestParsing:
    """Tests for time and date normalisation."""

    def test_parse_time_accepts_short_hour(self):
        assert parse_time("8:30") == time(8, 30)

    def test_parse_time_drops_seconds(self):
        assert parse_time("08:30:45") == time(8, 30)
        assert parse_time(time(8, 30, 45)) == time(8, 30)

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "12", ""])
    def test_parse_time_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            parse_time(value)

    def test_format_time_is_zero_padded(self):
        assert format_time(time(8, 5)) == "08:05"

    def test_parse_date_cuts_iso_datetime(self):
        assert parse_date("2025-12-11T00:00:00.000Z") == date(2025, 12, 11)

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValueError, match="Invalid date"):
            parse_date("11/12/2025")


class TestArithmetic:
    """Tests for minute arithmetic on times of day."""

    def test_add_minutes(self):
        assert add_minutes(time(11, 30), 30) == time(12, 0)

    def test_add_minutes_does_not_wrap_midnight(self):
        with pytest.raises(ValueError):
            add_minutes(time(23, 45), 30)

    def test_minutes_between(self):
        assert minutes_between(time(8, 0), time(12, 0)) == 240

    def test_ranges_overlap_is_half_open(self):
        assert ranges_overlap(time(9, 0), time(10, 0), time(9, 30), time(10, 30))
        assert not ranges_overlap(time(9, 0), time(10, 0), time(10, 0), time(10, 30))

    def test_day_index_starts_on_sunday(self):
        assert day_index(date(2025, 12, 14)) == 0  # Sunday
        assert day_index(date(2025, 12, 15)) == 1  # Monday
        assert day_index(date(2025, 12, 20)) == 6  # Saturday


class TestInstants:
    """Tests for combining dates and times into instants."""

    def test_combine_uses_timezone(self):
        instant = combine(date(2025, 12, 15), time(9, 0), TZ)
        assert instant == pendulum.datetime(2025, 12, 15, 2, 0, tz="UTC")

    def test_as_instant_treats_naive_as_local(self):
        instant = as_instant(datetime(2025, 12, 15, 9, 0), TZ)
        assert instant.hour == 9
        assert instant == combine(date(2025, 12, 15), time(9, 0), TZ)
