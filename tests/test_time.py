"""Tests for time bucketing."""

from datetime import date, datetime

import pytest

from reportforge.engine.time import (
    bucket_label,
    build_buckets,
    parse_timestamp,
    period_start,
    shift,
    suggest_granularity,
    validate_granularity_range,
)
from reportforge.errors import ConfigurationError
from reportforge.models.formula import Granularity


class TestBuildBuckets:
    @pytest.mark.parametrize("granularity", list(Granularity))
    def test_contiguous_and_increasing(self, granularity: Granularity):
        """Buckets cover the range with no gaps and strictly increasing labels."""
        start, end = date(2023, 11, 17), date(2025, 3, 4)
        buckets = build_buckets(start, end, granularity)

        assert buckets[0].start == start
        assert buckets[-1].end == date(2025, 3, 5)
        for prev, nxt in zip(buckets, buckets[1:]):
            assert prev.end == nxt.start
            assert prev.label < nxt.label
            assert prev.start < prev.end

    def test_month_labels(self):
        buckets = build_buckets(date(2025, 1, 1), date(2025, 2, 28), Granularity.MONTH)
        assert [b.label for b in buckets] == ["2025-01", "2025-02"]
        assert buckets[1].end == date(2025, 3, 1)

    def test_month_clamped_to_range(self):
        """A mid-month start gets a partial first bucket."""
        buckets = build_buckets(date(2025, 1, 15), date(2025, 2, 10), Granularity.MONTH)
        assert buckets[0].start == date(2025, 1, 15)
        assert buckets[0].end == date(2025, 2, 1)
        assert buckets[1].end == date(2025, 2, 11)

    def test_quarter_and_year_labels(self):
        quarters = build_buckets(date(2024, 11, 1), date(2025, 4, 1), Granularity.QUARTER)
        assert [b.label for b in quarters] == ["2024-Q4", "2025-Q1", "2025-Q2"]

        years = build_buckets(date(2024, 6, 1), date(2025, 1, 1), Granularity.YEAR)
        assert [b.label for b in years] == ["2024", "2025"]

    def test_weeks_start_on_sunday(self):
        # 2025-01-01 is a wednesday, the previous sunday is 2024-12-29
        buckets = build_buckets(date(2025, 1, 1), date(2025, 1, 14), Granularity.WEEK)
        assert [b.label for b in buckets] == ["2024-12-29", "2025-01-05", "2025-01-12"]
        assert buckets[1].start == date(2025, 1, 5)

    def test_weeks_start_on_monday(self):
        buckets = build_buckets(date(2025, 1, 1), date(2025, 1, 14), Granularity.WEEK, week_start=0)
        assert [b.label for b in buckets] == ["2024-12-30", "2025-01-06", "2025-01-13"]

    def test_single_day(self):
        buckets = build_buckets(date(2025, 1, 1), date(2025, 1, 1), Granularity.DAY)
        assert len(buckets) == 1
        assert buckets[0].contains(date(2025, 1, 1))
        assert not buckets[0].contains(date(2025, 1, 2))

    def test_start_after_end(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_buckets(date(2025, 2, 1), date(2025, 1, 1), Granularity.DAY)
        assert exc_info.value.code == "invalid_range"


class TestCalendarHelpers:
    def test_period_start(self):
        day = date(2025, 8, 20)
        assert period_start(day, Granularity.MONTH) == date(2025, 8, 1)
        assert period_start(day, Granularity.QUARTER) == date(2025, 7, 1)
        assert period_start(day, Granularity.YEAR) == date(2025, 1, 1)

    def test_shift_clamps_month_end(self):
        assert shift(date(2025, 1, 31), Granularity.MONTH, 1) == date(2025, 2, 28)
        assert shift(date(2025, 3, 31), Granularity.QUARTER, -1) == date(2024, 12, 31)

    def test_bucket_label(self):
        assert bucket_label(date(2025, 5, 17), Granularity.DAY) == "2025-05-17"
        assert bucket_label(date(2025, 5, 17), Granularity.QUARTER) == "2025-Q2"

    def test_suggest_granularity(self):
        start = date(2025, 1, 1)
        assert suggest_granularity(start, date(2025, 1, 20)) == Granularity.DAY
        assert suggest_granularity(start, date(2025, 3, 1)) == Granularity.WEEK
        assert suggest_granularity(start, date(2026, 6, 1)) == Granularity.MONTH
        assert suggest_granularity(start, date(2028, 1, 1)) == Granularity.QUARTER
        assert suggest_granularity(start, date(2035, 1, 1)) == Granularity.YEAR

    def test_validate_granularity_range(self):
        ok = validate_granularity_range(date(2025, 1, 1), date(2025, 12, 31), Granularity.MONTH)
        assert ok.valid
        assert ok.bucket_count == 12

        too_many = validate_granularity_range(date(2020, 1, 1), date(2025, 1, 1), Granularity.DAY)
        assert not too_many.valid
        assert "Too many data points" in too_many.warning

    def test_validate_granularity_range_follows_week_start(self):
        """Sat 2025-01-04 to Sun 2025-01-12 is three Sunday weeks but two Monday weeks."""
        start, end = date(2025, 1, 4), date(2025, 1, 12)

        sunday = validate_granularity_range(start, end, Granularity.WEEK, max_buckets=2)
        monday = validate_granularity_range(start, end, Granularity.WEEK, max_buckets=2, week_start=0)

        assert sunday.bucket_count == len(build_buckets(start, end, Granularity.WEEK)) == 3
        assert not sunday.valid
        assert monday.bucket_count == len(build_buckets(start, end, Granularity.WEEK, week_start=0)) == 2
        assert monday.valid


class TestParseTimestamp:
    def test_iso_date(self):
        assert parse_timestamp("2025-01-05") == datetime(2025, 1, 5)

    def test_iso_with_offset_is_normalized_to_utc(self):
        assert parse_timestamp("2025-01-05T01:00:00+02:00") == datetime(2025, 1, 4, 23, 0)

    def test_unix_seconds(self):
        assert parse_timestamp(1735689600) == datetime(2025, 1, 1)

    def test_date_object(self):
        assert parse_timestamp(date(2025, 1, 5)) == datetime(2025, 1, 5)

    @pytest.mark.parametrize(
        "value", [None, "", "not a date", True, 1736035200000, 10**20, float("nan"), float("inf")]
    )
    def test_unparseable_is_none(self, value):
        assert parse_timestamp(value) is None
