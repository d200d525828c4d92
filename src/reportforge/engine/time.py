"""Time bucketing.

buckets are calendar aligned - a month bucket is a calendar month, a week
bucket starts on the configured weekday - but clamped to the requested range,
so the first bucket starts at `start` and the last one stops after `end`.
the range is inclusive of `end`, bucket ends are exclusive.

labels are chosen so that plain string sorting gives chronological order,
which the ui and the formula evaluator both rely on.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from reportforge.errors import ConfigurationError, InvariantError
from reportforge.models.formula import Granularity

logger = logging.getLogger(__name__)

SUNDAY = 6


@dataclass(frozen=True)
class Bucket:
    """Half-open interval [start, end) with a stable label."""

    start: date
    end: date
    label: str

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


@dataclass(frozen=True)
class RangeCheck:
    valid: bool
    bucket_count: int
    warning: str | None = None


def parse_timestamp(value: Any) -> datetime | None:
    """Normalize a row timestamp to a naive utc datetime.

    accepts iso strings, dates, datetimes and unix seconds. anything that
    doesn't parse is treated as missing rather than an error - partial and
    messy data is normal here.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, str):
        try:
            parsed = isoparse(value)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_date(value: Any) -> date | None:
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def period_start(day: date, granularity: Granularity, week_start: int = SUNDAY) -> date:
    """Truncate a date to the start of its calendar period."""
    if granularity == Granularity.DAY:
        return day
    if granularity == Granularity.WEEK:
        return day - timedelta(days=(day.weekday() - week_start) % 7)
    if granularity == Granularity.MONTH:
        return day.replace(day=1)
    if granularity == Granularity.QUARTER:
        return day.replace(month=3 * ((day.month - 1) // 3) + 1, day=1)
    return day.replace(month=1, day=1)


def shift(day: date, granularity: Granularity, count: int) -> date:
    """Move a date by `count` whole periods (negative goes back).

    relativedelta clamps to the end of shorter months, so jan 31 + 1 month
    is feb 28/29 rather than an error.
    """
    steps = {
        Granularity.DAY: relativedelta(days=count),
        Granularity.WEEK: relativedelta(weeks=count),
        Granularity.MONTH: relativedelta(months=count),
        Granularity.QUARTER: relativedelta(months=3 * count),
        Granularity.YEAR: relativedelta(years=count),
    }
    return day + steps[granularity]


def bucket_label(day: date, granularity: Granularity, week_start: int = SUNDAY) -> str:
    """Label of the period containing `day`."""
    start = period_start(day, granularity, week_start)
    if granularity in (Granularity.DAY, Granularity.WEEK):
        return start.isoformat()
    if granularity == Granularity.MONTH:
        return f"{start.year:04d}-{start.month:02d}"
    if granularity == Granularity.QUARTER:
        return f"{start.year:04d}-Q{(start.month - 1) // 3 + 1}"
    return f"{start.year:04d}"


def build_buckets(
    start: date,
    end: date,
    granularity: Granularity,
    week_start: int = SUNDAY,
) -> list[Bucket]:
    """Partition [start, end] into contiguous labeled buckets."""
    if start > end:
        raise ConfigurationError(
            f"Range start {start} is after range end {end}", code="invalid_range"
        )

    stop = end + timedelta(days=1)
    buckets: list[Bucket] = []
    current = start
    while current < stop:
        next_boundary = shift(period_start(current, granularity, week_start), granularity, 1)
        bucket = Bucket(
            start=current,
            end=min(next_boundary, stop),
            label=bucket_label(current, granularity, week_start),
        )
        if bucket.end <= bucket.start or (buckets and bucket.label <= buckets[-1].label):
            raise InvariantError(f"Bucket sequence is not monotonic at {bucket}")
        buckets.append(bucket)
        current = bucket.end

    logger.debug("built %d %s buckets for %s..%s", len(buckets), granularity.value, start, end)
    return buckets


def validate_granularity_range(
    start: date,
    end: date,
    granularity: Granularity,
    max_buckets: int = 500,
    week_start: int = SUNDAY,
) -> RangeCheck:
    """Guard against ranges that would produce an unreadable number of points."""
    count = len(build_buckets(start, end, granularity, week_start))
    if count > max_buckets:
        return RangeCheck(
            valid=False,
            bucket_count=count,
            warning=(
                f"Too many data points ({count}). Maximum {max_buckets} allowed. "
                "Try a coarser granularity."
            ),
        )
    return RangeCheck(valid=True, bucket_count=count)


def suggest_granularity(start: date, end: date) -> Granularity:
    """Pick a granularity that gives a sensible number of points for a range."""
    days = (end - start).days
    if days <= 31:
        return Granularity.DAY
    if days <= 90:
        return Granularity.WEEK
    if days <= 730:  # ~2 years
        return Granularity.MONTH
    if days <= 1825:  # ~5 years
        return Granularity.QUARTER
    return Granularity.YEAR
