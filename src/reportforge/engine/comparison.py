"""Period-over-period comparison.

previous_period and previous_year re-run the exact same query (formula,
filters, fields, selection) over a shifted range. period_start doesn't query
anything, it's a flat line at the current series' first value - turning that
into a delta series is left to whoever draws the chart.
"""

import logging
from collections.abc import Callable
from datetime import date

from dateutil.relativedelta import relativedelta

from reportforge.engine.time import SUNDAY, build_buckets, shift
from reportforge.models.formula import Granularity
from reportforge.models.query import (
    ComparisonMode,
    ComparisonResult,
    MetricResult,
    ReportQuery,
    SeriesPoint,
)

logger = logging.getLogger(__name__)


def shifted_range(
    start: date,
    end: date,
    granularity: Granularity,
    mode: ComparisonMode,
    bucket_count: int,
) -> tuple[date, date]:
    """Range to compare against.

    previous_period moves back by whole granularity units, as many as there
    are buckets, so a 3-month range is compared with the 3 months before it
    and ends up with the same number of buckets.
    """
    if mode == ComparisonMode.PREVIOUS_PERIOD:
        return shift(start, granularity, -bucket_count), shift(end, granularity, -bucket_count)
    if mode == ComparisonMode.PREVIOUS_YEAR:
        return start - relativedelta(years=1), end - relativedelta(years=1)
    return start, end


def compare(
    compute: Callable[[ReportQuery], MetricResult],
    query: ReportQuery,
    mode: ComparisonMode,
    current: MetricResult | None = None,
    week_start: int = SUNDAY,
) -> ComparisonResult:
    """Compute a comparison series for `query`.

    Args:
        compute: Runs a query through the normal pipeline.
        query: The primary query.
        mode: Which comparison to produce.
        current: The primary result if the caller already has it.
        week_start: Weekday weeks start on, for counting buckets.

    Returns:
        ComparisonResult with the comparison series and the headline delta.
    """
    current = current if current is not None else compute(query)

    if mode == ComparisonMode.PERIOD_START:
        baseline = current.series[0].value if current.series else None
        result = ComparisonResult(
            mode=mode,
            start=query.start,
            end=query.end,
            series=[SeriesPoint(date=p.date, value=baseline) for p in current.series],
            baseline=baseline,
            note=current.note,
            issues=list(current.issues),
        )
    else:
        bucket_count = len(build_buckets(query.start, query.end, query.granularity, week_start))
        start, end = shifted_range(query.start, query.end, query.granularity, mode, bucket_count)
        logger.debug("%s comparison over %s..%s", mode.value, start, end)
        previous = compute(query.model_copy(update={"start": start, "end": end}))
        result = ComparisonResult(
            mode=mode,
            start=start,
            end=end,
            series=previous.series,
            baseline=previous.value,
            note=previous.note,
            issues=list(previous.issues),
        )

    result.value = current.value
    if current.value is not None and result.baseline is not None:
        result.delta = current.value - result.baseline
        if result.baseline != 0:
            result.percent_change = result.delta / abs(result.baseline)
    return result
