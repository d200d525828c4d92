"""Per-block aggregation into time series.

a block is an op (sum, count, avg, ...) over one source field, with one of
two temporal readings:

  flow  - sum_over_period / average_over_period: a bucket aggregates the rows
          whose timestamp falls inside it.
  stock - latest / first: a bucket aggregates the most recent (or earliest)
          row that exists by the end of the bucket. rows after the bucket end
          are never looked at.

every bucket gets a point, empty ones report 0.
"""

import logging
import math
import statistics
from bisect import bisect_right
from collections.abc import Hashable
from datetime import datetime
from decimal import Decimal
from typing import Any

from reportforge.engine.filters import apply_filters
from reportforge.engine.relationships import RelationshipResolver
from reportforge.engine.time import Bucket
from reportforge.engine.units import block_unit_type
from reportforge.engine.views import RowView, read_field
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import FieldRef, MetricBlock, MetricOp, MetricType
from reportforge.models.query import BlockResult, SeriesPoint

logger = logging.getLogger(__name__)


def to_number(value: Any) -> float | None:
    """Numeric reading of a value. bools are not numbers here."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def apply_op(op: MetricOp, values: list[Any]) -> float | None:
    """Apply an aggregation to the source values of some rows.

    `values` has one entry per qualifying row (None for rows without a value),
    so count is simply its length. returns None when a numeric op has nothing
    numeric to work with.
    """
    if op == MetricOp.COUNT:
        return float(len(values))

    if op == MetricOp.DISTINCT_COUNT:
        distinct = {v if isinstance(v, Hashable) else repr(v) for v in values if v is not None}
        return float(len(distinct))

    numbers = [n for n in (to_number(v) for v in values) if n is not None]
    if not numbers:
        return None

    if op == MetricOp.SUM:
        return math.fsum(numbers)
    if op == MetricOp.AVG:
        return math.fsum(numbers) / len(numbers)
    if op == MetricOp.MIN:
        return min(numbers)
    if op == MetricOp.MAX:
        return max(numbers)
    if op == MetricOp.MEDIAN:
        return float(statistics.median(numbers))
    if op == MetricOp.MODE:
        # first value seen wins a tie
        return float(statistics.mode(numbers))

    raise ValueError(f"Unknown metric op: {op}")


def _zero_series(buckets: list[Bucket]) -> list[SeriesPoint]:
    return [SeriesPoint(date=b.label, value=0.0) for b in buckets]


class Aggregator:
    """Turns rows into a BlockResult for one metric block."""

    def __init__(self, resolver: RelationshipResolver, catalog: SchemaCatalog | None = None) -> None:
        self.resolver = resolver
        self.catalog = catalog if catalog is not None else resolver.catalog

    def aggregate(
        self,
        block: MetricBlock,
        rows: list[RowView],
        buckets: list[Bucket],
        include: set[str] | None = None,
    ) -> BlockResult:
        """Aggregate `rows` into one point per bucket plus a headline value.

        Args:
            block: The metric block to compute.
            rows: Row views of the primary object.
            buckets: Output of build_buckets for the query range.
            include: Optional "object:id" allow-set, applied after block filters.

        Returns:
            BlockResult with a gap-free series. value is None (with a note)
            when the block has no source or nothing qualifies.
        """
        result = BlockResult(block_id=block.id, block_name=block.name, series=_zero_series(buckets))
        if block.source is None:
            result.note = "Select a metric source field"
            return result

        result.unit_type = block_unit_type(block, self.catalog)

        rows = apply_filters(rows, block.filters, self.resolver)
        if include is not None:
            rows = [row for row in rows if row.key in include]
        if not rows:
            result.note = "No data in selection"
            return result

        values = self._source_values(block.source, rows)
        dated = sorted(
            ((row.at, value) for row, value in zip(rows, values) if row.at is not None),
            key=lambda pair: pair[0],
        )
        logger.debug(
            "block %s: %d qualifying rows, %d with a timestamp", block.id, len(rows), len(dated)
        )

        if block.type in (MetricType.LATEST, MetricType.FIRST):
            points = self._stock_points(block, dated, buckets)
        else:
            points = self._flow_points(block, dated, buckets)

        result.series = [
            SeriesPoint(date=bucket.label, value=value) for bucket, value in zip(buckets, points)
        ]
        result.value = self._headline(block, dated, buckets, points)
        return result

    def _source_values(self, source: FieldRef, rows: list[RowView]) -> list[Any]:
        """Source field value per row, resolving across relationships when needed."""
        values: list[Any] = [None] * len(rows)
        positions: dict[str, list[int]] = {}
        for i, row in enumerate(rows):
            positions.setdefault(row.pk.object, []).append(i)

        goal = self.resolver.warehouse.canonical(source.object)
        for obj, indexes in positions.items():
            if obj == goal:
                for i in indexes:
                    values[i] = read_field(rows[i], source, self.resolver)
                continue
            resolved = self.resolver.resolve_many([rows[i].record for i in indexes], obj, source)
            for i, value in zip(indexes, resolved):
                values[i] = value
        return values

    def _flow_points(
        self,
        block: MetricBlock,
        dated: list[tuple[datetime, Any]],
        buckets: list[Bucket],
    ) -> list[float]:
        grouped: list[list[Any]] = [[] for _ in buckets]
        starts = [b.start for b in buckets]
        for at, value in dated:
            day = at.date()
            i = bisect_right(starts, day) - 1
            if i >= 0 and buckets[i].contains(day):
                grouped[i].append(value)
        return [apply_op(block.op, values) or 0.0 for values in grouped]

    def _stock_points(
        self,
        block: MetricBlock,
        dated: list[tuple[datetime, Any]],
        buckets: list[Bucket],
    ) -> list[float]:
        """As-of values. `dated` must be sorted by timestamp."""
        points: list[float] = []
        seen = 0
        for bucket in buckets:
            cutoff = datetime(bucket.end.year, bucket.end.month, bucket.end.day)
            while seen < len(dated) and dated[seen][0] < cutoff:
                seen += 1
            if seen == 0:
                points.append(0.0)
                continue

            # every row sharing the edge timestamp counts, whatever the input order
            edge = dated[seen - 1][0] if block.type == MetricType.LATEST else dated[0][0]
            picked = [value for at, value in dated[:seen] if at == edge]
            points.append(apply_op(block.op, picked) or 0.0)
        return points

    def _headline(
        self,
        block: MetricBlock,
        dated: list[tuple[datetime, Any]],
        buckets: list[Bucket],
        points: list[float],
    ) -> float:
        if not points:
            return 0.0
        if block.type == MetricType.LATEST:
            return points[-1]
        if block.type == MetricType.FIRST:
            return points[0]
        if block.type == MetricType.AVERAGE_OVER_PERIOD:
            non_zero = [p for p in points if p != 0]
            return math.fsum(non_zero) / len(non_zero) if non_zero else 0.0

        # sum_over_period: the op over everything in range, so avg is weighted
        # by row count and min/max/distinct look across bucket boundaries
        first_day, stop = buckets[0].start, buckets[-1].end
        in_range = [value for at, value in dated if first_day <= at.date() < stop]
        return apply_op(block.op, in_range) or 0.0
