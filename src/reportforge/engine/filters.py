"""Row-level filter evaluation.

conditions are evaluated against RowViews. a condition on a field of another
object (filtering payments by customer.email, say) goes through the
relationship resolver. null row values never match anything - "unknown" is
not "not equal".

dates get special treatment: when both sides look like dates, equals compares
calendar days and the ordering operators compare instants. a bare number is
read as unix seconds only when the other side is a date, so stripe-style epoch
columns match date filters while 100 == 101 is never "the same day" in 1970.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from reportforge.engine.time import parse_timestamp
from reportforge.engine.views import RowView, read_field
from reportforge.errors import UnsupportedFilterError
from reportforge.models.formula import (
    FilterCondition,
    FilterLogic,
    FilterOperator,
    condition_value_error,
)


def check_condition(condition: FilterCondition) -> None:
    """Reject operator/value pairs we can't evaluate.

    the model validator already does this on construction, but conditions built
    with model_construct (or mutated after the fact) skip validation.
    """
    error = condition_value_error(condition.operator, condition.value)
    if error:
        raise UnsupportedFilterError(f"Filter on {condition.field.qualified}: {error}")


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, (date, datetime, str)) and not isinstance(value, bool):
        return parse_timestamp(value)
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    return None


def _as_datetimes(left: Any, right: Any) -> tuple[datetime | None, datetime | None]:
    """Both sides as datetimes, reading a bare number as unix seconds when the other side is a date."""
    left_dt, right_dt = _as_datetime(left), _as_datetime(right)
    if left_dt is None and right_dt is not None and _as_number(left) is not None:
        left_dt = parse_timestamp(_as_number(left))
    elif right_dt is None and left_dt is not None and _as_number(right) is not None:
        right_dt = parse_timestamp(_as_number(right))
    return left_dt, right_dt


def _equals(row_value: Any, expected: Any) -> bool:
    row_dt, expected_dt = _as_datetimes(row_value, expected)
    if row_dt is not None and expected_dt is not None:
        return row_dt.date() == expected_dt.date()
    row_num, expected_num = _as_number(row_value), _as_number(expected)
    if row_num is not None and expected_num is not None:
        return row_num == expected_num
    return row_value == expected


def _compare(row_value: Any, bound: Any) -> int | None:
    """-1/0/1 ordering of row_value against bound, None when incomparable."""
    row_dt, bound_dt = _as_datetimes(row_value, bound)
    if row_dt is not None and bound_dt is not None:
        return (row_dt > bound_dt) - (row_dt < bound_dt)
    row_num, bound_num = _as_number(row_value), _as_number(bound)
    if row_num is not None and bound_num is not None:
        return (row_num > bound_num) - (row_num < bound_num)
    return None


def matches_condition(row_value: Any, condition: FilterCondition) -> bool:
    """Does a single value satisfy a condition."""
    if row_value is None:
        return False

    operator, value = condition.operator, condition.value

    if operator == FilterOperator.EQUALS:
        return _equals(row_value, value)
    if operator == FilterOperator.NOT_EQUALS:
        return not _equals(row_value, value)
    if operator == FilterOperator.GREATER_THAN:
        return _compare(row_value, value) == 1
    if operator == FilterOperator.LESS_THAN:
        return _compare(row_value, value) == -1
    if operator == FilterOperator.BETWEEN:
        low, high = value
        above, below = _compare(row_value, low), _compare(row_value, high)
        return above is not None and below is not None and above >= 0 and below <= 0
    if operator == FilterOperator.CONTAINS:
        if not isinstance(row_value, str):
            return False
        needles = value if isinstance(value, list) else [value]
        haystack = row_value.lower()
        return any(needle.lower() in haystack for needle in needles)
    if operator == FilterOperator.IN:
        return any(_equals(row_value, candidate) for candidate in value)
    if operator == FilterOperator.IS_TRUE:
        return row_value is True
    if operator == FilterOperator.IS_FALSE:
        return row_value is False

    raise UnsupportedFilterError(f"Unsupported filter operator: {operator}")


def apply_filters(
    rows: list[RowView],
    conditions: list[FilterCondition],
    resolver: Any = None,
    logic: FilterLogic = FilterLogic.AND,
) -> list[RowView]:
    """Rows that satisfy the conditions, in their original order."""
    if not conditions:
        return rows

    for condition in conditions:
        check_condition(condition)

    combine = all if logic == FilterLogic.AND else any
    return [
        row
        for row in rows
        if combine(
            matches_condition(read_field(row, condition.field, resolver), condition)
            for condition in conditions
        )
    ]


def include_set(rows: list[RowView]) -> set[str]:
    """Primary-key allow-set ("object:id") for the given rows."""
    return {row.key for row in rows}
