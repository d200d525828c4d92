"""Pydantic models for metric formulas.

a formula is one or more metric blocks, optionally combined by a single
arithmetic calculation. everything in here is plain json-compatible data so a
formula can be saved and replayed later against a refreshed warehouse.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Self

from dateutil.parser import isoparse
from pydantic import BaseModel, Field, model_validator


class Granularity(str, Enum):
    """Bucket sizes for time series."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class MetricOp(str, Enum):
    """Aggregation applied to the rows of a bucket."""

    SUM = "sum"
    COUNT = "count"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    DISTINCT_COUNT = "distinct_count"
    MEDIAN = "median"
    MODE = "mode"


class MetricType(str, Enum):
    """Temporal semantics of a block.

    sum_over_period is a flow (revenue in a month), latest/first are stocks
    (active subscribers as of a month). average_over_period is a flow whose
    headline is the mean of the non-empty buckets.
    """

    SUM_OVER_PERIOD = "sum_over_period"
    AVERAGE_OVER_PERIOD = "average_over_period"
    LATEST = "latest"
    FIRST = "first"


class UnitType(str, Enum):
    """Unit of a block or formula result."""

    COUNT = "count"
    CURRENCY = "currency"
    VOLUME = "volume"
    RATE = "rate"


class CalculationOperator(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    BETWEEN = "between"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"


class FilterLogic(str, Enum):
    AND = "and"
    OR = "or"


class FieldRef(BaseModel):
    """A field on a specific object, e.g. payment.amount."""

    model_config = {"frozen": True}

    object: str
    field: str

    @model_validator(mode="before")
    @classmethod
    def parse_qualified(cls, data: Any) -> Any:
        # yaml reports write fields as plain "payment.amount" strings
        if isinstance(data, str):
            obj, sep, name = data.partition(".")
            if not sep or not obj or not name:
                raise ValueError(f"Expected 'object.field', got '{data}'")
            return {"object": obj, "field": name}
        return data

    @property
    def qualified(self) -> str:
        return f"{self.object}.{self.field}"

    @classmethod
    def parse(cls, qualified: str) -> "FieldRef":
        """Build from "object.field". the object is everything before the first dot."""
        return cls.model_validate(qualified)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_date_like(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str):
        return False
    try:
        isoparse(value)
    except ValueError:
        return False
    return True


def _is_comparable(value: Any) -> bool:
    return _is_number(value) or _is_date_like(value)


def condition_value_error(operator: FilterOperator, value: Any) -> str | None:
    """Return why `value` doesn't fit `operator`, or None when it does.

    lives here rather than in the filter engine so the model validator and the
    engine agree on exactly the same rules.
    """
    if operator in (FilterOperator.EQUALS, FilterOperator.NOT_EQUALS):
        if isinstance(value, (list, dict)):
            return f"'{operator.value}' needs a single scalar value"
    elif operator == FilterOperator.IN:
        if not isinstance(value, list):
            return "'in' needs a list of values"
    elif operator == FilterOperator.BETWEEN:
        if not isinstance(value, list) or len(value) != 2:
            return "'between' needs a [low, high] pair"
        low, high = value
        if not ((_is_number(low) and _is_number(high)) or (_is_date_like(low) and _is_date_like(high))):
            return "'between' bounds must both be numbers or both be dates"
    elif operator in (FilterOperator.GREATER_THAN, FilterOperator.LESS_THAN):
        if not _is_comparable(value):
            return f"'{operator.value}' needs a number or a date"
    elif operator == FilterOperator.CONTAINS:
        if isinstance(value, list):
            if not all(isinstance(v, str) for v in value):
                return "'contains' list values must be strings"
        elif not isinstance(value, str):
            return "'contains' needs a string or a list of strings"
    elif operator in (FilterOperator.IS_TRUE, FilterOperator.IS_FALSE):
        if value not in (None, True, False):
            return f"'{operator.value}' takes no value"
    return None


class FilterCondition(BaseModel):
    """A single predicate on a field."""

    field: FieldRef
    operator: FilterOperator
    value: Any = None

    @model_validator(mode="after")
    def validate_value_shape(self) -> Self:
        error = condition_value_error(self.operator, self.value)
        if error:
            raise ValueError(f"Filter on {self.field.qualified}: {error}")
        return self


class MetricBlock(BaseModel):
    """One aggregation over one source field.

    source is optional on purpose - the report builder lets users create an
    empty block and pick the field afterwards, validation reports it.
    """

    id: str
    name: str
    source: FieldRef | None = None
    op: MetricOp = MetricOp.SUM
    type: MetricType = MetricType.SUM_OVER_PERIOD
    filters: list[FilterCondition] = Field(default_factory=list)
    unit_type: UnitType | None = None  # explicit override of unit inference


class Calculation(BaseModel):
    """Arithmetic combining two blocks."""

    operator: CalculationOperator
    left_operand: str  # block id
    right_operand: str  # block id
    result_unit_type: UnitType | None = None


class Formula(BaseModel):
    """A metric formula.

    cross-field invariants (operand ids exist, ids are unique) are checked by
    engine.formula.validate_formula instead of a model validator, so that a
    half-built formula can still be loaded, shown and reported on.
    """

    blocks: list[MetricBlock] = Field(default_factory=list)
    calculation: Calculation | None = None
    output_unit: UnitType | None = None

    def get_block(self, block_id: str) -> MetricBlock | None:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None
