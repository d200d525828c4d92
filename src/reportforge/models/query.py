"""Pydantic models for report queries and results.

the query captures what the user asked for, not how to compute it. results
are always serializable so they can go straight to the ui - non-fatal problems
travel in `note`, configuration problems in `issues`, nothing is thrown.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field

from reportforge.models.formula import (
    FieldRef,
    FilterCondition,
    FilterLogic,
    Formula,
    Granularity,
    UnitType,
)


class ReportQuery(BaseModel):
    """A request to compute one formula over a date range."""

    formula: Formula
    start: date
    end: date
    granularity: Granularity = Granularity.MONTH
    # first object is the primary table, the one rows are counted from
    objects: list[str] = Field(default_factory=list)
    fields: list[FieldRef] = Field(default_factory=list)
    # report-level filters, narrowed to a pk allow-set before aggregation
    filters: list[FilterCondition] = Field(default_factory=list)
    filter_logic: FilterLogic = FilterLogic.AND
    # explicit user selection of rows as "object:id" keys
    include: set[str] | None = None

    @property
    def primary_object(self) -> str | None:
        """The table rows are counted from.

        the first selected object, else the source object of the first block
        that has one.
        """
        if self.objects:
            return self.objects[0]
        for block in self.formula.blocks:
            if block.source is not None:
                return block.source.object
        return None

    def dependent_objects(self) -> list[str]:
        """Every object the formula and filters read from, in first-use order."""
        names: list[str] = []
        refs = [f.field for f in self.filters]
        for block in self.formula.blocks:
            if block.source is not None:
                refs.append(block.source)
            refs.extend(f.field for f in block.filters)
        for ref in refs:
            if ref.object not in names:
                names.append(ref.object)
        return names


class SeriesPoint(BaseModel):
    date: str  # bucket label
    value: float


class ValidationIssue(BaseModel):
    """One configuration problem with a human readable reason."""

    code: str
    message: str
    location: str | None = None  # e.g. "blocks[1].filters[0]"


class ValidationResult(BaseModel):
    valid: bool = True
    issues: list[ValidationIssue] = Field(default_factory=list)

    def add(self, code: str, message: str, location: str | None = None) -> None:
        self.issues.append(ValidationIssue(code=code, message=message, location=location))
        self.valid = False


class BlockResult(BaseModel):
    """Series and headline value for a single metric block."""

    block_id: str
    block_name: str
    series: list[SeriesPoint] = Field(default_factory=list)
    value: float | None = None
    unit_type: UnitType = UnitType.COUNT
    note: str | None = None


class MetricResult(BaseModel):
    """Series and headline value for a whole formula."""

    series: list[SeriesPoint] = Field(default_factory=list)
    value: float | None = None
    unit_type: UnitType | None = None
    note: str | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)
    blocks: list[BlockResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


class ComparisonMode(str, Enum):
    PERIOD_START = "period_start"
    PREVIOUS_PERIOD = "previous_period"
    PREVIOUS_YEAR = "previous_year"


class ComparisonResult(BaseModel):
    """A comparison series computed for the same formula and filters."""

    mode: ComparisonMode
    start: date
    end: date
    series: list[SeriesPoint] = Field(default_factory=list)
    baseline: float | None = None
    value: float | None = None  # current headline, repeated for convenience
    delta: float | None = None
    percent_change: float | None = None
    note: str | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)
