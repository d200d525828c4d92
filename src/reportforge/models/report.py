"""Saved report definitions.

a report is a formula plus everything needed to run it - range, granularity,
selection, filters - and optionally a comparison and a group-by. reports are
stored as yaml so they can be checked in next to the catalog.

example:
    name: Monthly revenue
    formula:
      blocks:
        - id: revenue
          name: Revenue
          source: payment.amount
          op: sum
    start: 2025-01-01
    end: 2025-06-30
    granularity: month
    objects: [payment]
    compare: previous_period
"""

from datetime import date
from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel, Field, model_validator

from reportforge.models.formula import FieldRef, FilterCondition, FilterLogic, Formula, Granularity
from reportforge.models.query import ComparisonMode, ReportQuery


class ReportDefinition(BaseModel):
    """A report as written in a yaml file."""

    name: str | None = None
    description: str | None = None
    formula: Formula
    start: date
    end: date
    granularity: Granularity | None = None  # falls back to the engine default
    objects: list[str] = Field(default_factory=list)
    fields: list[FieldRef] = Field(default_factory=list)
    filters: list[FilterCondition] = Field(default_factory=list)
    filter_logic: FilterLogic = FilterLogic.AND
    compare: ComparisonMode | None = None
    group_by: FieldRef | None = None
    group_values: list[str] | None = None  # None means the most frequent values

    @model_validator(mode="after")
    def validate_range(self) -> Self:
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")
        return self

    def to_query(self, default_granularity: Granularity = Granularity.MONTH) -> ReportQuery:
        return ReportQuery(
            formula=self.formula,
            start=self.start,
            end=self.end,
            granularity=self.granularity or default_granularity,
            objects=self.objects,
            fields=self.fields,
            filters=self.filters,
            filter_logic=self.filter_logic,
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ReportDefinition":
        """Load a report file.

        Raises:
            FileNotFoundError: if the file doesn't exist.
            ValueError: if the file is empty or doesn't validate.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Report file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            raise ValueError(f"Report file is empty: {path}")
        return cls.model_validate(data)
