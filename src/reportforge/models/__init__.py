"""Pydantic models for ReportForge."""

from reportforge.models.catalog import (
    Edge,
    FieldType,
    Relationship,
    RelationshipType,
    SchemaCatalog,
    SchemaField,
    SchemaObject,
)
from reportforge.models.formula import (
    Calculation,
    CalculationOperator,
    FieldRef,
    FilterCondition,
    FilterLogic,
    FilterOperator,
    Formula,
    Granularity,
    MetricBlock,
    MetricOp,
    MetricType,
    UnitType,
)
from reportforge.models.query import (
    BlockResult,
    ComparisonMode,
    ComparisonResult,
    MetricResult,
    ReportQuery,
    SeriesPoint,
    ValidationIssue,
    ValidationResult,
)
from reportforge.models.report import ReportDefinition

__all__ = [
    "BlockResult",
    "Calculation",
    "CalculationOperator",
    "ComparisonMode",
    "ComparisonResult",
    "Edge",
    "FieldRef",
    "FieldType",
    "FilterCondition",
    "FilterLogic",
    "FilterOperator",
    "Formula",
    "Granularity",
    "MetricBlock",
    "MetricOp",
    "MetricResult",
    "MetricType",
    "Relationship",
    "RelationshipType",
    "ReportDefinition",
    "ReportQuery",
    "SchemaCatalog",
    "SchemaField",
    "SchemaObject",
    "SeriesPoint",
    "UnitType",
    "ValidationIssue",
    "ValidationResult",
]
