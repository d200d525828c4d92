"""Main ReportEngine interface for ReportForge."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from reportforge.catalog.loader import default_catalog, load_catalog
from reportforge.config import EngineSettings
from reportforge.engine.aggregator import Aggregator
from reportforge.engine.comparison import compare
from reportforge.engine.filters import apply_filters, include_set
from reportforge.engine.formula import evaluate, validate_formula
from reportforge.engine.grouping import available_group_fields, group_by, group_values
from reportforge.engine.relationships import IndexCache, RelationshipResolver
from reportforge.engine.time import build_buckets, validate_granularity_range
from reportforge.engine.views import RowView, build_row_views
from reportforge.errors import ConfigurationError
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import FieldRef, Formula
from reportforge.models.query import (
    ComparisonMode,
    ComparisonResult,
    MetricResult,
    ReportQuery,
    SeriesPoint,
    ValidationIssue,
    ValidationResult,
)
from reportforge.warehouse import Warehouse

logger = logging.getLogger(__name__)


def issues_from_validation_error(error: ValidationError) -> list[ValidationIssue]:
    """Flatten a pydantic ValidationError into validation issues."""
    issues = []
    for err in error.errors():
        message = err["msg"]
        code = "invalid_filter" if "Filter on" in message else "invalid_configuration"
        location = ".".join(str(part) for part in err["loc"]) or None
        issues.append(ValidationIssue(code=code, message=message, location=location))
    return issues


class ReportEngine:
    """Main interface for ReportForge.

    holds the warehouse, the catalog and the relationship index cache. every
    public method is read-only with respect to the warehouse, and none of them
    raise for a bad formula or query - those come back as issues.
    """

    def __init__(
        self,
        warehouse: Warehouse,
        catalog: SchemaCatalog | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            warehouse: Loaded tables.
            catalog: Schema catalog. defaults to the warehouse's own catalog.
            settings: Engine settings, read from the environment when omitted.
        """
        if catalog is not None and catalog is not warehouse.catalog:
            # the warehouse's name aliases come from its catalog, so rebuild it
            warehouse = Warehouse(warehouse.tables, catalog)
        self.warehouse = warehouse
        self.catalog = warehouse.catalog
        self.settings = settings or EngineSettings()
        self.cache = IndexCache()
        self.resolver = RelationshipResolver(warehouse, cache=self.cache)

    @classmethod
    def from_directory(
        cls,
        data_path: str | Path,
        catalog_path: str | Path | None = None,
        settings: EngineSettings | None = None,
    ) -> "ReportEngine":
        """Load warehouse files (and optionally a catalog) from disk."""
        catalog = load_catalog(catalog_path) if catalog_path else default_catalog()
        return cls(Warehouse.from_directory(data_path, catalog), settings=settings)

    @classmethod
    def from_tables(
        cls,
        tables: Mapping[str, list[dict[str, Any]]],
        catalog: SchemaCatalog | None = None,
        settings: EngineSettings | None = None,
    ) -> "ReportEngine":
        """Build an engine over in-memory tables, using the bundled catalog by default."""
        return cls(Warehouse(tables, catalog or default_catalog()), settings=settings)

    # --- computation ---

    def compute(self, query: ReportQuery) -> MetricResult:
        """Compute a formula's series and headline value.

        Args:
            query: What to compute.

        Returns:
            MetricResult. configuration problems are reported in `issues`,
            missing data in `note`.
        """
        return self._safe_compute(query, self.warehouse)

    def compare(
        self,
        query: ReportQuery,
        mode: ComparisonMode | str,
        current: MetricResult | None = None,
    ) -> ComparisonResult:
        """Compute a comparison series for the same formula and filters."""
        mode = ComparisonMode(mode)
        try:
            return compare(self.compute, query, mode, current=current, week_start=self.settings.week_start)
        except ConfigurationError as e:
            return ComparisonResult(
                mode=mode,
                start=query.start,
                end=query.end,
                issues=[ValidationIssue(code=e.code, message=str(e))],
            )

    def group_by(
        self,
        query: ReportQuery,
        field: FieldRef | str,
        values: list[str] | None = None,
    ) -> dict[str, MetricResult]:
        """Break a query down by the values of a categorical field.

        Args:
            query: The query to break down.
            field: Field to group by, e.g. "customer.country".
            values: Group values to compute. defaults to the most frequent ones.

        Returns:
            Mapping of group value to its MetricResult, in `values` order.
        """
        field = FieldRef.parse(field) if isinstance(field, str) else field
        if values is None:
            values = self.group_values(field, query.primary_object)
        return group_by(self._safe_compute, self.warehouse, self.resolver, query, field, values)

    def _safe_compute(self, query: ReportQuery, warehouse: Warehouse) -> MetricResult:
        try:
            return self._compute(query, warehouse)
        except ConfigurationError as e:
            logger.debug("configuration error: %s", e)
            return MetricResult(issues=[ValidationIssue(code=e.code, message=str(e))])
        except ValidationError as e:
            return MetricResult(issues=issues_from_validation_error(e))

    def _compute(self, query: ReportQuery, warehouse: Warehouse) -> MetricResult:
        formula = query.formula

        # a block without a source only gets a note, everything else blocks the run
        validation = validate_formula(formula)
        blocking = [issue for issue in validation.issues if issue.code != "missing_source"]
        if blocking:
            return MetricResult(issues=blocking)

        check = validate_granularity_range(
            query.start, query.end, query.granularity, self.settings.max_buckets, self.settings.week_start
        )
        if not check.valid:
            return MetricResult(issues=[ValidationIssue(code="too_many_buckets", message=check.warning)])

        buckets = build_buckets(query.start, query.end, query.granularity, self.settings.week_start)
        resolver = self.resolver if warehouse is self.warehouse else self.resolver.with_warehouse(warehouse)
        aggregator = Aggregator(resolver, self.catalog)

        primary = query.primary_object
        rows: list[RowView] = []
        if primary is not None:
            if not warehouse.has_table(primary):
                logger.debug("no table for primary object %s", primary)
                return MetricResult(
                    series=[SeriesPoint(date=b.label, value=0.0) for b in buckets],
                    note=f"No data found for {primary}",
                )
            rows = build_row_views(warehouse, [primary], query.fields)

        include = query.include
        if query.filters:
            kept = apply_filters(rows, query.filters, resolver, query.filter_logic)
            allowed = include_set(kept)
            include = allowed if include is None else include & allowed

        block_results = [aggregator.aggregate(block, rows, buckets, include) for block in formula.blocks]
        return evaluate(formula, buckets, block_results)

    # --- validation ---

    def validate(self, formula: Formula) -> ValidationResult:
        """Check a formula against the catalog without computing anything."""
        return validate_formula(formula, self.catalog if self.catalog.objects else None)

    def load_formula(self, data: Mapping[str, Any]) -> tuple[Formula | None, ValidationResult]:
        """Parse and validate a serialized formula.

        returns (None, result) when the data doesn't even parse.
        """
        try:
            formula = Formula.model_validate(data)
        except ValidationError as e:
            return None, ValidationResult(valid=False, issues=issues_from_validation_error(e))
        return formula, self.validate(formula)

    # --- exploration ---

    def row_views(self, objects: list[str], fields: list[FieldRef] | None = None) -> list[RowView]:
        """Row views for a data list of the given objects."""
        return build_row_views(self.warehouse, objects, fields or [])

    def group_fields(self, objects: list[str]) -> list[FieldRef]:
        """Fields that can be grouped by for the given objects."""
        return available_group_fields(self.catalog, objects)

    def group_values(self, field: FieldRef | str, source_object: str | None = None) -> list[str]:
        """Most frequent values of a field, read through relationships from source_object."""
        field = FieldRef.parse(field) if isinstance(field, str) else field
        return group_values(
            self.warehouse,
            field,
            limit=self.settings.group_value_limit,
            resolver=self.resolver,
            source_object=source_object or field.object,
        )

    @property
    def cache_stats(self) -> dict[str, int]:
        return self.cache.stats

    def clear_cache(self) -> None:
        self.cache.clear()
