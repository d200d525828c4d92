"""Group-by breakdowns.

a group is computed by restricting the warehouse and running the normal
pipeline again, not by post-filtering a result. the primary table is cut down
to the rows whose field value matches the group, and every other table the
formula reads from is cut down to the rows still connected to a surviving
primary row. that keeps joined aggregates consistent within a group - payments
grouped by customer country only count refunds of those same payments.
"""

import logging
from collections import Counter
from collections.abc import Callable
from typing import Any

from reportforge.engine.relationships import RelationshipResolver
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import FieldRef
from reportforge.models.query import MetricResult, ReportQuery
from reportforge.warehouse import Row, Warehouse

logger = logging.getLogger(__name__)


def group_key(value: Any) -> str | None:
    """String form of a group value. None stays None and never forms a group."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _propagate(
    resolver: RelationshipResolver,
    primary: str,
    kept: list[Row],
    dependent: str,
) -> list[Row] | None:
    """Rows of `dependent` still connected to the kept primary rows.

    None means there's no relationship path at all and the table should be
    left alone.
    """
    warehouse = resolver.warehouse
    to_primary = resolver.find_path(dependent, primary)
    from_primary = resolver.find_path(primary, dependent)
    if to_primary is None and from_primary is None:
        return None

    kept_ids = {row.get("id") for row in kept}
    rows = warehouse.rows(dependent)

    reachable: set[Any] = set()
    if from_primary is not None:
        reachable = set(resolver.resolve_many(kept, primary, FieldRef(object=dependent, field="id")))
        reachable.discard(None)

    owners: list[Any] = [None] * len(rows)
    if to_primary is not None:
        owners = resolver.resolve_many(rows, dependent, FieldRef(object=primary, field="id"))

    return [
        row
        for row, owner in zip(rows, owners)
        if row.get("id") in reachable or (owner is not None and owner in kept_ids)
    ]


def group_by(
    compute: Callable[[ReportQuery, Warehouse], MetricResult],
    warehouse: Warehouse,
    resolver: RelationshipResolver,
    query: ReportQuery,
    field: FieldRef,
    selected_values: list[str],
) -> dict[str, MetricResult]:
    """One MetricResult per selected group value, in the order given.

    Args:
        compute: Runs a query against a (restricted) warehouse.
        warehouse: The full warehouse.
        resolver: Resolver bound to `warehouse`.
        query: The query to break down.
        field: Field to group by. may live on a related object.
        selected_values: Group values as strings, as returned by group_values.
    """
    primary = query.primary_object
    if primary is None:
        return {value: compute(query, warehouse) for value in selected_values}

    primary = warehouse.canonical(primary)
    primary_rows = warehouse.rows(primary)
    keys = [group_key(v) for v in resolver.resolve_many(primary_rows, primary, field)]

    dependents = []
    for name in query.dependent_objects():
        canonical = warehouse.canonical(name)
        if canonical != primary and canonical not in dependents:
            dependents.append(canonical)

    results: dict[str, MetricResult] = {}
    for value in selected_values:
        kept = [row for row, key in zip(primary_rows, keys) if key == value]
        replacements: dict[str, list[Row]] = {primary: kept}
        for dependent in dependents:
            restricted_rows = _propagate(resolver, primary, kept, dependent)
            if restricted_rows is not None:
                replacements[dependent] = restricted_rows

        logger.debug(
            "group %s=%s: %d of %d %s rows", field.qualified, value, len(kept), len(primary_rows), primary
        )
        restricted = warehouse.restrict(replacements, tag=("group", field.qualified, value))
        results[value] = compute(query, restricted)
    return results


def available_group_fields(catalog: SchemaCatalog, objects: list[str]) -> list[FieldRef]:
    """Categorical (string or enum) fields of the given objects."""
    fields: list[FieldRef] = []
    for name in objects:
        obj = catalog.get_object(name)
        if obj is None:
            continue
        fields.extend(FieldRef(object=obj.name, field=f.name) for f in obj.fields if f.is_categorical)
    return fields


def group_values(
    warehouse: Warehouse,
    field: FieldRef,
    limit: int = 100,
    resolver: RelationshipResolver | None = None,
    source_object: str | None = None,
) -> list[str]:
    """Distinct values of a field, most frequent first.

    ties keep first-appearance order. with a resolver and a source object the
    values are read through relationships from the source object's rows, which
    is what the group-by pick list needs when grouping payments by a customer
    field.
    """
    if resolver is not None and source_object is not None:
        rows = warehouse.rows(source_object)
        raw = resolver.resolve_many(rows, source_object, field)
    else:
        raw = [row.get(field.field) for row in warehouse.rows(field.object)]

    counts = Counter(key for key in (group_key(v) for v in raw) if key is not None)
    return [value for value, _ in counts.most_common(limit)]
