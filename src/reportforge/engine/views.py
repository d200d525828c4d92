"""Row views: a uniform shape over warehouse rows.

every row the engine touches gets projected into a RowView - qualified display
values for the selected fields, a primary key, and one canonical timestamp.
views are rebuilt on every call and never cached; they're cheap and keeping
them around just invites staleness.

example:
    RowView(
        display={"payment.amount": 29900, "payment.created": "2025-03-15"},
        pk=PrimaryKey("payment", "pi_001"),
        ts="2025-03-15",
    )
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

from reportforge.engine.time import parse_timestamp, to_date
from reportforge.errors import InvariantError
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import FieldRef
from reportforge.warehouse import Row, Warehouse

# used when the catalog doesn't declare timestamp_fields for an object.
# first non-empty candidate wins, so order is priority.
DEFAULT_TIMESTAMP_FIELDS: dict[str, list[str]] = {
    "subscription": ["current_period_start", "created"],
    "subscription_schedule": ["created", "current_phase_start"],
    "invoice": ["created", "period_start"],
    "invoice_item": ["created", "period_start"],
    "discount": ["start"],
    "balance_transaction": ["created", "available_on"],
    "checkout_session": ["created", "expires_at"],
    "payout": ["arrival_date", "created"],
}


@dataclass(frozen=True)
class PrimaryKey:
    object: str
    id: Any

    @property
    def key(self) -> str:
        return f"{self.object}:{self.id}"


@dataclass(frozen=True)
class RowView:
    display: dict[str, Any]
    pk: PrimaryKey
    ts: str | None
    # the source row, for fields that weren't selected for display
    record: Row = field(repr=False, compare=False)
    # ts parsed once up front, every date-bounded step needs it
    at: datetime | None = field(default=None, repr=False, compare=False)

    @property
    def key(self) -> str:
        return self.pk.key


def timestamp_fields(catalog: SchemaCatalog, object_name: str) -> list[str]:
    """Timestamp candidates for an object, in priority order."""
    obj = catalog.get_object(object_name)
    if obj is not None and obj.timestamp_fields:
        return obj.timestamp_fields
    return DEFAULT_TIMESTAMP_FIELDS.get(object_name, ["created"])


def pick_timestamp(record: Row, candidates: Iterable[str]) -> tuple[str | None, datetime | None]:
    """First usable timestamp on a record, as (iso string, parsed datetime)."""
    for name in candidates:
        value = record.get(name)
        if not value:
            continue
        parsed = parse_timestamp(value)
        if parsed is None:
            continue
        return (value if isinstance(value, str) else parsed.isoformat()), parsed
    return None, None


def build_row_views(
    warehouse: Warehouse,
    selected_objects: list[str],
    selected_fields: list[FieldRef],
) -> list[RowView]:
    """Project warehouse rows into RowViews.

    one view per row of every selected object, in table order. display only
    carries the selected fields that belong to the row's own object - fields
    on other objects are resolved through relationships by whoever needs them.
    """
    views: list[RowView] = []
    seen: set[str] = set()
    for requested in selected_objects:
        name = warehouse.canonical(requested)
        if name in seen:
            continue
        seen.add(name)

        own_fields = [f for f in selected_fields if warehouse.canonical(f.object) == name]
        candidates = timestamp_fields(warehouse.catalog, name)
        for record in warehouse.rows(name):
            row_id = record.get("id")
            if row_id is None:
                # pk-based selection and caching fall apart without ids
                raise InvariantError(f"Row in table '{name}' has no id: {record!r}")
            ts, at = pick_timestamp(record, candidates)
            views.append(
                RowView(
                    display={f.qualified: record.get(f.field) for f in own_fields},
                    pk=PrimaryKey(name, row_id),
                    ts=ts,
                    record=record,
                    at=at,
                )
            )
    return views


def read_field(row: RowView, ref: FieldRef, resolver: Any = None) -> Any:
    """Value of `ref` for a row view.

    display map first, then the row's own record, then the relationship
    resolver for fields that live on another object. resolver is typed loosely
    to keep views free of an import cycle with the resolver module.
    """
    if ref.qualified in row.display:
        return row.display[ref.qualified]
    if resolver is None:
        return row.record.get(ref.field) if ref.object == row.pk.object else None
    if resolver.warehouse.canonical(ref.object) == row.pk.object:
        return row.record.get(ref.field)
    return resolver.resolve(row.record, row.pk.object, ref)


def row_key(row: RowView) -> str:
    return row.pk.key


def filter_rows_by_date(rows: list[RowView], start: date, end: date) -> list[RowView]:
    """Rows whose canonical timestamp falls within [start, end] (inclusive days)."""
    kept = []
    for row in rows:
        day = to_date(row.at)
        if day is not None and start <= day <= end:
            kept.append(row)
    return kept


def sort_rows(
    rows: list[RowView],
    qualified_field: str,
    direction: Literal["asc", "desc"] = "asc",
) -> list[RowView]:
    """Sort by a display field. nulls always go last, whichever direction."""
    present = [r for r in rows if r.display.get(qualified_field) is not None]
    missing = [r for r in rows if r.display.get(qualified_field) is None]

    def sort_key(row: RowView) -> tuple[int, Any]:
        value = row.display[qualified_field]
        if isinstance(value, bool):
            return (0, int(value))
        if isinstance(value, (int, float)):
            return (1, value)
        return (2, str(value))

    present.sort(key=sort_key, reverse=(direction == "desc"))
    return present + missing


def to_record(row: RowView, object_name: str) -> Row:
    """Strip qualification back off for one object's display fields."""
    prefix = f"{object_name}."
    record: Row = {"id": row.pk.id}
    for key, value in row.display.items():
        if key.startswith(prefix):
            record[key[len(prefix):]] = value
    return record
