"""Relationship resolution across warehouse tables.

given a row of one object and a field on another object, walk the declared
foreign keys until we land on the other object. a join that doesn't resolve
just yields None - tables load independently so a missing target is normal
data absence, not a bug.

lookups go through per-(table, field) hash indexes. they're built lazily, once
per table version, and owned by an IndexCache that the engine holds on to, so
repeated queries over the same warehouse don't rebuild anything.
"""

import logging
from collections import deque
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any

from reportforge.models.catalog import Edge
from reportforge.models.formula import FieldRef
from reportforge.warehouse import Row, Warehouse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _IndexEntry:
    row_count: int
    index: dict[Hashable, list[Row]]


def _base_version(version: Hashable) -> Hashable:
    """Version of the unrestricted table a (possibly nested) restricted version came from."""
    while isinstance(version, tuple):
        version = version[0]
    return version


class IndexCache:
    """Hash indexes keyed by (table, table version, field).

    an entry is also checked against the table's current row count, so a table
    that was appended to in place gets re-indexed even if nobody bumped its
    version. entries are built completely and then stored in one assignment,
    so a reader never sees a half-built index.

    storing an index drops older versions of the same (table, field). the
    unrestricted index a restricted copy derives from is kept, so at most two
    entries per (table, field) survive a group-by.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, Hashable, str], _IndexEntry] = {}
        self.hits = 0
        self.builds = 0

    def get(self, warehouse: Warehouse, table: str, field: str) -> dict[Hashable, list[Row]]:
        name = warehouse.canonical(table)
        rows = warehouse.rows(name)
        key = (name, warehouse.version(name), field)

        entry = self._entries.get(key)
        if entry is not None and entry.row_count == len(rows):
            self.hits += 1
            return entry.index

        index: dict[Hashable, list[Row]] = {}
        for row in rows:
            value = row.get(field)
            if value is None or not isinstance(value, Hashable):
                continue
            index.setdefault(value, []).append(row)

        self._entries[key] = _IndexEntry(row_count=len(rows), index=index)
        self._evict(name, field, keep=(key[1], _base_version(key[1])))
        self.builds += 1
        logger.debug("indexed %s.%s (%d rows, %d keys)", name, field, len(rows), len(index))
        return index

    def _evict(self, name: str, field: str, keep: tuple[Hashable, ...]) -> None:
        stale = [k for k in self._entries if k[0] == name and k[2] == field and k[1] not in keep]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("evicted %d stale indexes for %s.%s", len(stale), name, field)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def stats(self) -> dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "builds": self.builds}


class RelationshipResolver:
    """Resolves fields on related objects through the catalog's foreign keys."""

    def __init__(self, warehouse: Warehouse, cache: IndexCache | None = None) -> None:
        self.warehouse = warehouse
        self.catalog = warehouse.catalog
        self.cache = cache or IndexCache()

        # adjacency list in declaration order, forward edges first
        self._edges: dict[str, list[Edge]] = {}
        for edge in self.catalog.edges():
            self._edges.setdefault(edge.source_object, []).append(edge)
        self._paths: dict[tuple[str, str], list[Edge] | None] = {}

    def with_warehouse(self, warehouse: Warehouse) -> "RelationshipResolver":
        """Same index cache, different (usually restricted) warehouse."""
        return RelationshipResolver(warehouse, cache=self.cache)

    def lookup(self, table: str, field: str, value: Any) -> list[Row]:
        """All rows of `table` whose `field` equals `value`."""
        if value is None or not isinstance(value, Hashable):
            return []
        return self.cache.get(self.warehouse, table, field).get(value, [])

    def record(self, table: str, row_id: Any) -> Row | None:
        """Fetch a row by primary key."""
        matches = self.lookup(table, "id", row_id)
        return matches[0] if matches else None

    def resolve(self, row: Row, source_object: str, target: FieldRef) -> Any:
        """Value of `target` reachable from `row`, or None.

        breadth first over the relationship graph, only following edges whose
        key is actually present on the row we're standing on. a reverse
        (one-to-many) hop takes the first child in table order.
        """
        source = self.warehouse.canonical(source_object)
        goal = self.warehouse.canonical(target.object)
        if source == goal:
            return row.get(target.field)

        queue: deque[tuple[str, Row]] = deque([(source, row)])
        visited = {source}
        while queue:
            obj, current = queue.popleft()
            for edge in self._edges.get(obj, []):
                if edge.target_object in visited:
                    continue
                matches = self.lookup(edge.target_object, edge.target_field, current.get(edge.source_field))
                if not matches:
                    continue
                if edge.target_object == goal:
                    return matches[0].get(target.field)
                visited.add(edge.target_object)
                queue.append((edge.target_object, matches[0]))
        return None

    def find_path(self, source_object: str, target_object: str) -> list[Edge] | None:
        """Shortest schema-level path between two objects (memoized)."""
        source = self.warehouse.canonical(source_object)
        goal = self.warehouse.canonical(target_object)
        cache_key = (source, goal)
        if cache_key in self._paths:
            return self._paths[cache_key]

        path: list[Edge] | None = None
        if source == goal:
            path = []
        else:
            queue: deque[tuple[str, list[Edge]]] = deque([(source, [])])
            visited = {source}
            while queue and path is None:
                obj, trail = queue.popleft()
                for edge in self._edges.get(obj, []):
                    if edge.target_object in visited:
                        continue
                    if edge.target_object == goal:
                        path = trail + [edge]
                        break
                    visited.add(edge.target_object)
                    queue.append((edge.target_object, trail + [edge]))

        self._paths[cache_key] = path
        return path

    def resolve_many(self, rows: list[Row], source_object: str, target: FieldRef) -> list[Any]:
        """Resolve `target` for many rows of the same object.

        the schema path is worked out once and every row just walks it. rows
        where the walk breaks (a null foreign key somewhere along the way) fall
        back to the per-row search, which may find a different route.
        """
        path = self.find_path(source_object, target.object)
        if path is None:
            return [None] * len(rows)
        if not path:
            return [row.get(target.field) for row in rows]

        values: list[Any] = []
        for row in rows:
            current: Row | None = row
            for edge in path:
                matches = self.lookup(edge.target_object, edge.target_field, current.get(edge.source_field))
                current = matches[0] if matches else None
                if current is None:
                    break
            if current is None:
                values.append(self.resolve(row, source_object, target))
            else:
                values.append(current.get(target.field))
        return values
