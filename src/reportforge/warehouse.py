"""In-memory warehouse of normalized tables.

the engine only ever reads from here. tables are plain lists of dicts, keyed
by the catalog's canonical object name. callers can ask for either spelling
("customer" or "customers") - the alias map that makes that work is built
once, when a table is registered, rather than guessed at lookup time.

every table carries a version token. the loading layer bumps it by calling
set_table, and the relationship index cache keys on it.

file loading goes through duckdb for csv/parquet since it sniffs types and
delimiters far better than anything I'd write by hand.
"""

import itertools
import json
import logging
from collections.abc import Hashable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import duckdb

from reportforge.models.catalog import SchemaCatalog

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# process-wide so two warehouses never hand out the same token
_version_counter = itertools.count(1)


class Warehouse:
    """Read-only view over entity tables."""

    def __init__(
        self,
        tables: Mapping[str, list[Row]] | None = None,
        catalog: SchemaCatalog | None = None,
    ) -> None:
        self.catalog = catalog or SchemaCatalog()
        self._tables: dict[str, list[Row]] = {}
        self._versions: dict[str, Hashable] = {}
        self._aliases: dict[str, str] = {}
        self._register_catalog_aliases()
        for name, rows in (tables or {}).items():
            self.set_table(name, rows)

    def _register_catalog_aliases(self) -> None:
        for obj in self.catalog.objects:
            for alias in (obj.name, obj.table_name, f"{obj.name}s"):
                self._aliases.setdefault(alias, obj.name)

    # --- loading layer api ---

    def set_table(self, name: str, rows: list[Row]) -> None:
        """Register or replace a table and bump its version."""
        key = self.canonical(name)
        if key == name and name not in self._aliases:
            # not a catalog object - accept both spellings of whatever we got
            self._aliases[name] = name
            alt = name[:-1] if name.endswith("s") else f"{name}s"
            self._aliases.setdefault(alt, name)
        self._tables[key] = rows
        self._versions[key] = next(_version_counter)
        logger.debug("registered table %s (%d rows, version %s)", key, len(rows), self._versions[key])

    # --- read api ---

    def canonical(self, name: str) -> str:
        """Canonical table key for a singular or plural name."""
        return self._aliases.get(name, name)

    def has_table(self, name: str) -> bool:
        return self.canonical(name) in self._tables

    def rows(self, name: str) -> list[Row]:
        """Rows for a table, or an empty list when it isn't loaded (yet)."""
        return self._tables.get(self.canonical(name), [])

    def version(self, name: str) -> Hashable:
        return self._versions.get(self.canonical(name), 0)

    @property
    def tables(self) -> Mapping[str, list[Row]]:
        return MappingProxyType(self._tables)

    def restrict(self, replacements: Mapping[str, list[Row]], tag: Hashable) -> "Warehouse":
        """A new warehouse with some tables swapped for filtered copies.

        untouched tables are shared, along with their versions, so any indexes
        already built for them stay valid. replaced tables get a version derived
        from the original plus `tag`, so their indexes never collide with the
        original's and the cache can tell which table they were cut from.
        """
        restricted = Warehouse(catalog=self.catalog)
        restricted._aliases = dict(self._aliases)
        restricted._tables = dict(self._tables)
        restricted._versions = dict(self._versions)
        for name, rows in replacements.items():
            key = self.canonical(name)
            restricted._tables[key] = rows
            restricted._versions[key] = (self.version(key), tag)
        return restricted

    # --- file loading ---

    @classmethod
    def from_json(cls, path: str | Path, catalog: SchemaCatalog | None = None) -> "Warehouse":
        """Load a single json export shaped like {"customers": [...], "payments": [...]}."""
        path = Path(path)
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Expected an object of tables in {path}")
        return cls(data, catalog)

    @classmethod
    def from_directory(cls, path: str | Path, catalog: SchemaCatalog | None = None) -> "Warehouse":
        """Load one table per file from a directory.

        the file stem is the table name. json files hold either a list of rows
        or an object of tables; csv and parquet go through duckdb.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Data directory not found: {path}")

        warehouse = cls(catalog=catalog)
        files = sorted(p for p in path.iterdir() if p.suffix in (".json", ".csv", ".parquet"))
        if not files:
            raise ValueError(f"No data files found in {path}")

        conn: duckdb.DuckDBPyConnection | None = None
        try:
            for file in files:
                if file.suffix == ".json":
                    with open(file) as f:
                        data = json.load(f)
                    if isinstance(data, dict):
                        for name, rows in data.items():
                            warehouse.set_table(name, rows)
                    else:
                        warehouse.set_table(file.stem, data)
                    continue

                # only open a connection if there's actually something tabular to read
                if conn is None:
                    conn = duckdb.connect(":memory:")
                reader = "read_parquet" if file.suffix == ".parquet" else "read_csv_auto"
                warehouse.set_table(file.stem, _fetch_rows(conn, f"SELECT * FROM {reader}(?)", [str(file)]))
        finally:
            if conn is not None:
                conn.close()
        return warehouse


def _fetch_rows(conn: duckdb.DuckDBPyConnection, sql: str, params: list[Any] | None = None) -> list[Row]:
    result = conn.execute(sql, params or [])
    columns = [desc[0] for desc in result.description]
    return [dict(zip(columns, row)) for row in result.fetchall()]
