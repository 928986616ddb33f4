"""SQLite-backed local store for offline records."""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Collection, Iterator, Sequence

from pydantic import BaseModel

from tracker_offline_sync.exceptions import StoreWriteError
from tracker_offline_sync.store.schema import TABLES, TableSpec

logger = logging.getLogger(__name__)

# Upper bound of a text prefix range: sorts after any real path character
_PREFIX_SENTINEL = "\U0010ffff"

# Stay well below SQLite's host-parameter limit for IN (...) lookups
_MAX_IN_PARAMS = 500


@dataclass(frozen=True)
class Equals:
    value: Any


@dataclass(frozen=True)
class AnyOf:
    values: Collection[Any]


@dataclass(frozen=True)
class StartsWith:
    """Prefix match on a text index."""

    prefix: str


Predicate = Equals | AnyOf | StartsWith


def _to_column(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value


class LocalStore:
    """Keyed, indexed table set persisted in a SQLite database.

    Every public operation is atomic on its own. Use ``transaction()`` to make a
    sequence of calls atomic; nested transactions join the outermost one.

    Example:
        with LocalStore("./offline.db") as store:
            store.bulk_put("orgUnit", units)
            store.query("orgUnit", "path", StartsWith("/A/"))
    """

    def __init__(self, db_path: str | Path = ":memory:", tables: Sequence[TableSpec] = TABLES):
        """Open (and create if needed) the store.

        Args:
            db_path: SQLite database file, or ":memory:"
            tables: Table definitions
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.tables = {spec.name: spec for spec in tables}
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._tx_depth = 0
        self._create_tables()

    def _create_tables(self):
        """Create tables and indexes."""
        cursor = self.conn.cursor()
        for spec in self.tables.values():
            if spec.primary_key:
                columns = [f'"{spec.primary_key}" TEXT PRIMARY KEY']
            else:
                columns = ["_rowid INTEGER PRIMARY KEY AUTOINCREMENT"]
            columns.extend(f'"{name}"' for name in spec.indexes if name != spec.primary_key)
            columns.append("data TEXT NOT NULL")
            cursor.execute(f'CREATE TABLE IF NOT EXISTS "{spec.name}" ({", ".join(columns)})')

            for name in spec.indexes:
                if name == spec.primary_key:
                    continue
                cursor.execute(
                    f'CREATE INDEX IF NOT EXISTS "idx_{spec.name}_{name}" '
                    f'ON "{spec.name}"("{name}")'
                )
        self.conn.commit()

    def close(self):
        """Close the database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several operations into one atomic unit.

        Commits when the outermost block exits normally, rolls back otherwise.
        """
        self._tx_depth += 1
        try:
            yield
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.rollback()
            raise
        self._tx_depth -= 1
        if self._tx_depth == 0:
            self.conn.commit()

    @contextmanager
    def _writing(self, table: str) -> Iterator[None]:
        try:
            with self.transaction():
                yield
        except sqlite3.Error as e:
            raise StoreWriteError(table, str(e)) from e

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _spec(self, table: str) -> TableSpec:
        try:
            return self.tables[table]
        except KeyError:
            raise KeyError(f"Unknown table: {table}") from None

    def _column(self, spec: TableSpec, index: str) -> str:
        if index not in spec.key_columns:
            raise KeyError(f"Table '{spec.name}' has no index '{index}'")
        return index

    def _decode(self, spec: TableSpec, rows: list[sqlite3.Row]) -> list[Any]:
        return [spec.model.model_validate_json(row["data"]) for row in rows]

    def _row_values(self, spec: TableSpec, row: BaseModel) -> tuple:
        if not isinstance(row, spec.model):
            raise TypeError(
                f"Table '{spec.name}' stores {spec.model.__name__}, got {type(row).__name__}"
            )
        keys = tuple(_to_column(getattr(row, name)) for name in spec.key_columns)
        return keys + (row.model_dump_json(by_alias=True),)

    @staticmethod
    def _where(column: str, predicate: Predicate) -> tuple[str, list[Any]]:
        if isinstance(predicate, Equals):
            if predicate.value is None:
                return f'"{column}" IS NULL', []
            return f'"{column}" = ?', [_to_column(predicate.value)]
        if isinstance(predicate, AnyOf):
            values = [_to_column(v) for v in predicate.values]
            placeholders = ", ".join("?" for _ in values)
            return f'"{column}" IN ({placeholders})', values
        if isinstance(predicate, StartsWith):
            return (
                f'"{column}" >= ? AND "{column}" < ?',
                [predicate.prefix, predicate.prefix + _PREFIX_SENTINEL],
            )
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, table: str, key: str) -> Any | None:
        """Get one row by primary key.

        Args:
            table: Table name
            key: Primary key value

        Returns:
            Row model, or None if absent
        """
        spec = self._spec(table)
        if not spec.primary_key:
            raise ValueError(f"Table '{table}' has no primary key")
        row = self.conn.execute(
            f'SELECT data FROM "{table}" WHERE "{spec.primary_key}" = ?', (key,)
        ).fetchone()
        if row is None:
            return None
        return spec.model.model_validate_json(row["data"])

    def query(self, table: str, index: str, predicate: Predicate) -> list[Any]:
        """Query rows through an index.

        Args:
            table: Table name
            index: Indexed column (or the primary key)
            predicate: Equals, AnyOf or StartsWith

        Returns:
            Matching rows in insertion order
        """
        spec = self._spec(table)
        column = self._column(spec, index)

        if isinstance(predicate, AnyOf):
            values = list(dict.fromkeys(predicate.values))
            if not values:
                return []
            if len(values) > _MAX_IN_PARAMS:
                results = []
                for start in range(0, len(values), _MAX_IN_PARAMS):
                    chunk = AnyOf(values[start : start + _MAX_IN_PARAMS])
                    results.extend(self._select(spec, column, chunk))
                return results
            predicate = AnyOf(values)

        return self._select(spec, column, predicate)

    def _select(self, spec: TableSpec, column: str, predicate: Predicate) -> list[Any]:
        clause, params = self._where(column, predicate)
        rows = self.conn.execute(
            f'SELECT data FROM "{spec.name}" WHERE {clause} ORDER BY rowid', params
        ).fetchall()
        return self._decode(spec, rows)

    def all(self, table: str) -> list[Any]:
        """Get every row of a table in insertion order."""
        spec = self._spec(table)
        rows = self.conn.execute(f'SELECT data FROM "{table}" ORDER BY rowid').fetchall()
        return self._decode(spec, rows)

    def count(self, table: str) -> int:
        """Count rows in a table."""
        self._spec(table)
        return self.conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def bulk_put(self, table: str, rows: Sequence[BaseModel]) -> int:
        """Insert rows; rows with an existing primary key are replaced.

        Args:
            table: Table name
            rows: Row models of the table's type

        Returns:
            Number of rows written

        Raises:
            StoreWriteError: If SQLite rejects the write
        """
        spec = self._spec(table)
        if not rows:
            return 0

        columns = spec.key_columns + ("data",)
        column_list = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        verb = "INSERT OR REPLACE" if spec.primary_key else "INSERT"
        sql = f'{verb} INTO "{table}" ({column_list}) VALUES ({placeholders})'
        values = [self._row_values(spec, row) for row in rows]

        with self._writing(table):
            self.conn.executemany(sql, values)

        logger.debug(f"Stored {len(values)} rows in {table}")
        return len(values)

    def delete_where(
        self,
        table: str,
        index: str,
        values: Collection[Any],
        where: dict[str, Any] | None = None,
    ) -> int:
        """Delete rows whose indexed column is in ``values`` (single statement).

        Args:
            table: Table name
            index: Indexed column (or the primary key)
            values: Values to match
            where: Further indexed columns that must equal the given values

        Returns:
            Number of rows deleted
        """
        spec = self._spec(table)
        column = self._column(spec, index)
        values = list(dict.fromkeys(values))
        if not values:
            return 0

        clause, params = self._where(column, AnyOf(values))
        for name, value in (where or {}).items():
            extra, extra_params = self._where(self._column(spec, name), Equals(value))
            clause = f"{clause} AND {extra}"
            params.extend(extra_params)
        with self._writing(table):
            cursor = self.conn.execute(f'DELETE FROM "{table}" WHERE {clause}', params)
        return cursor.rowcount

    def clear(self, table: str) -> int:
        """Delete every row of a table.

        Returns:
            Number of rows deleted
        """
        self._spec(table)
        with self._writing(table):
            cursor = self.conn.execute(f'DELETE FROM "{table}"')
        return cursor.rowcount
