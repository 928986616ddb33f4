"""Tracking of locally created records awaiting upload."""

import logging
from typing import Any, Callable, Sequence

from tracker_offline_sync.models.tracker import EnrollmentRow, EventRow, TrackedEntityRow
from tracker_offline_sync.store.local import Equals, LocalStore
from tracker_offline_sync.store.schema import ENROLLMENT, EVENT, TRACKED_ENTITY, TRANSACTIONAL_TABLES

logger = logging.getLogger(__name__)

# table -> (natural key index, key extractor)
NATURAL_KEYS: dict[str, tuple[str, Callable[[Any], str]]] = {
    ENROLLMENT: ("enrollment_id", lambda row: row.enrollment_id),
    TRACKED_ENTITY: ("tracked_entity_id", lambda row: row.tracked_entity_id),
    EVENT: ("event_id", lambda row: row.event_id),
}

Row = EnrollmentRow | TrackedEntityRow | EventRow


class OfflineChangeTracker:
    """Marks rows as locally originated and lists those not yet pushed.

    A local mutation replaces every stored row of the same natural key with the
    given rows flagged ``is_online=False``. Reconciliation and resync clears
    leave such rows alone until the server returns their key.
    """

    def __init__(self, store: LocalStore, tables: Sequence[str] = TRANSACTIONAL_TABLES):
        self.store = store
        self.tables = tuple(tables)

    def mark_local(self, table: str, rows: Row | Sequence[Row]) -> int:
        """Flag rows as local and persist them.

        Args:
            table: Transactional table name
            rows: One row, or all rows (one per attribute) of one or more records

        Returns:
            Number of rows written
        """
        if table not in NATURAL_KEYS:
            raise KeyError(f"Table '{table}' does not track offline changes")
        if not isinstance(rows, (list, tuple)):
            rows = [rows]
        if not rows:
            return 0

        key_index, key_extractor = NATURAL_KEYS[table]
        local_rows = [row.model_copy(update={"is_online": False}) for row in rows]
        keys = list(dict.fromkeys(key_extractor(row) for row in local_rows))

        with self.store.transaction():
            self.store.delete_where(table, key_index, keys)
            written = self.store.bulk_put(table, local_rows)

        logger.info(f"Marked {written} {table} rows as local ({len(keys)} records)")
        return written

    def list_unsynced(self) -> dict[str, list[Row]]:
        """All rows with ``is_online=False``, keyed by table."""
        return {
            table: self.store.query(table, "is_online", Equals(False)) for table in self.tables
        }

    def count_unsynced(self) -> dict[str, int]:
        return {table: len(rows) for table, rows in self.list_unsynced().items()}

    def has_unsynced(self) -> bool:
        return any(self.count_unsynced().values())
