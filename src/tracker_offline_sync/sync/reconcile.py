"""Reconciliation: delete stale rows by natural key, then insert the fresh batch."""

import logging
from typing import Any, Callable, Iterable, Iterator, Sequence, TypeVar

from tracker_offline_sync.models.results import ReconcileResult
from tracker_offline_sync.store.local import LocalStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 200


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split a sequence into lists of at most ``size`` items."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def natural_keys(rows: Iterable[Any], key_extractor: Callable[[Any], str]) -> list[str]:
    """Distinct natural keys of ``rows`` in first-seen order."""
    return list(dict.fromkeys(key_extractor(row) for row in rows))


class Reconciler:
    """Replaces stored rows that share a natural key with a new batch.

    A remote record can change shape between pulls (e.g., lose an attribute), so
    every row for a returned key is deleted before the new rows are inserted.
    Keys are deleted in chunks of at most ``chunk_size`` to keep each statement's
    parameter list bounded. Rows whose key is not in the batch are never touched,
    which keeps locally created rows alive until the server returns their key.

    Example:
        reconciler = Reconciler(store)
        reconciler.reconcile("enrollment", "enrollment_id", rows, lambda r: r.enrollment_id)
    """

    def __init__(self, store: LocalStore, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Initialize reconciler.

        Args:
            store: Local store
            chunk_size: Max natural keys per delete statement
        """
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.store = store
        self.chunk_size = chunk_size

    def reconcile(
        self,
        table: str,
        key_index: str,
        new_rows: Sequence[Any],
        key_extractor: Callable[[Any], str],
    ) -> ReconcileResult:
        """Delete rows sharing natural keys with ``new_rows``, then insert them.

        Runs in one store transaction: the batch is either fully applied or not
        at all.

        Args:
            table: Table name
            key_index: Index holding the natural key
            new_rows: Freshly transformed rows
            key_extractor: Returns a row's natural key

        Returns:
            ReconcileResult with key, batch and row counts

        Raises:
            StoreWriteError: If the store rejects a write
        """
        keys = natural_keys(new_rows, key_extractor)
        result = ReconcileResult(keys=len(keys))
        if not keys:
            return result

        with self.store.transaction():
            for batch in chunked(keys, self.chunk_size):
                result.rows_deleted += self.store.delete_where(table, key_index, batch)
                result.delete_batches += 1
            result.rows_inserted = self.store.bulk_put(table, new_rows)

        logger.debug(
            f"Reconciled {table}: {result.keys} keys, {result.rows_deleted} deleted, "
            f"{result.rows_inserted} inserted in {result.delete_batches} batches"
        )
        return result
