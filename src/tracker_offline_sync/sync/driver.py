"""Paginated sync driver - pulls one entity type page by page into the local store."""

import logging
from typing import Sequence

from tracker_offline_sync.clients.base import RemoteSource
from tracker_offline_sync.exceptions import RemoteError, TransformError, TransientFetchError
from tracker_offline_sync.models.remote import ListQuery
from tracker_offline_sync.models.results import EntitySyncResult, SyncStatus
from tracker_offline_sync.progress import PhaseProgress
from tracker_offline_sync.store.local import Equals, LocalStore
from tracker_offline_sync.sync.cancel import CancelToken
from tracker_offline_sync.sync.entities import EntitySpec
from tracker_offline_sync.sync.reconcile import Reconciler, chunked
from tracker_offline_sync.sync.transform import TransformContext

logger = logging.getLogger(__name__)


class PaginatedSyncDriver:
    """Drives a full resync of one entity over a set of scope units.

    For each (scope unit, program) pair, pages are requested from 1 until a page
    comes back empty or the page index passes the reported page count. Each page
    is transformed and reconciled before the next one is requested, so memory is
    bounded to one page and every finished page is durable.

    Failure isolation:
    - A malformed record is skipped and counted.
    - A failed page fetch abandons the current pair; other pairs and units go on.
      When the first page fails, the pair's previously pulled rows stay in place.
    - A store write failure propagates to the caller.

    Example:
        driver = PaginatedSyncDriver(remote, store)
        result = driver.sync_entity(enrollment_spec(config), ["DiszpKrYNg8"], ["IpHINAT79UW"])
    """

    def __init__(
        self,
        remote: RemoteSource,
        store: LocalStore,
        reconciler: Reconciler | None = None,
        page_size: int = 50,
    ):
        """Initialize driver.

        Args:
            remote: Remote source
            store: Local store
            reconciler: Reconciler (default: one bound to ``store``)
            page_size: Records per page request
        """
        self.remote = remote
        self.store = store
        self.reconciler = reconciler or Reconciler(store)
        self.page_size = page_size

    def sync_entity(
        self,
        spec: EntitySpec,
        scope_units: Sequence[str],
        programs: Sequence[str] = (),
        progress: PhaseProgress | None = None,
        cancel: CancelToken | None = None,
        clear_before_sync: bool | None = None,
        context: TransformContext | None = None,
    ) -> EntitySyncResult:
        """Resync one entity for every (scope unit, program) pair.

        Args:
            spec: Entity definition
            scope_units: Scope unit values (org unit ids, id chunks, ...)
            programs: Programs to pair with each unit; empty means no program filter
            progress: Receives one update per completed scope unit
            cancel: Checked before each scope unit
            clear_before_sync: Override ``spec.clear_before_sync``
            context: Transform context (default: now, online)

        Returns:
            EntitySyncResult

        Raises:
            StoreWriteError: If the local store rejects a write
        """
        units = list(dict.fromkeys(scope_units))
        pairs_programs: list[str | None] = list(dict.fromkeys(programs)) or [None]
        context = context or TransformContext()
        result = EntitySyncResult(phase_id=spec.phase_id, units_total=len(units))

        if not units:
            logger.info(f"No scope units for {spec.phase_id}, nothing to sync")
            if progress:
                progress.complete()
            return result

        clear = spec.clear_before_sync if clear_before_sync is None else clear_before_sync
        clear = clear and spec.clear_index is not None
        if clear:
            result.rows_cleared = self._clear_out_of_scope(spec, units, programs)

        for index, unit in enumerate(units, start=1):
            if cancel is not None and cancel.is_cancelled:
                logger.info(
                    f"{spec.phase_id} cancelled after {result.units_completed}/{len(units)} units"
                )
                result.status = SyncStatus.CANCELLED
                return result

            for program in pairs_programs:
                try:
                    self._sync_pair(spec, unit, program, context, result, clear)
                except (TransientFetchError, RemoteError) as e:
                    result.pairs_skipped += 1
                    scope = f"unit {unit}, program {program}" if program else f"unit {unit}"
                    logger.warning(f"Skipping {spec.phase_id} for {scope}: {e}")

            result.units_completed = index
            if progress:
                progress.update(index / len(units) * 100)

        logger.info(
            f"{spec.phase_id}: {result.units_completed} units, {result.rows_written} rows, "
            f"{result.pairs_skipped} pairs skipped, {result.records_skipped} records skipped"
        )
        return result

    def _sync_pair(
        self,
        spec: EntitySpec,
        unit: str,
        program: str | None,
        context: TransformContext,
        result: EntitySyncResult,
        clear: bool = False,
    ):
        """Fetch and reconcile every page for one (unit, program) pair.

        With ``clear``, the pair's server-confirmed rows are deleted in the same
        transaction that writes its first page, so a pair whose first fetch
        fails keeps the rows of the previous pull.
        """
        filters = spec.filters(unit, program)
        page = 1

        while True:
            query = ListQuery(
                scope_filters=filters,
                page=page,
                page_size=self.page_size,
                fields=spec.fields,
            )
            response = self.remote.list(spec.resource_path, query)
            result.pages_fetched += 1

            rows = []
            for record in response.instances:
                try:
                    rows.extend(spec.transformer(record, context))
                except TransformError as e:
                    result.records_skipped += 1
                    logger.warning(f"Skipping record: {e}")

            with self.store.transaction():
                if clear and page == 1:
                    result.rows_cleared += self._clear_pair(spec, unit, program)
                reconciled = self.reconciler.reconcile(
                    spec.table, spec.key_index, rows, spec.key_extractor
                )
            result.rows_written += reconciled.rows_inserted

            if not response.instances:
                break

            # Page count is re-read on every page; the server may revise it
            if page >= response.page_count:
                break
            page += 1

    def _clear_out_of_scope(
        self, spec: EntitySpec, units: Sequence[str], programs: Sequence[str]
    ) -> int:
        """Delete server-confirmed rows that no requested pair covers.

        Rows inside the requested scope are cleared pair by pair once each
        pair's first page arrives.
        """
        scope = {value for unit in units for value in spec.scope_values(unit)}
        wanted = set(programs) if spec.program_index else set()
        stale = set()
        for row in self.store.query(spec.table, "is_online", Equals(True)):
            if getattr(row, spec.clear_index) not in scope:
                stale.add(spec.key_extractor(row))
            elif wanted and getattr(row, spec.program_index) not in wanted:
                stale.add(spec.key_extractor(row))

        cleared = 0
        for batch in chunked(sorted(stale), self.reconciler.chunk_size):
            cleared += self.store.delete_where(
                spec.table, spec.key_index, batch, where={"is_online": True}
            )
        if cleared:
            logger.info(f"Cleared {cleared} server rows of {spec.table} outside the requested scope")
        return cleared

    def _clear_pair(self, spec: EntitySpec, unit: str, program: str | None) -> int:
        """Delete the server-confirmed rows one (unit, program) pair covers."""
        # Locally created rows are kept until the server confirms them
        where = {"is_online": True}
        if program and spec.program_index:
            where[spec.program_index] = program
        cleared = self.store.delete_where(
            spec.table, spec.clear_index, spec.scope_values(unit), where=where
        )
        if cleared:
            logger.debug(f"Cleared {cleared} server rows of {spec.table} for unit {unit}")
        return cleared
