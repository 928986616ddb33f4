"""SyncCoordinator - orchestrates the ordered multi-entity pull."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from tracker_offline_sync.clients.base import RemoteSource
from tracker_offline_sync.config import (
    PHASE_ENROLLMENTS,
    PHASE_EVENTS,
    PHASE_OPTION_SETS,
    PHASE_ORG_UNIT_LEVELS,
    PHASE_ORG_UNITS,
    PHASE_PROFILE,
    PHASE_PROGRAMS,
    PHASE_TRACKED_ENTITIES,
    SyncConfig,
)
from tracker_offline_sync.exceptions import FatalConfigError, SyncError, TransformError
from tracker_offline_sync.models.remote import ListQuery
from tracker_offline_sync.models.results import EntitySyncResult, PhaseResult, SyncReport, SyncStatus
from tracker_offline_sync.progress import PhaseProgress, ProgressChannel, SyncProgress
from tracker_offline_sync.store.local import AnyOf, LocalStore
from tracker_offline_sync.store.schema import (
    ENROLLMENT,
    OPTION_SET,
    ORG_UNIT,
    ORG_UNIT_LEVEL,
    PROFILE,
    PROGRAM,
)
from tracker_offline_sync.sync.cancel import CancelToken
from tracker_offline_sync.sync.driver import PaginatedSyncDriver
from tracker_offline_sync.sync.entities import enrollment_spec, event_spec, tracked_entity_spec
from tracker_offline_sync.sync.hierarchy import HierarchyBuilder, MergeMode
from tracker_offline_sync.sync.reconcile import Reconciler, chunked
from tracker_offline_sync.sync.transform import (
    Transformer,
    TransformContext,
    transform_option_set,
    transform_org_unit_level,
    transform_profile,
    transform_program,
)

logger = logging.getLogger(__name__)

# (rows written, records skipped)
PhaseOutcome = tuple[int, int]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncCoordinator:
    """Runs a full pull: metadata first, then paginated tracker data.

    Phase order:
        profile -> org unit levels -> org units -> programs -> option sets
        -> enrollments -> tracked entities -> events

    Tracked entities and events are scoped by the enrollments just pulled.
    Progress is published on ``self.progress`` as two stages, "metadata" and
    "data", each running 0 to 100.

    A failure in any phase stops the run and is reported in the returned
    SyncReport; rows written by earlier phases (and pages) stay in the store.

    Example:
        coordinator = SyncCoordinator(client, store)
        coordinator.progress.subscribe(lambda e: print(e.phase_id, e.percent))
        report = coordinator.run(["DiszpKrYNg8"])
    """

    def __init__(
        self,
        remote: RemoteSource,
        store: LocalStore,
        config: SyncConfig | None = None,
        progress: ProgressChannel | None = None,
    ):
        """Initialize coordinator.

        Args:
            remote: Remote source
            store: Local store
            config: Sync configuration (default: SyncConfig())
            progress: Channel to publish progress on (default: a new channel)
        """
        self.remote = remote
        self.store = store
        self.config = config or SyncConfig()
        self.progress = progress or ProgressChannel()
        self.reconciler = Reconciler(store, chunk_size=self.config.delete_chunk_size)
        self.driver = PaginatedSyncDriver(
            remote, store, self.reconciler, page_size=self.config.page_size
        )
        self.hierarchy = HierarchyBuilder(store)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(
        self,
        scope_units: Sequence[str],
        programs: Sequence[str] | None = None,
        cancel: CancelToken | None = None,
    ) -> SyncReport:
        """Execute a full sync session.

        Args:
            scope_units: Org unit ids whose tracker data is pulled
            programs: Program ids (default: every tracker program pulled)
            cancel: Cooperative cancellation token

        Returns:
            SyncReport with status completed, failed or cancelled

        Raises:
            FatalConfigError: If no scope units are given (nothing is fetched)
        """
        units = list(dict.fromkeys(scope_units))
        if not units:
            raise FatalConfigError("No scope units selected")

        tracker = SyncProgress(self.progress, self.config.phase_weights)
        report = SyncReport(status=SyncStatus.COMPLETED, started_at=_now())
        logger.info(f"Starting sync for {len(units)} scope units")

        metadata_phases: list[tuple[str, str, Callable[[PhaseProgress], PhaseOutcome]]] = [
            (PHASE_PROFILE, PROFILE, self._pull_profile),
            (PHASE_ORG_UNIT_LEVELS, ORG_UNIT_LEVEL, self._pull_org_unit_levels),
            (PHASE_ORG_UNITS, ORG_UNIT, self._pull_org_units),
            (PHASE_PROGRAMS, PROGRAM, self._pull_programs),
            (PHASE_OPTION_SETS, OPTION_SET, self._pull_option_sets),
        ]

        for phase_id, table, pull in metadata_phases:
            if self._cancelled(cancel, report, phase_id):
                return report
            if not self._run_metadata_phase(phase_id, table, pull, tracker, report):
                return report

        try:
            program_ids = self._resolve_programs(programs)
        except SyncError as e:
            return self._fail(report, PHASE_ENROLLMENTS, e)

        data_phases = [
            (PHASE_ENROLLMENTS, self._pull_enrollments),
            (PHASE_TRACKED_ENTITIES, self._pull_tracked_entities),
            (PHASE_EVENTS, self._pull_events),
        ]

        for phase_id, pull in data_phases:
            if self._cancelled(cancel, report, phase_id):
                return report
            logger.info(f"Starting phase {phase_id}")
            try:
                result = pull(units, program_ids, tracker.phase(phase_id), cancel)
            except SyncError as e:
                return self._fail(report, phase_id, e)

            report.phases.append(
                PhaseResult(
                    phase_id=phase_id,
                    status=result.status,
                    rows_written=result.rows_written,
                    units_skipped=result.pairs_skipped,
                    records_skipped=result.records_skipped,
                )
            )
            if result.status == SyncStatus.CANCELLED:
                report.status = SyncStatus.CANCELLED
                report.completed_at = _now()
                return report

        report.completed_at = _now()
        logger.info(
            f"Sync completed: {report.units_skipped} units skipped, "
            f"{report.records_skipped} records skipped"
        )
        return report

    def _cancelled(self, cancel: CancelToken | None, report: SyncReport, phase_id: str) -> bool:
        if cancel is None or not cancel.is_cancelled:
            return False
        logger.info(f"Sync cancelled before phase {phase_id}")
        report.status = SyncStatus.CANCELLED
        report.completed_at = _now()
        return True

    def _fail(self, report: SyncReport, phase_id: str, error: SyncError) -> SyncReport:
        logger.error(f"Sync failed in phase {phase_id}: {error}")
        report.phases.append(PhaseResult(phase_id=phase_id, status=SyncStatus.FAILED, error=str(error)))
        report.status = SyncStatus.FAILED
        report.error = str(error)
        report.completed_at = _now()
        return report

    def _run_metadata_phase(
        self,
        phase_id: str,
        table: str,
        pull: Callable[[PhaseProgress], PhaseOutcome],
        tracker: SyncProgress,
        report: SyncReport,
    ) -> bool:
        """Run one wholesale-replace phase; returns False if the run must stop."""
        phase = tracker.phase(phase_id)
        if self.config.skip_populated_metadata and self.store.count(table) > 0:
            logger.info(f"Skipping phase {phase_id}: {table} already populated")
            report.phases.append(PhaseResult(phase_id=phase_id, status=SyncStatus.SKIPPED))
            phase.complete()
            return True

        logger.info(f"Starting phase {phase_id}")
        try:
            written, skipped = pull(phase)
        except SyncError as e:
            self._fail(report, phase_id, e)
            return False

        report.phases.append(
            PhaseResult(
                phase_id=phase_id,
                status=SyncStatus.COMPLETED,
                rows_written=written,
                records_skipped=skipped,
            )
        )
        phase.complete()
        return True

    # ------------------------------------------------------------------
    # Metadata phases
    # ------------------------------------------------------------------

    def _fetch_all(
        self, resource_path: str, fields: str | None, filters: dict[str, str] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch every page of a metadata resource. Fetch errors propagate."""
        records: list[dict[str, Any]] = []
        page = 1
        while True:
            query = ListQuery(
                scope_filters=filters or {},
                page=page,
                page_size=self.config.metadata_page_size,
                fields=fields,
            )
            response = self.remote.list(resource_path, query)
            if not response.instances:
                break
            records.extend(response.instances)
            if page >= response.page_count:
                break
            page += 1
        return records

    def _replace_table(
        self, table: str, transformer: Transformer, records: list[dict[str, Any]]
    ) -> PhaseOutcome:
        """Transform records and replace the table's content in one transaction."""
        context = TransformContext()
        rows = []
        skipped = 0
        for record in records:
            try:
                rows.extend(transformer(record, context))
            except TransformError as e:
                skipped += 1
                logger.warning(f"Skipping record: {e}")

        with self.store.transaction():
            self.store.clear(table)
            written = self.store.bulk_put(table, rows)
        logger.info(f"Replaced {table} with {written} rows")
        return written, skipped

    def _pull_profile(self, phase: PhaseProgress) -> PhaseOutcome:
        path = f"{self.config.paths.profile}?fields={self.config.profile_fields}"
        record = self.remote.get_one(path)
        if record is None:
            raise FatalConfigError("Remote source returned no user profile")
        rows = transform_profile(record, TransformContext())
        with self.store.transaction():
            self.store.clear(PROFILE)
            written = self.store.bulk_put(PROFILE, rows)
        return written, 0

    def _pull_org_unit_levels(self, phase: PhaseProgress) -> PhaseOutcome:
        records = self._fetch_all(self.config.paths.org_unit_levels, "id,level,displayName")
        return self._replace_table(ORG_UNIT_LEVEL, transform_org_unit_level, records)

    def _pull_org_units(self, phase: PhaseProgress) -> PhaseOutcome:
        """Pull every unit and the user's hierarchy, then merge both into the tree.

        Malformed units are skipped and counted. If skipping one leaves a stored
        unit without its parent, the phase fails and the previous tree is kept.
        """
        path = self.config.paths.org_units
        fields = self.config.org_unit_fields

        all_units = self._fetch_all(path, fields)
        phase.update(40)
        user_units = self._fetch_all(path, fields, {"withinUserHierarchy": "true"})
        phase.update(70)

        invalid: list[TransformError] = []
        with self.store.transaction():
            self.store.clear(ORG_UNIT)
            self.hierarchy.ingest(all_units, mode=MergeMode.MERGE_FLAGS, on_invalid=invalid.append)
            self.hierarchy.ingest(
                user_units,
                mode=MergeMode.MERGE_FLAGS,
                within_user_hierarchy=True,
                on_invalid=invalid.append,
            )
            if invalid:
                orphans = self.hierarchy.find_orphans()
                if orphans:
                    raise TransformError(
                        "orgUnit",
                        orphans[0].id,
                        f"parent missing after skipping malformed units "
                        f"({len(orphans)} units affected)",
                    )

        skipped = len({e.record_id for e in invalid})
        return self.store.count(ORG_UNIT), skipped

    def _pull_programs(self, phase: PhaseProgress) -> PhaseOutcome:
        records = self._fetch_all(self.config.paths.programs, self.config.program_fields)
        return self._replace_table(PROGRAM, transform_program, records)

    def _pull_option_sets(self, phase: PhaseProgress) -> PhaseOutcome:
        records = self._fetch_all(self.config.paths.option_sets, self.config.option_set_fields)
        return self._replace_table(OPTION_SET, transform_option_set, records)

    def _resolve_programs(self, programs: Sequence[str] | None) -> list[str]:
        """Programs to pair with each scope unit.

        Raises:
            FatalConfigError: If no program is available
        """
        if programs:
            requested = list(dict.fromkeys(programs))
            unknown = [p for p in requested if self.store.get(PROGRAM, p) is None]
            if unknown:
                logger.warning(f"Programs not found in metadata: {', '.join(unknown)}")
            return requested

        tracker_programs = [p.id for p in self.store.all(PROGRAM) if p.is_tracker]
        if not tracker_programs:
            raise FatalConfigError("No tracker programs available to sync")
        return tracker_programs

    # ------------------------------------------------------------------
    # Data phases
    # ------------------------------------------------------------------

    def _pull_enrollments(
        self,
        units: list[str],
        programs: list[str],
        phase: PhaseProgress,
        cancel: CancelToken | None,
    ) -> EntitySyncResult:
        spec = enrollment_spec(self.config)
        return self.driver.sync_entity(spec, units, programs, progress=phase, cancel=cancel)

    def _enrollment_scope(self, units: list[str], programs: list[str], attr: str) -> list[str]:
        """Comma-joined id chunks taken from server-confirmed enrollments in scope."""
        wanted = set(programs)
        rows = self.store.query(ENROLLMENT, "org_unit", AnyOf(units))
        ids = list(
            dict.fromkeys(
                getattr(row, attr)
                for row in rows
                if row.is_online and row.program in wanted and getattr(row, attr)
            )
        )
        return [",".join(batch) for batch in chunked(ids, self.config.id_chunk_size)]

    def _pull_tracked_entities(
        self,
        units: list[str],
        programs: list[str],
        phase: PhaseProgress,
        cancel: CancelToken | None,
    ) -> EntitySyncResult:
        scope = self._enrollment_scope(units, programs, "tracked_entity")
        spec = tracked_entity_spec(self.config)
        return self.driver.sync_entity(spec, scope, progress=phase, cancel=cancel)

    def _pull_events(
        self,
        units: list[str],
        programs: list[str],
        phase: PhaseProgress,
        cancel: CancelToken | None,
    ) -> EntitySyncResult:
        scope = self._enrollment_scope(units, programs, "enrollment_id")
        spec = event_spec(self.config)
        return self.driver.sync_entity(spec, scope, progress=phase, cancel=cancel)
