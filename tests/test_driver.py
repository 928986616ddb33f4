"""Tests for the paginated sync driver."""

import pytest

from fakes import enrollment, paginate
from tracker_offline_sync.config import SyncConfig
from tracker_offline_sync.exceptions import RemoteError, StoreWriteError, TransientFetchError
from tracker_offline_sync.models import EnrollmentRow, Page, SyncStatus
from tracker_offline_sync.progress import ProgressChannel, SyncProgress
from tracker_offline_sync.store import ENROLLMENT
from tracker_offline_sync.sync.cancel import CancelToken
from tracker_offline_sync.sync.driver import PaginatedSyncDriver
from tracker_offline_sync.sync.entities import enrollment_spec

CONFIG = SyncConfig()
SPEC = enrollment_spec(CONFIG)
RESOURCE = CONFIG.paths.enrollments


def _stored(store):
    return sorted((r.enrollment_id, r.attribute, r.value) for r in store.all(ENROLLMENT))


def _server_row(enrollment_id, org_unit, program="PRG1", is_online=True):
    return EnrollmentRow(
        enrollment_id=enrollment_id,
        updated_at="2024-01-01",
        org_unit=org_unit,
        program=program,
        is_online=is_online,
    )


@pytest.fixture
def driver(remote, store):
    return PaginatedSyncDriver(remote, store, page_size=2)


class TestPagination:
    """Tests for page traversal."""

    def test_fetches_every_page(self, remote, store, driver):
        remote.add(RESOURCE, [enrollment(f"E{i}") for i in range(5)])

        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.status == SyncStatus.COMPLETED
        assert result.pages_fetched == 3
        assert [q.page for q in remote.calls_to(RESOURCE)] == [1, 2, 3]
        assert len(store.all(ENROLLMENT)) == 5

    def test_scope_filters(self, remote, driver):
        remote.add(RESOURCE, [])
        driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        [query] = remote.calls_to(RESOURCE)
        assert query.scope_filters == {"orgUnits": "OU1", "program": "PRG1"}
        assert query.page_size == 2

    def test_stops_on_empty_page(self, remote, driver):
        def handler(query):
            if query.page == 1:
                return Page(instances=[enrollment("E1")], page_count=10)
            return Page(instances=[], page_count=10)

        remote.add(RESOURCE, handler)
        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.pages_fetched == 2

    def test_page_count_reread_every_page(self, remote, store, driver):
        def handler(query):
            # server shrinks the result set after the first page
            page_count = 3 if query.page == 1 else 2
            return Page(instances=[enrollment(f"E{query.page}")], page_count=page_count)

        remote.add(RESOURCE, handler)
        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.pages_fetched == 2
        assert [r.enrollment_id for r in store.all(ENROLLMENT)] == ["E1", "E2"]

    def test_one_pass_per_unit_without_programs(self, remote, driver):
        remote.add(RESOURCE, [])
        driver.sync_entity(SPEC, ["OU1", "OU2"])

        filters = [q.scope_filters for q in remote.calls_to(RESOURCE)]
        assert filters == [{"orgUnits": "OU1"}, {"orgUnits": "OU2"}]

    def test_pairs_every_unit_with_every_program(self, remote, driver):
        remote.add(RESOURCE, [])
        driver.sync_entity(SPEC, ["OU1", "OU2"], ["P1", "P2"])

        pairs = [(q.scope_filters["orgUnits"], q.scope_filters["program"]) for q in remote.calls_to(RESOURCE)]
        assert pairs == [("OU1", "P1"), ("OU1", "P2"), ("OU2", "P1"), ("OU2", "P2")]


class TestResync:
    """Tests for idempotence and clearing."""

    def test_idempotent(self, remote, store, driver):
        remote.add(
            RESOURCE,
            [enrollment("E1", attributes={"a": "1", "b": "2"}), enrollment("E2", attributes={"a": "3"})],
        )

        driver.sync_entity(SPEC, ["OU1"], ["PRG1"])
        first = _stored(store)
        driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert _stored(store) == first
        assert len(first) == 3

    def test_removed_attribute_disappears(self, remote, store, driver):
        remote.add(RESOURCE, [enrollment("E1", attributes={"a": "1", "b": "2"})])
        driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        remote.add(RESOURCE, [enrollment("E1", attributes={"a": "1"})])
        driver.sync_entity(SPEC, ["OU1"], ["PRG1"], clear_before_sync=False)

        assert _stored(store) == [("E1", "a", "1")]

    def test_clear_keeps_local_rows(self, remote, store, driver):
        store.bulk_put(
            ENROLLMENT,
            [
                _server_row("GONE", "OU1"),
                _server_row("LOCAL", "OU1", is_online=False),
            ],
        )
        remote.add(RESOURCE, [enrollment("E1")])

        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.rows_cleared == 1
        assert sorted(r.enrollment_id for r in store.all(ENROLLMENT)) == ["E1", "LOCAL"]

    def test_clear_removes_rows_outside_scope(self, remote, store, driver):
        store.bulk_put(
            ENROLLMENT,
            [
                _server_row("GONE", "OU1"),
                _server_row("OTHER-UNIT", "OU9"),
                _server_row("OTHER-PROGRAM", "OU1", program="PRG9"),
            ],
        )
        remote.add(RESOURCE, [enrollment("E1")])

        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.rows_cleared == 3
        assert [r.enrollment_id for r in store.all(ENROLLMENT)] == ["E1"]

    def test_empty_result_clears_pair(self, remote, store, driver):
        store.bulk_put(ENROLLMENT, [_server_row("GONE", "OU1")])
        remote.add(RESOURCE, [])

        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.rows_cleared == 1
        assert store.count(ENROLLMENT) == 0

    def test_no_units_is_noop(self, remote, store, driver):
        store.bulk_put(ENROLLMENT, [EnrollmentRow(enrollment_id="E0", updated_at="2024-01-01")])
        result = driver.sync_entity(SPEC, [], ["PRG1"])

        assert remote.calls == []
        assert result.units_total == 0
        assert store.count(ENROLLMENT) == 1


class TestFailureIsolation:
    """Tests for per-pair and per-record failure handling."""

    def test_failed_unit_does_not_affect_others(self, remote, store, driver):
        remote.add(
            RESOURCE,
            [
                enrollment("E1", org_unit="U1"),
                enrollment("E2", org_unit="U2"),
                enrollment("E3", org_unit="U3"),
            ],
        )
        remote.fail(RESOURCE, "U2", TransientFetchError(RESOURCE, "timed out"))

        result = driver.sync_entity(SPEC, ["U1", "U2", "U3"], ["PRG1"])

        assert result.status == SyncStatus.COMPLETED
        assert result.pairs_skipped == 1
        assert result.units_completed == 3
        assert sorted(r.enrollment_id for r in store.all(ENROLLMENT)) == ["E1", "E3"]

    def test_failed_unit_keeps_previous_rows(self, remote, store, driver):
        store.bulk_put(
            ENROLLMENT,
            [_server_row("OLD1", "U1"), _server_row("OLD2", "U2"), _server_row("OLD3", "U3")],
        )
        remote.add(RESOURCE, [enrollment("E1", org_unit="U1"), enrollment("E3", org_unit="U3")])
        remote.fail(RESOURCE, "U2", TransientFetchError(RESOURCE, "timed out"))

        result = driver.sync_entity(SPEC, ["U1", "U2", "U3"], ["PRG1"])

        assert result.pairs_skipped == 1
        assert result.rows_cleared == 2
        assert sorted(r.enrollment_id for r in store.all(ENROLLMENT)) == ["E1", "E3", "OLD2"]

    def test_failed_program_keeps_its_rows(self, remote, store, driver):
        store.bulk_put(
            ENROLLMENT,
            [_server_row("OLD-P1", "U1", program="P1"), _server_row("OLD-P2", "U1", program="P2")],
        )
        remote.add(RESOURCE, [enrollment("E1", org_unit="U1", program="P1")])
        remote.fail(RESOURCE, "P2", RemoteError(RESOURCE, 403, "Forbidden"))

        driver.sync_entity(SPEC, ["U1"], ["P1", "P2"])

        assert sorted(r.enrollment_id for r in store.all(ENROLLMENT)) == ["E1", "OLD-P2"]

    def test_remote_error_skips_pair(self, remote, driver):
        remote.add(RESOURCE, [enrollment("E1", org_unit="U1")])
        remote.fail(RESOURCE, "U1", RemoteError(RESOURCE, 403, "Forbidden"))

        result = driver.sync_entity(SPEC, ["U1"], ["PRG1"])

        assert result.pairs_skipped == 1

    def test_failure_on_later_page_keeps_earlier_pages(self, remote, store, driver):
        records = [enrollment(f"E{i}") for i in range(4)]

        def handler(query):
            if query.page == 2:
                raise TransientFetchError(RESOURCE, "connection reset")
            return paginate(records, query.page, query.page_size)

        remote.add(RESOURCE, handler)
        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.pairs_skipped == 1
        assert sorted(r.enrollment_id for r in store.all(ENROLLMENT)) == ["E0", "E1"]

    def test_malformed_record_skipped(self, remote, store, driver):
        bad = enrollment("E2")
        del bad["enrollment"]
        remote.add(RESOURCE, [enrollment("E1"), bad])

        result = driver.sync_entity(SPEC, ["OU1"], ["PRG1"])

        assert result.records_skipped == 1
        assert [r.enrollment_id for r in store.all(ENROLLMENT)] == ["E1"]

    def test_store_failure_propagates(self, remote, store, driver):
        remote.add(RESOURCE, [enrollment("E1")])
        store.conn.execute(f'DROP TABLE "{ENROLLMENT}"')

        with pytest.raises(StoreWriteError):
            driver.sync_entity(SPEC, ["OU1"], ["PRG1"], clear_before_sync=False)


class TestProgressAndCancel:
    """Tests for progress updates and cancellation."""

    def test_progress_reaches_100(self, remote, driver):
        channel = ProgressChannel()
        events = []
        channel.subscribe(events.append)
        tracker = SyncProgress(channel, {"data": {SPEC.phase_id: 100}})
        remote.add(RESOURCE, [])
        remote.fail(RESOURCE, "U2", TransientFetchError(RESOURCE, "timed out"))

        driver.sync_entity(SPEC, ["U1", "U2", "U3", "U4"], ["PRG1"], progress=tracker.phase(SPEC.phase_id))

        assert [e.percent for e in events] == [25.0, 50.0, 75.0, 100.0]

    def test_progress_completes_without_units(self, driver):
        channel = ProgressChannel()
        events = []
        channel.subscribe(events.append)
        tracker = SyncProgress(channel, {"data": {SPEC.phase_id: 100}})

        driver.sync_entity(SPEC, [], progress=tracker.phase(SPEC.phase_id))

        assert events[-1].percent == 100.0

    def test_cancel_between_units(self, remote, store, driver):
        cancel = CancelToken()

        def handler(query):
            if query.scope_filters["orgUnits"] == "U1":
                cancel.cancel()
            return paginate([enrollment(f"E-{query.scope_filters['orgUnits']}")], query.page, query.page_size)

        remote.add(RESOURCE, handler)
        result = driver.sync_entity(SPEC, ["U1", "U2"], ["PRG1"], cancel=cancel)

        assert result.status == SyncStatus.CANCELLED
        assert result.units_completed == 1
        assert [r.enrollment_id for r in store.all(ENROLLMENT)] == ["E-U1"]
