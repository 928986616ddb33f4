"""Tests for delete-then-replace reconciliation."""

import math

import pytest

from tracker_offline_sync.models import EnrollmentRow
from tracker_offline_sync.store import ENROLLMENT
from tracker_offline_sync.sync.reconcile import Reconciler, chunked, natural_keys


def _rows(enrollment_id, attributes, is_online=True):
    return [
        EnrollmentRow(
            enrollment_id=enrollment_id,
            updated_at="2024-01-01",
            attribute=attribute,
            value=value,
            is_online=is_online,
        )
        for attribute, value in attributes.items()
    ]


def _key(row):
    return row.enrollment_id


class CountingStore:
    """Wraps a LocalStore and counts delete statements."""

    def __init__(self, store):
        self._store = store
        self.delete_calls = []

    def delete_where(self, table, index, values):
        self.delete_calls.append(list(values))
        return self._store.delete_where(table, index, values)

    def __getattr__(self, name):
        return getattr(self._store, name)


class TestChunked:
    """Tests for chunked."""

    def test_sizes(self):
        assert [len(c) for c in chunked(list(range(450)), 200)] == [200, 200, 50]

    def test_empty(self):
        assert list(chunked([], 200)) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestNaturalKeys:
    def test_distinct_in_order(self):
        rows = _rows("E2", {"a": "1", "b": "2"}) + _rows("E1", {"a": "1"})
        assert natural_keys(rows, _key) == ["E2", "E1"]


class TestReconciler:
    """Tests for Reconciler.reconcile."""

    def test_replaces_rows_sharing_key(self, store):
        store.bulk_put(ENROLLMENT, _rows("E1", {"a": "old", "b": "old", "c": "old"}))
        reconciler = Reconciler(store)

        result = reconciler.reconcile(ENROLLMENT, "enrollment_id", _rows("E1", {"a": "new"}), _key)

        assert result.rows_deleted == 3
        assert result.rows_inserted == 1
        rows = store.all(ENROLLMENT)
        assert [(r.attribute, r.value) for r in rows] == [("a", "new")]

    def test_untouched_keys_survive(self, store):
        store.bulk_put(ENROLLMENT, _rows("E1", {"a": "1"}) + _rows("LOCAL", {"a": "x"}, is_online=False))
        Reconciler(store).reconcile(ENROLLMENT, "enrollment_id", _rows("E1", {"a": "2"}), _key)

        ids = sorted(r.enrollment_id for r in store.all(ENROLLMENT))
        assert ids == ["E1", "LOCAL"]

    def test_idempotent(self, store):
        reconciler = Reconciler(store)
        batch = _rows("E1", {"a": "1", "b": "2"}) + _rows("E2", {"a": "3"})

        reconciler.reconcile(ENROLLMENT, "enrollment_id", batch, _key)
        first = store.all(ENROLLMENT)
        reconciler.reconcile(ENROLLMENT, "enrollment_id", batch, _key)

        assert store.all(ENROLLMENT) == first

    @pytest.mark.parametrize("keys", [1, 200, 201, 450])
    def test_delete_statements_bounded(self, store, keys):
        counting = CountingStore(store)
        batch = [row for i in range(keys) for row in _rows(f"E{i}", {"a": "1"})]

        result = Reconciler(counting).reconcile(ENROLLMENT, "enrollment_id", batch, _key)

        assert len(counting.delete_calls) == math.ceil(keys / 200)
        assert result.delete_batches == math.ceil(keys / 200)
        assert all(len(call) <= 200 for call in counting.delete_calls)

    def test_custom_chunk_size(self, store):
        counting = CountingStore(store)
        batch = [row for i in range(10) for row in _rows(f"E{i}", {"a": "1"})]
        Reconciler(counting, chunk_size=3).reconcile(ENROLLMENT, "enrollment_id", batch, _key)
        assert len(counting.delete_calls) == 4

    def test_empty_batch_is_noop(self, store):
        store.bulk_put(ENROLLMENT, _rows("E1", {"a": "1"}))
        result = Reconciler(store).reconcile(ENROLLMENT, "enrollment_id", [], _key)
        assert result.keys == 0
        assert store.count(ENROLLMENT) == 1

    def test_atomic_on_insert_failure(self, store):
        store.bulk_put(ENROLLMENT, _rows("E1", {"a": "1"}))
        bad_batch = _rows("E1", {"a": "2"}) + ["not a row"]

        with pytest.raises(TypeError):
            Reconciler(store).reconcile(
                ENROLLMENT, "enrollment_id", bad_batch, lambda r: getattr(r, "enrollment_id", "E1")
            )

        assert [r.value for r in store.all(ENROLLMENT)] == ["1"]

    def test_invalid_chunk_size(self, store):
        with pytest.raises(ValueError):
            Reconciler(store, chunk_size=0)
