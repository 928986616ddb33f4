"""Sync engine: transformers, reconciliation, paginated driver, hierarchy, offline tracking."""

from tracker_offline_sync.sync.cancel import CancelToken
from tracker_offline_sync.sync.coordinator import SyncCoordinator
from tracker_offline_sync.sync.driver import PaginatedSyncDriver
from tracker_offline_sync.sync.entities import (
    EntitySpec,
    enrollment_spec,
    event_spec,
    tracked_entity_spec,
)
from tracker_offline_sync.sync.hierarchy import HierarchyBuilder, MergeMode
from tracker_offline_sync.sync.offline import OfflineChangeTracker
from tracker_offline_sync.sync.reconcile import Reconciler, chunked
from tracker_offline_sync.sync.transform import TransformContext

__all__ = [
    "CancelToken",
    "EntitySpec",
    "HierarchyBuilder",
    "MergeMode",
    "OfflineChangeTracker",
    "PaginatedSyncDriver",
    "Reconciler",
    "SyncCoordinator",
    "TransformContext",
    "chunked",
    "enrollment_spec",
    "event_spec",
    "tracked_entity_spec",
]
