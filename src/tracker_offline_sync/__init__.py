"""
Tracker Offline Sync - offline-first mirror of a tracker server

This package pulls a subset of a remote tracker dataset into a local SQLite
store so a client can keep reading and writing records while disconnected:

Local Store:
- Keyed, indexed tables (org units, enrollments, tracked entities, events, metadata)
- Prefix queries over org unit paths

Sync Engine:
- Paginated, page-by-page durable pulls with per-unit failure isolation
- Delete-then-replace reconciliation by natural key in bounded batches
- Org unit hierarchy built level by level from flat records
- Offline change tracking for records created locally

Example usage:
    >>> from tracker_offline_sync import ApiClient, LocalStore, SyncCoordinator
    >>> client = ApiClient("https://server/api", auth=("admin", "district"))
    >>> store = LocalStore("./offline.db")
    >>> report = SyncCoordinator(client, store).run(["DiszpKrYNg8"])
    >>> print(report.status)

Example usage (hierarchy):
    >>> from tracker_offline_sync import HierarchyBuilder
    >>> tree = HierarchyBuilder(store).get_unit_with_children("ImspTQPwCqd")
"""

__version__ = "0.1.0"

# Clients
from tracker_offline_sync.clients.api import ApiClient
from tracker_offline_sync.clients.base import RemoteSource

# Configuration
from tracker_offline_sync.config import SyncConfig

# Errors
from tracker_offline_sync.exceptions import (
    FatalConfigError,
    RemoteError,
    StoreWriteError,
    SyncError,
    TransformError,
    TransientFetchError,
)

# Models
from tracker_offline_sync.models import (
    EnrollmentRow,
    EventRow,
    ListQuery,
    OrgUnit,
    OrgUnitLevel,
    OrgUnitWithChildren,
    Page,
    PhaseResult,
    Program,
    SyncReport,
    SyncStatus,
    TrackedEntityRow,
    UserProfile,
)

# Progress
from tracker_offline_sync.progress import ProgressChannel, ProgressEvent

# Store
from tracker_offline_sync.store import AnyOf, Equals, LocalStore, StartsWith

# Sync engine
from tracker_offline_sync.sync import (
    CancelToken,
    HierarchyBuilder,
    MergeMode,
    OfflineChangeTracker,
    PaginatedSyncDriver,
    Reconciler,
    SyncCoordinator,
    TransformContext,
)

__all__ = [
    # Version
    "__version__",
    # Clients
    "ApiClient",
    "RemoteSource",
    # Configuration
    "SyncConfig",
    # Errors
    "FatalConfigError",
    "RemoteError",
    "StoreWriteError",
    "SyncError",
    "TransformError",
    "TransientFetchError",
    # Models
    "EnrollmentRow",
    "EventRow",
    "ListQuery",
    "OrgUnit",
    "OrgUnitLevel",
    "OrgUnitWithChildren",
    "Page",
    "PhaseResult",
    "Program",
    "SyncReport",
    "SyncStatus",
    "TrackedEntityRow",
    "UserProfile",
    # Progress
    "ProgressChannel",
    "ProgressEvent",
    # Store
    "AnyOf",
    "Equals",
    "LocalStore",
    "StartsWith",
    # Sync engine
    "CancelToken",
    "HierarchyBuilder",
    "MergeMode",
    "OfflineChangeTracker",
    "PaginatedSyncDriver",
    "Reconciler",
    "SyncCoordinator",
    "TransformContext",
]
