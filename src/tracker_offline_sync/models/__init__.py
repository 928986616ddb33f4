"""Pydantic models for metadata, tracker rows, remote pages and sync results."""

from tracker_offline_sync.models.metadata import (
    Option,
    OptionSet,
    OrgUnit,
    OrgUnitLevel,
    OrgUnitWithChildren,
    Program,
    UserProfile,
)
from tracker_offline_sync.models.remote import ListQuery, Page
from tracker_offline_sync.models.results import (
    EntitySyncResult,
    PhaseResult,
    ReconcileResult,
    SyncReport,
    SyncStatus,
)
from tracker_offline_sync.models.tracker import EnrollmentRow, EventRow, TrackedEntityRow

__all__ = [
    # Metadata
    "Option",
    "OptionSet",
    "OrgUnit",
    "OrgUnitLevel",
    "OrgUnitWithChildren",
    "Program",
    "UserProfile",
    # Tracker rows
    "EnrollmentRow",
    "EventRow",
    "TrackedEntityRow",
    # Remote
    "ListQuery",
    "Page",
    # Results
    "EntitySyncResult",
    "PhaseResult",
    "ReconcileResult",
    "SyncReport",
    "SyncStatus",
]
