"""Local persistent store."""

from tracker_offline_sync.store.local import AnyOf, Equals, LocalStore, StartsWith
from tracker_offline_sync.store.schema import (
    ENROLLMENT,
    EVENT,
    OPTION_SET,
    ORG_UNIT,
    ORG_UNIT_LEVEL,
    PROFILE,
    PROGRAM,
    TABLES,
    TRACKED_ENTITY,
    TRANSACTIONAL_TABLES,
    TableSpec,
)

__all__ = [
    "AnyOf",
    "Equals",
    "LocalStore",
    "StartsWith",
    "TableSpec",
    "TABLES",
    "TRANSACTIONAL_TABLES",
    "ENROLLMENT",
    "EVENT",
    "OPTION_SET",
    "ORG_UNIT",
    "ORG_UNIT_LEVEL",
    "PROFILE",
    "PROGRAM",
    "TRACKED_ENTITY",
]
