"""Persisted table layout.

Each table stores rows as the model's JSON document plus one column per index.
Tables with a primary key upsert on it; transactional tables have no primary key
because several rows share one natural key (one row per attribute).
"""

from dataclasses import dataclass

from pydantic import BaseModel

from tracker_offline_sync.models.metadata import (
    OptionSet,
    OrgUnit,
    OrgUnitLevel,
    Program,
    UserProfile,
)
from tracker_offline_sync.models.tracker import EnrollmentRow, EventRow, TrackedEntityRow

PROFILE = "profile"
ORG_UNIT = "orgUnit"
ORG_UNIT_LEVEL = "orgUnitLevel"
ENROLLMENT = "enrollment"
TRACKED_ENTITY = "trackedEntity"
EVENT = "event"
PROGRAM = "program"
OPTION_SET = "optionSet"


@dataclass(frozen=True)
class TableSpec:
    """Definition of one local table.

    Attributes:
        name: Table name
        model: Row model class
        primary_key: Model field used as primary key, or None for append-only tables
        indexes: Model fields that get an indexed column
    """

    name: str
    model: type[BaseModel]
    primary_key: str | None = None
    indexes: tuple[str, ...] = ()

    @property
    def key_columns(self) -> tuple[str, ...]:
        """All queryable columns (primary key first)."""
        if self.primary_key:
            return (self.primary_key,) + tuple(i for i in self.indexes if i != self.primary_key)
        return self.indexes


TABLES: tuple[TableSpec, ...] = (
    TableSpec(PROFILE, UserProfile, primary_key="id"),
    TableSpec(
        ORG_UNIT,
        OrgUnit,
        primary_key="id",
        indexes=("path", "within_user_hierarchy", "level"),
    ),
    TableSpec(ORG_UNIT_LEVEL, OrgUnitLevel, primary_key="id", indexes=("level",)),
    TableSpec(
        ENROLLMENT,
        EnrollmentRow,
        indexes=("enrollment_id", "is_online", "org_unit", "program", "tracked_entity"),
    ),
    TableSpec(
        TRACKED_ENTITY,
        TrackedEntityRow,
        indexes=("tracked_entity_id", "is_online", "org_unit"),
    ),
    TableSpec(
        EVENT,
        EventRow,
        indexes=("event_id", "is_online", "org_unit", "enrollment_id"),
    ),
    TableSpec(PROGRAM, Program, primary_key="id"),
    TableSpec(OPTION_SET, OptionSet, primary_key="id"),
)

# Tables holding rows that can be created offline
TRANSACTIONAL_TABLES: tuple[str, ...] = (ENROLLMENT, EVENT, TRACKED_ENTITY)
