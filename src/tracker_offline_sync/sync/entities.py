"""Paginated entity definitions: what to fetch, how to scope it, where it lands."""

from dataclasses import dataclass, field
from typing import Any, Callable

from tracker_offline_sync.config import (
    PHASE_ENROLLMENTS,
    PHASE_EVENTS,
    PHASE_TRACKED_ENTITIES,
    SyncConfig,
)
from tracker_offline_sync.store.schema import ENROLLMENT, EVENT, TRACKED_ENTITY
from tracker_offline_sync.sync.transform import (
    Transformer,
    transform_enrollment,
    transform_event,
    transform_tracked_entity,
)


@dataclass(frozen=True)
class EntitySpec:
    """How one entity type is fetched and stored.

    Attributes:
        phase_id: Progress phase id
        table: Local table
        resource_path: Remote list resource
        key_index: Index holding the natural key
        key_extractor: Returns a row's natural key
        transformer: Remote record -> rows
        scope_param: Query parameter receiving the scope unit
        program_param: Query parameter receiving the program, or None
        fields: Field selection
        extra_filters: Fixed query parameters
        clear_index: Index matched against the scope unit's values when a
            unit's server-confirmed rows are cleared
        program_index: Index matched against the program when clearing, or None
        clear_before_sync: Clear server-confirmed rows outside the requested
            scope up front, and each pair's rows once its first page arrives
    """

    phase_id: str
    table: str
    resource_path: str
    key_index: str
    key_extractor: Callable[[Any], str]
    transformer: Transformer
    scope_param: str
    program_param: str | None = "program"
    fields: str | None = None
    extra_filters: dict[str, str] = field(default_factory=dict)
    clear_index: str | None = None
    program_index: str | None = None
    clear_before_sync: bool = True

    def filters(self, unit: str, program: str | None) -> dict[str, str]:
        """Query parameters scoping one (unit, program) pair."""
        params = dict(self.extra_filters)
        params[self.scope_param] = unit
        if program and self.program_param:
            params[self.program_param] = program
        return params

    def scope_values(self, unit: str) -> list[str]:
        """Values a scope unit stands for (an id chunk is comma-joined)."""
        return [value for value in unit.split(",") if value]


def enrollment_spec(config: SyncConfig) -> EntitySpec:
    """Enrollments scoped by org unit and program."""
    return EntitySpec(
        phase_id=PHASE_ENROLLMENTS,
        table=ENROLLMENT,
        resource_path=config.paths.enrollments,
        key_index="enrollment_id",
        key_extractor=lambda row: row.enrollment_id,
        transformer=transform_enrollment,
        scope_param="orgUnits",
        clear_index="org_unit",
        program_index="program",
        fields=config.enrollment_fields,
    )


def tracked_entity_spec(config: SyncConfig) -> EntitySpec:
    """Tracked entities scoped by comma-joined chunks of ids."""
    return EntitySpec(
        phase_id=PHASE_TRACKED_ENTITIES,
        table=TRACKED_ENTITY,
        resource_path=config.paths.tracked_entities,
        key_index="tracked_entity_id",
        key_extractor=lambda row: row.tracked_entity_id,
        transformer=transform_tracked_entity,
        scope_param="trackedEntities",
        program_param=None,
        clear_index="tracked_entity_id",
        fields=config.tracked_entity_fields,
    )


def event_spec(config: SyncConfig) -> EntitySpec:
    """Events scoped by comma-joined chunks of enrollment ids."""
    return EntitySpec(
        phase_id=PHASE_EVENTS,
        table=EVENT,
        resource_path=config.paths.events,
        key_index="event_id",
        key_extractor=lambda row: row.event_id,
        transformer=transform_event,
        scope_param="enrollments",
        program_param=None,
        clear_index="enrollment_id",
        fields=config.event_fields,
    )
