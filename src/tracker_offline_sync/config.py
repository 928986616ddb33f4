"""Sync configuration."""

from pydantic import BaseModel, Field

METADATA_STAGE = "metadata"
DATA_STAGE = "data"

# Phase ids, in execution order
PHASE_PROFILE = "profile"
PHASE_ORG_UNIT_LEVELS = "orgUnitLevels"
PHASE_ORG_UNITS = "orgUnits"
PHASE_PROGRAMS = "programs"
PHASE_OPTION_SETS = "optionSets"
PHASE_ENROLLMENTS = "enrollments"
PHASE_TRACKED_ENTITIES = "trackedEntities"
PHASE_EVENTS = "events"

DEFAULT_PHASE_WEIGHTS: dict[str, dict[str, float]] = {
    METADATA_STAGE: {
        PHASE_PROFILE: 10,
        PHASE_ORG_UNIT_LEVELS: 10,
        PHASE_ORG_UNITS: 40,
        PHASE_PROGRAMS: 25,
        PHASE_OPTION_SETS: 15,
    },
    DATA_STAGE: {
        PHASE_ENROLLMENTS: 50,
        PHASE_TRACKED_ENTITIES: 25,
        PHASE_EVENTS: 25,
    },
}


class ResourcePaths(BaseModel):
    """Remote resource paths, relative to the API root."""

    profile: str = "me"
    org_unit_levels: str = "organisationUnitLevels"
    org_units: str = "organisationUnits"
    programs: str = "programs"
    option_sets: str = "optionSets"
    enrollments: str = "tracker/enrollments"
    tracked_entities: str = "tracker/trackedEntities"
    events: str = "tracker/events"


class SyncConfig(BaseModel):
    """Tunables for a sync session.

    Attributes:
        page_size: Records requested per page
        metadata_page_size: Page size for metadata list resources
        delete_chunk_size: Max natural keys per reconciliation delete
        id_chunk_size: Max ids per nested-entity scope unit
        skip_populated_metadata: Skip wholesale-replace phases whose table has rows
        paths: Remote resource paths
        phase_weights: stage -> phase -> weight
    """

    page_size: int = Field(default=50, gt=0)
    metadata_page_size: int = Field(default=500, gt=0)
    delete_chunk_size: int = Field(default=200, gt=0)
    id_chunk_size: int = Field(default=50, gt=0)
    skip_populated_metadata: bool = False
    paths: ResourcePaths = Field(default_factory=ResourcePaths)
    phase_weights: dict[str, dict[str, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_PHASE_WEIGHTS.items()}
    )

    org_unit_fields: str = "id,code,displayName,level,path"
    profile_fields: str = (
        "id,username,displayName,firstName,surname,email,"
        "organisationUnits[id],teiSearchOrganisationUnits[id]"
    )
    program_fields: str = (
        "id,displayName,programType,trackedEntityType[id],organisationUnits[id],programStages[id]"
    )
    option_set_fields: str = "id,displayName,valueType,options[code,displayName]"
    enrollment_fields: str = "*"
    tracked_entity_fields: str = "*"
    event_fields: str = "*"
