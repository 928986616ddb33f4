"""Pydantic models for server-owned metadata: org units, levels, programs, option sets, profile."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OrgUnit(BaseModel):
    """Organisation unit as stored locally.

    ``path`` is the slash-delimited ancestor chain ending in the unit's own id,
    e.g. ``/ImspTQPwCqd/O6uvpzGd5pu`` or ``A/B``. ``level`` equals its depth.
    """

    id: str
    code: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    level: int
    path: str
    within_user_hierarchy: bool = Field(default=False, alias="withinUserHierarchy")

    model_config = {"populate_by_name": True}

    @property
    def path_segments(self) -> list[str]:
        return [segment for segment in self.path.split("/") if segment]

    @property
    def parent(self) -> str | None:
        """Id of the direct parent, or None for a root unit."""
        segments = self.path_segments
        return segments[-2] if len(segments) > 1 else None


class OrgUnitWithChildren(OrgUnit):
    """An org unit with its descendants (any depth) merged in."""

    children: list[OrgUnit] = Field(default_factory=list)


class OrgUnitLevel(BaseModel):
    """Named hierarchy level (reference data)."""

    id: str
    level: int
    display_name: str | None = Field(default=None, alias="displayName")

    model_config = {"populate_by_name": True}


class Program(BaseModel):
    """Tracker program metadata needed to scope data pulls."""

    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    program_type: str | None = Field(default=None, alias="programType")
    tracked_entity_type: str | None = Field(default=None, alias="trackedEntityType")
    organisation_units: list[str] = Field(default_factory=list, alias="organisationUnits")
    program_stages: list[str] = Field(default_factory=list, alias="programStages")

    model_config = {"populate_by_name": True}

    @property
    def is_tracker(self) -> bool:
        return self.program_type == "WITH_REGISTRATION"


class Option(BaseModel):
    code: str
    display_name: str | None = Field(default=None, alias="displayName")

    model_config = {"populate_by_name": True}


class OptionSet(BaseModel):
    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    value_type: str | None = Field(default=None, alias="valueType")
    options: list[Option] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class UserProfile(BaseModel):
    """The current operator. At most one row is stored."""

    id: str
    username: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    first_name: str | None = Field(default=None, alias="firstName")
    surname: str | None = None
    email: str | None = None
    organisation_units: list[str] = Field(default_factory=list, alias="organisationUnits")
    tei_search_organisation_units: list[str] = Field(
        default_factory=list, alias="teiSearchOrganisationUnits"
    )

    model_config = {"populate_by_name": True}
