"""Record transformers: remote record -> local rows.

Every transformer is a pure function ``transform_x(record, context) -> list[Row]``.
The clock comes from ``TransformContext`` so output is deterministic. A malformed
record raises ``TransformError``; nothing is logged or stored here.
"""

import functools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from tracker_offline_sync.exceptions import TransformError
from tracker_offline_sync.models.metadata import (
    Option,
    OptionSet,
    OrgUnit,
    OrgUnitLevel,
    Program,
    UserProfile,
)
from tracker_offline_sync.models.tracker import EnrollmentRow, EventRow, TrackedEntityRow

_TRUE_STRINGS = {"true", "1", "yes", "y"}
_FALSE_STRINGS = {"false", "0", "no", "n", ""}


@dataclass(frozen=True)
class TransformContext:
    """Inputs shared by all records of one sync pass.

    Attributes:
        now: Timestamp used when a record carries no updatedAt
        is_online: Provenance flag stamped on produced rows
    """

    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_online: bool = True

    @property
    def timestamp(self) -> str:
        return self.now.isoformat()


Transformer = Callable[[dict[str, Any], TransformContext], list[Any]]


def _guard(entity: str, id_key: str):
    """Turn validation failures of a transformer into TransformError."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(record, context, *args, **kwargs):
            if not isinstance(record, dict):
                raise TransformError(entity, None, f"expected an object, got {type(record).__name__}")
            try:
                return func(record, context, *args, **kwargs)
            except TransformError:
                raise
            except (ValidationError, ValueError, TypeError, KeyError) as e:
                raise TransformError(entity, _text(record.get(id_key)), str(e)) from e

        return wrapper

    return decorator


def coerce_bool(value: Any) -> bool:
    """Coerce remote boolean-ish values (bool, "true"/"false", 0/1, null)."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean: {value!r}")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _first(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _require(record: dict[str, Any], entity: str, *keys: str) -> str:
    value = _first(record, *keys)
    if value in (None, ""):
        raise TransformError(entity, None, f"missing '{keys[0]}'")
    return _text(value)


def _ref_id(value: Any) -> str | None:
    """Extract an id from either "abc" or {"id": "abc"}."""
    if isinstance(value, dict):
        return _text(value.get("id"))
    return _text(value)


def _ref_ids(values: Any) -> list[str]:
    if not values:
        return []
    return [ref for ref in (_ref_id(v) for v in values) if ref]


def _pairs(items: Any, key: str, entity: str, record_id: str) -> list[tuple[str, str | None]]:
    """Extract (key, value) pairs from an attribute/data-value list."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise TransformError(entity, record_id, f"expected a list of {key}s")
    pairs = []
    for item in items:
        if not isinstance(item, dict) or not item.get(key):
            raise TransformError(entity, record_id, f"entry without '{key}'")
        pairs.append((_text(item[key]), _text(item.get("value"))))
    return pairs


# -------------------------------------------------------------------------
# Tracker data
# -------------------------------------------------------------------------


@_guard("enrollment", "enrollment")
def transform_enrollment(record: dict[str, Any], context: TransformContext) -> list[EnrollmentRow]:
    """Explode one enrollment into one row per attribute.

    An enrollment without attributes yields a single row with attribute and
    value unset. Shared fields are copied verbatim onto every row.
    """
    enrollment_id = _require(record, "enrollment", "enrollment", "enrollmentId")
    shared = {
        "enrollment_id": enrollment_id,
        "updated_at": _text(record.get("updatedAt")) or context.timestamp,
        "org_unit": _text(record.get("orgUnit")),
        "tracked_entity_type": _text(record.get("trackedEntityType")),
        "program": _text(record.get("program")),
        "status": _text(record.get("status")),
        "tracked_entity": _text(record.get("trackedEntity")),
        "enrolled_at": _text(record.get("enrolledAt")),
        "incident_date": _text(_first(record, "incidentDate", "occurredAt")),
        "is_follow_up": coerce_bool(_first(record, "followup", "followUp")),
        "is_deleted": coerce_bool(record.get("deleted")),
        "is_online": context.is_online,
    }

    attributes = _pairs(record.get("attributes"), "attribute", "enrollment", enrollment_id)
    if not attributes:
        return [EnrollmentRow(**shared)]
    return [EnrollmentRow(**shared, attribute=a, value=v) for a, v in attributes]


@_guard("trackedEntity", "trackedEntity")
def transform_tracked_entity(
    record: dict[str, Any], context: TransformContext
) -> list[TrackedEntityRow]:
    """Explode one tracked entity into one row per attribute."""
    tracked_entity_id = _require(record, "trackedEntity", "trackedEntity", "trackedEntityId")
    shared = {
        "tracked_entity_id": tracked_entity_id,
        "tracked_entity_type": _text(record.get("trackedEntityType")),
        "org_unit": _text(record.get("orgUnit")),
        "updated_at": _text(record.get("updatedAt")) or context.timestamp,
        "created_at": _text(record.get("createdAt")),
        "is_inactive": coerce_bool(record.get("inactive")),
        "is_deleted": coerce_bool(record.get("deleted")),
        "is_online": context.is_online,
    }

    attributes = _pairs(record.get("attributes"), "attribute", "trackedEntity", tracked_entity_id)
    if not attributes:
        return [TrackedEntityRow(**shared)]
    return [TrackedEntityRow(**shared, attribute=a, value=v) for a, v in attributes]


@_guard("event", "event")
def transform_event(record: dict[str, Any], context: TransformContext) -> list[EventRow]:
    """Explode one event into one row per data value."""
    event_id = _require(record, "event", "event", "eventId")
    shared = {
        "event_id": event_id,
        "enrollment_id": _text(record.get("enrollment")),
        "program": _text(record.get("program")),
        "program_stage": _text(record.get("programStage")),
        "org_unit": _text(record.get("orgUnit")),
        "tracked_entity": _text(record.get("trackedEntity")),
        "status": _text(record.get("status")),
        "occurred_at": _text(record.get("occurredAt")),
        "scheduled_at": _text(record.get("scheduledAt")),
        "updated_at": _text(record.get("updatedAt")) or context.timestamp,
        "is_deleted": coerce_bool(record.get("deleted")),
        "is_online": context.is_online,
    }

    data_values = _pairs(record.get("dataValues"), "dataElement", "event", event_id)
    if not data_values:
        return [EventRow(**shared)]
    return [EventRow(**shared, data_element=d, value=v) for d, v in data_values]


# -------------------------------------------------------------------------
# Metadata
# -------------------------------------------------------------------------


@_guard("orgUnit", "id")
def transform_org_unit(
    record: dict[str, Any],
    context: TransformContext,
    within_user_hierarchy: bool = False,
) -> list[OrgUnit]:
    """Validate one org unit.

    The path must end in the unit's id and its depth must equal the level. A
    missing level is derived from the path.
    """
    unit_id = _require(record, "orgUnit", "id")
    path = _text(record.get("path")) or unit_id
    segments = [s for s in path.split("/") if s]
    if not segments or segments[-1] != unit_id:
        raise TransformError("orgUnit", unit_id, f"path '{path}' does not end with the unit id")

    level = record.get("level")
    if level is None:
        level = len(segments)
    elif int(level) != len(segments):
        raise TransformError(
            "orgUnit", unit_id, f"level {level} does not match depth of path '{path}'"
        )

    return [
        OrgUnit(
            id=unit_id,
            code=_text(record.get("code")),
            display_name=_text(_first(record, "displayName", "name")),
            level=int(level),
            path=path,
            within_user_hierarchy=within_user_hierarchy
            or coerce_bool(record.get("withinUserHierarchy")),
        )
    ]


@_guard("orgUnitLevel", "id")
def transform_org_unit_level(
    record: dict[str, Any], context: TransformContext
) -> list[OrgUnitLevel]:
    return [
        OrgUnitLevel(
            id=_require(record, "orgUnitLevel", "id"),
            level=int(record["level"]),
            display_name=_text(_first(record, "displayName", "name")),
        )
    ]


@_guard("program", "id")
def transform_program(record: dict[str, Any], context: TransformContext) -> list[Program]:
    return [
        Program(
            id=_require(record, "program", "id"),
            display_name=_text(_first(record, "displayName", "name")),
            program_type=_text(record.get("programType")),
            tracked_entity_type=_ref_id(record.get("trackedEntityType")),
            organisation_units=_ref_ids(record.get("organisationUnits")),
            program_stages=_ref_ids(record.get("programStages")),
        )
    ]


@_guard("optionSet", "id")
def transform_option_set(record: dict[str, Any], context: TransformContext) -> list[OptionSet]:
    options = [
        Option(code=_text(o["code"]), display_name=_text(_first(o, "displayName", "name")))
        for o in record.get("options") or []
    ]
    return [
        OptionSet(
            id=_require(record, "optionSet", "id"),
            display_name=_text(_first(record, "displayName", "name")),
            value_type=_text(record.get("valueType")),
            options=options,
        )
    ]


@_guard("profile", "id")
def transform_profile(record: dict[str, Any], context: TransformContext) -> list[UserProfile]:
    return [
        UserProfile(
            id=_require(record, "profile", "id"),
            username=_text(record.get("username")),
            display_name=_text(_first(record, "displayName", "name")),
            first_name=_text(record.get("firstName")),
            surname=_text(record.get("surname")),
            email=_text(record.get("email")),
            organisation_units=_ref_ids(record.get("organisationUnits")),
            tei_search_organisation_units=_ref_ids(record.get("teiSearchOrganisationUnits")),
        )
    ]
