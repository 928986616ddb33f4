"""Pydantic models for flattened tracker rows (enrollments, tracked entities, events).

A single remote record may expand into several rows: one per attribute (or data
value), all sharing the record's natural key. Rows flagged ``is_online=False`` were
created locally and are waiting to be pushed upstream.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class EnrollmentRow(BaseModel):
    """One attribute of one enrollment (or the bare enrollment if it has none)."""

    enrollment_id: str = Field(alias="enrollmentId")
    updated_at: str = Field(alias="updatedAt")
    org_unit: str | None = Field(default=None, alias="orgUnit")
    tracked_entity_type: str | None = Field(default=None, alias="trackedEntityType")
    program: str | None = None
    status: str | None = Field(default=None, alias="enrollmentStatus")
    tracked_entity: str | None = Field(default=None, alias="trackedEntity")
    enrolled_at: str | None = Field(default=None, alias="enrolledAt")
    incident_date: str | None = Field(default=None, alias="incidentDate")
    is_follow_up: bool = Field(default=False, alias="isFollowUp")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    is_online: bool = Field(default=True, alias="isOnline")
    attribute: str | None = None
    value: str | None = None

    model_config = {"populate_by_name": True}


class TrackedEntityRow(BaseModel):
    """One attribute of one tracked entity."""

    tracked_entity_id: str = Field(alias="trackedEntityId")
    tracked_entity_type: str | None = Field(default=None, alias="trackedEntityType")
    org_unit: str | None = Field(default=None, alias="orgUnit")
    updated_at: str = Field(alias="updatedAt")
    created_at: str | None = Field(default=None, alias="createdAt")
    is_inactive: bool = Field(default=False, alias="isInactive")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    is_online: bool = Field(default=True, alias="isOnline")
    attribute: str | None = None
    value: str | None = None

    model_config = {"populate_by_name": True}


class EventRow(BaseModel):
    """One data value of one event (or the bare event if it has none)."""

    event_id: str = Field(alias="eventId")
    enrollment_id: str | None = Field(default=None, alias="enrollmentId")
    program: str | None = None
    program_stage: str | None = Field(default=None, alias="programStage")
    org_unit: str | None = Field(default=None, alias="orgUnit")
    tracked_entity: str | None = Field(default=None, alias="trackedEntity")
    status: str | None = None
    occurred_at: str | None = Field(default=None, alias="occurredAt")
    scheduled_at: str | None = Field(default=None, alias="scheduledAt")
    updated_at: str = Field(alias="updatedAt")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    is_online: bool = Field(default=True, alias="isOnline")
    data_element: str | None = Field(default=None, alias="dataElement")
    value: str | None = None

    model_config = {"populate_by_name": True}
