"""Tests for record transformers."""

from datetime import datetime, timezone

import pytest

from fakes import enrollment, event, org_unit, program, tracked_entity
from tracker_offline_sync.exceptions import TransformError
from tracker_offline_sync.sync.transform import (
    TransformContext,
    coerce_bool,
    transform_enrollment,
    transform_event,
    transform_option_set,
    transform_org_unit,
    transform_org_unit_level,
    transform_profile,
    transform_program,
    transform_tracked_entity,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def context():
    return TransformContext(now=NOW)


class TestCoerceBool:
    """Tests for coerce_bool."""

    @pytest.mark.parametrize("value", [True, "true", "TRUE", 1, "1"])
    def test_true(self, value):
        assert coerce_bool(value) is True

    @pytest.mark.parametrize("value", [False, "false", 0, None, ""])
    def test_false(self, value):
        assert coerce_bool(value) is False

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            coerce_bool("maybe")


class TestTransformEnrollment:
    """Tests for enrollment attribute explosion."""

    def test_one_row_per_attribute(self, context):
        record = enrollment("E1", attributes={"first": "Ana", "last": "Ruiz", "age": "30"})
        rows = transform_enrollment(record, context)

        assert len(rows) == 3
        assert [(r.attribute, r.value) for r in rows] == [
            ("first", "Ana"),
            ("last", "Ruiz"),
            ("age", "30"),
        ]
        shared = {(r.enrollment_id, r.org_unit, r.program, r.status, r.updated_at) for r in rows}
        assert shared == {("E1", "OU1", "PRG1", "ACTIVE", "2024-02-01T10:00:00.000")}

    def test_no_attributes_yields_single_bare_row(self, context):
        rows = transform_enrollment(enrollment("E1"), context)
        assert len(rows) == 1
        assert rows[0].attribute is None
        assert rows[0].value is None

    def test_missing_updated_at_uses_context_clock(self, context):
        record = enrollment("E1")
        del record["updatedAt"]
        rows = transform_enrollment(record, context)
        assert rows[0].updated_at == NOW.isoformat()

    def test_flags(self, context):
        record = enrollment("E1", followup="true", deleted=True, occurredAt="2024-01-05")
        row = transform_enrollment(record, context)[0]
        assert row.is_follow_up is True
        assert row.is_deleted is True
        assert row.incident_date == "2024-01-05"

    def test_is_online_comes_from_context(self):
        rows = transform_enrollment(enrollment("E1"), TransformContext(now=NOW, is_online=False))
        assert rows[0].is_online is False

    def test_missing_id_raises(self, context):
        record = enrollment("E1")
        del record["enrollment"]
        with pytest.raises(TransformError) as exc_info:
            transform_enrollment(record, context)
        assert exc_info.value.entity == "enrollment"

    def test_attribute_without_key_raises(self, context):
        record = enrollment("E1")
        record["attributes"] = [{"value": "x"}]
        with pytest.raises(TransformError) as exc_info:
            transform_enrollment(record, context)
        assert exc_info.value.record_id == "E1"

    def test_bad_boolean_raises(self, context):
        with pytest.raises(TransformError):
            transform_enrollment(enrollment("E1", deleted="sometimes"), context)

    def test_non_dict_raises(self, context):
        with pytest.raises(TransformError):
            transform_enrollment(["not", "a", "record"], context)

    def test_deterministic(self, context):
        record = enrollment("E1", attributes={"a": "1"})
        assert transform_enrollment(record, context) == transform_enrollment(record, context)


class TestTransformTrackedEntity:
    """Tests for tracked entity explosion."""

    def test_one_row_per_attribute(self, context):
        rows = transform_tracked_entity(tracked_entity("T1", attributes={"a": "1", "b": "2"}), context)
        assert [r.attribute for r in rows] == ["a", "b"]
        assert all(r.tracked_entity_id == "T1" for r in rows)

    def test_inactive_flag(self, context):
        rows = transform_tracked_entity(tracked_entity("T1", inactive=True), context)
        assert rows[0].is_inactive is True


class TestTransformEvent:
    """Tests for event explosion."""

    def test_one_row_per_data_value(self, context):
        rows = transform_event(event("V1", "E1", data_values={"weight": "3.2", "height": "50"}), context)
        assert [(r.data_element, r.value) for r in rows] == [("weight", "3.2"), ("height", "50")]
        assert all(r.enrollment_id == "E1" for r in rows)

    def test_missing_id_raises(self, context):
        record = event("V1", "E1")
        del record["event"]
        with pytest.raises(TransformError):
            transform_event(record, context)


class TestTransformOrgUnit:
    """Tests for org unit validation."""

    def test_valid(self, context):
        [unit] = transform_org_unit(org_unit("B", "/A/B"), context)
        assert unit.level == 2
        assert unit.within_user_hierarchy is False

    def test_level_derived_from_path(self, context):
        record = org_unit("C", "A/B/C")
        del record["level"]
        [unit] = transform_org_unit(record, context)
        assert unit.level == 3

    def test_within_user_hierarchy_argument(self, context):
        [unit] = transform_org_unit(org_unit("A", "/A"), context, within_user_hierarchy=True)
        assert unit.within_user_hierarchy is True

    def test_path_must_end_with_id(self, context):
        with pytest.raises(TransformError):
            transform_org_unit(org_unit("B", "/A/C"), context)

    def test_level_must_match_depth(self, context):
        with pytest.raises(TransformError):
            transform_org_unit(org_unit("B", "/A/B", level=3), context)

    def test_non_numeric_level(self, context):
        with pytest.raises(TransformError):
            transform_org_unit(org_unit("B", "/A/B", level="two"), context)


class TestTransformMetadata:
    """Tests for metadata transformers."""

    def test_program_references(self, context):
        [row] = transform_program(program("P1"), context)
        assert row.tracked_entity_type == "person"
        assert row.organisation_units == ["OU1"]
        assert row.program_stages == ["STAGE1"]
        assert row.is_tracker

    def test_org_unit_level(self, context):
        [row] = transform_org_unit_level({"id": "L1", "level": "2", "displayName": "District"}, context)
        assert row.level == 2

    def test_org_unit_level_missing_level(self, context):
        with pytest.raises(TransformError):
            transform_org_unit_level({"id": "L1"}, context)

    def test_option_set(self, context):
        record = {
            "id": "OS1",
            "displayName": "Sex",
            "valueType": "TEXT",
            "options": [{"code": "M", "displayName": "Male"}, {"code": "F", "displayName": "Female"}],
        }
        [row] = transform_option_set(record, context)
        assert [o.code for o in row.options] == ["M", "F"]

    def test_profile(self, context):
        record = {
            "id": "U1",
            "username": "admin",
            "organisationUnits": [{"id": "A"}],
            "teiSearchOrganisationUnits": [],
        }
        [row] = transform_profile(record, context)
        assert row.username == "admin"
        assert row.organisation_units == ["A"]
