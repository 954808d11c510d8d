"""
Tests unitarios para los tipos del pipeline y utilidades de fecha.
"""
from datetime import datetime, timezone

import pytest

from construflow_sync.infrastructure.external.construflow.types import (
    Issue,
    IssueActivity,
    Project,
)
from construflow_sync.shared.utils.datetime_utils import DateTimeUtils


class TestIssue:
    """Tests para Issue.from_payload."""

    def test_maps_camel_case_fields_and_project_id(self):
        issue = Issue.from_payload(
            {
                "id": 7,
                "createdAt": "2025-01-01",
                "statusUpdatedByUserId": 3,
                "creationPhase": "projeto",
                "disciplines": [{"discipline": {"id": 1, "name": "Arq"}, "status": "done"}, None],
            },
            project_id=42,
        )

        row = issue.to_row()
        assert row["project_id"] == "42"
        assert row["created_at"] == "2025-01-01"
        assert row["status_updated_by_user_id"] == 3
        assert row["creation_phase"] == "projeto"
        assert [d.to_row() for d in issue.disciplines] == [{
            "issue_id": 7,
            "discipline_id": 1,
            "discipline_name": "Arq",
            "status": "done",
            "project_id": "42",
        }]

    def test_missing_id_raises(self):
        with pytest.raises(ValueError):
            Issue.from_payload({"title": "x"}, project_id=1)

    def test_missing_project_id_raises(self):
        with pytest.raises(ValueError):
            Issue.from_payload({"id": 1}, project_id=None)


class TestActivityAndProject:
    """Tests para IssueActivity y Project."""

    def test_activity_from_empty_payload(self):
        activity = IssueActivity.from_payload(None, issue_id=1, project_id=2)

        assert activity.comments == ()
        assert activity.project_id == "2"

    def test_history_without_fields_keeps_none(self):
        activity = IssueActivity.from_payload({"history": [{"_id": "h"}]}, issue_id=1, project_id=2)

        assert activity.history[0].to_row()["fields"] is None

    def test_project_from_row(self):
        assert Project.from_row({"id": 5, "name": "Torre"}) == Project(id="5", name="Torre")
        assert Project.from_row({"name": "sin id"}) is None


class TestDateTimeUtils:
    """Tests para DateTimeUtils."""

    def test_iso_string_uses_z_suffix_and_millis(self):
        dt = datetime(2025, 12, 16, 10, 15, 0, 123456, tzinfo=timezone.utc)

        assert DateTimeUtils.to_iso_string(dt) == "2025-12-16T10:15:00.123Z"

    def test_naive_datetime_is_assumed_utc(self):
        assert DateTimeUtils.to_iso_string(datetime(2025, 1, 1)) == "2025-01-01T00:00:00.000Z"

    def test_format_duration(self):
        assert DateTimeUtils.format_duration(12.345) == "12.3s"
        assert DateTimeUtils.format_duration(0) == "0.0s"
