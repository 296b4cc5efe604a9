"""Unit tests for content/store.py -- announcement and assignment persistence.

Covers:
- make_preview() and time_remaining() helpers
- find_by_id() dispatches on resource type
- update_atomic() honours its predicate
- list filters and pagination
- update_* regenerates the preview and ignores protected fields
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import ResourceType
from content.models import Announcement, Assignment, Attachment
from content.store import make_preview, time_remaining


def _announcement(title="Notice", body="Body text", created_by=1, **kw) -> Announcement:
    return Announcement(title=title, body=body, created_by=created_by, **kw)


def _assignment(title="Homework", years=("2022",), created_by=1) -> Assignment:
    return Assignment(
        title=title,
        description="Do the exercises.",
        deadline="2030-06-01T09:00:00.000000+00:00",
        created_by=created_by,
        admission_years=list(years),
    )


class TestHelpers:
    def test_preview_keeps_short_text(self):
        assert make_preview("  hello\n\n world  ") == "hello world"

    def test_preview_truncates_with_ellipsis(self):
        preview = make_preview("word " * 200)
        assert preview.endswith("...")
        assert len(preview) <= 303

    def test_time_remaining_breakdown(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        deadline = (now + timedelta(days=2, hours=3, minutes=4, seconds=30)).isoformat()
        assert time_remaining(deadline, now=now) == {"days": 2, "hours": 3, "minutes": 4}

    def test_time_remaining_floors_at_zero(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert time_remaining("2024-12-31T00:00:00+00:00", now=now) == {"days": 0, "hours": 0, "minutes": 0}


class TestGenericAccess:
    def test_find_by_id_dispatches_on_type(self, content_store):
        ann_id = content_store.create_announcement(_announcement())
        assignment_id = content_store.create_assignment(_assignment())

        assert isinstance(content_store.find_by_id(ResourceType.announcement, ann_id), Announcement)
        assert isinstance(content_store.find_by_id(ResourceType.assignment, assignment_id), Assignment)

    def test_find_by_id_missing(self, content_store):
        assert content_store.find_by_id(ResourceType.announcement, 12345) is None

    def test_unknown_type_raises_value_error(self, content_store):
        with pytest.raises(ValueError):
            content_store.find_by_id("quiz", 1)

    def test_update_atomic_respects_predicate(self, content_store):
        ann_id = content_store.create_announcement(_announcement())
        assert content_store.update_atomic(ResourceType.announcement, ann_id, {"is_archived": True}, {"title": "X"}) is False
        assert content_store.update_atomic(ResourceType.announcement, ann_id, {"is_archived": False}, {"title": "Y"})
        assert content_store.get_announcement(ann_id).title == "Y"

    def test_update_atomic_missing_row(self, content_store):
        assert content_store.update_atomic(ResourceType.assignment, 77, values={"title": "Z"}) is False

    def test_delete(self, content_store):
        ann_id = content_store.create_announcement(_announcement())
        assert content_store.delete(ResourceType.announcement, ann_id) is True
        assert content_store.delete(ResourceType.announcement, ann_id) is False

    def test_ping(self, content_store):
        assert content_store.ping() is True


class TestAnnouncements:
    def test_create_round_trip(self, content_store):
        ann_id = content_store.create_announcement(
            _announcement(
                category="event",
                admission_year=2023,
                attachments=[Attachment(file_name="a.pdf", file_url="https://x/a.pdf")],
            )
        )
        ann = content_store.get_announcement(ann_id)
        assert ann.category == "event"
        assert ann.admission_year == 2023
        assert ann.attachments == [Attachment(file_name="a.pdf", file_url="https://x/a.pdf")]
        assert ann.preview == "Body text"
        assert ann.is_archived is False and ann.archived_at is None and ann.expires_at is None

    def test_filters(self, content_store):
        content_store.create_announcement(_announcement(title="Exam dates", category="academic", created_by=1))
        content_store.create_announcement(_announcement(title="Sports day", category="event", created_by=2))
        content_store.create_announcement(_announcement(title="exam venue", category="academic", created_by=2))

        assert {a.title for a in content_store.list_announcements(title="EXAM")} == {"Exam dates", "exam venue"}
        assert [a.title for a in content_store.list_announcements(category="event")] == ["Sports day"]
        assert len(content_store.list_announcements(created_by=2)) == 2
        assert len(content_store.list_announcements(archived=True)) == 0
        assert len(content_store.list_announcements(timeline_days=1)) == 3

    def test_title_filter_escapes_wildcards(self, content_store):
        content_store.create_announcement(_announcement(title="100% attendance"))
        content_store.create_announcement(_announcement(title="Attendance"))
        assert [a.title for a in content_store.list_announcements(title="100%")] == ["100% attendance"]

    def test_newest_first_with_pagination(self, content_store):
        ids = [content_store.create_announcement(_announcement(title=f"Notice {i}")) for i in range(5)]
        first_page = content_store.list_announcements(skip=0, limit=2)
        second_page = content_store.list_announcements(skip=2, limit=2)
        assert [a.id for a in first_page] == [ids[4], ids[3]]
        assert [a.id for a in second_page] == [ids[2], ids[1]]

    def test_update_regenerates_preview_and_ignores_protected_fields(self, content_store):
        ann_id = content_store.create_announcement(_announcement(created_by=5))
        content_store.update_announcement(ann_id, body="Fresh   body", created_by=99, is_archived=True)
        ann = content_store.get_announcement(ann_id)
        assert ann.body == "Fresh   body"
        assert ann.preview == "Fresh body"
        assert ann.created_by == 5
        assert ann.is_archived is False


class TestAssignments:
    def test_create_round_trip(self, content_store):
        assignment_id = content_store.create_assignment(_assignment(years=("2022", "2023")))
        assignment = content_store.get_assignment(assignment_id)
        assert assignment.admission_years == ["2022", "2023"]
        assert assignment.deadline == "2030-06-01T09:00:00.000000+00:00"

    def test_filter_by_admission_year(self, content_store):
        content_store.create_assignment(_assignment(title="A", years=("2022",)))
        content_store.create_assignment(_assignment(title="B", years=("2023", "2024")))
        assert [a.title for a in content_store.list_assignments(admission_year="2023")] == ["B"]
        assert [a.title for a in content_store.list_assignments(admission_year="2022")] == ["A"]

    def test_update_years_and_description(self, content_store):
        assignment_id = content_store.create_assignment(_assignment())
        content_store.update_assignment(assignment_id, admission_years=["2025"], description="New brief")
        assignment = content_store.get_assignment(assignment_id)
        assert assignment.admission_years == ["2025"]
        assert assignment.preview == "New brief"
