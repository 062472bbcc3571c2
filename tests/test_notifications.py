"""Tests for notification storage and the database-backed sink."""
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from academy_core import crud, models
from academy_core.notifications import DatabaseNotificationSink, NotificationError


class TestDatabaseNotificationSink:
    """Test that notify() records inbox rows."""

    def test_notify_writes_row(self, db, student):
        """Payload UUIDs and statuses are stored as JSON strings."""
        sink = DatabaseNotificationSink(db)
        request_id = uuid4()

        sink.notify(
            student.id,
            models.NotificationType.ANNOUNCEMENT,
            "Access Request Approved",
            "Your request has been approved!",
            {"request_id": request_id, "status": models.AccessRequestStatus.APPROVED, "feedback": None},
        )

        rows = crud.get_user_notifications(db, student.id)
        assert len(rows) == 1
        assert rows[0].title == "Access Request Approved"
        assert rows[0].read is False
        assert rows[0].data == {"request_id": str(request_id), "status": "approved", "feedback": None}

    def test_notify_without_payload(self, db, student):
        sink = DatabaseNotificationSink(db)

        sink.notify(student.id, models.NotificationType.REMINDER, "Keep going", "Lesson 2 awaits")

        assert crud.get_user_notifications(db, student.id)[0].data is None

    def test_database_failure_raises_notification_error(self, db, student, monkeypatch):
        """A failing insert becomes NotificationError and the session is rolled back."""
        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(db, "commit", broken_commit)
        sink = DatabaseNotificationSink(db)

        with pytest.raises(NotificationError):
            sink.notify(student.id, models.NotificationType.ANNOUNCEMENT, "Hi", "Hello")

        monkeypatch.undo()
        assert crud.get_user_notifications(db, student.id) == []


class TestInbox:
    """Test inbox queries scoped to the owning user."""

    def _send(self, db, user_id, title="Hello"):
        return crud.create_notification(db, user_id, models.NotificationType.ANNOUNCEMENT, title, "Body")

    def test_unread_count_and_mark_read(self, db, student):
        first = self._send(db, student.id, "first")
        self._send(db, student.id, "second")
        assert crud.get_unread_count(db, student.id) == 2

        marked = crud.mark_notification_read(db, first.id, student.id)

        assert marked.read is True
        assert crud.get_unread_count(db, student.id) == 1
        assert [n.title for n in crud.get_user_notifications(db, student.id, unread_only=True)] == ["second"]

    def test_mark_all_read(self, db, student, other_student):
        self._send(db, student.id)
        self._send(db, student.id)
        self._send(db, other_student.id)

        assert crud.mark_all_notifications_read(db, student.id) == 2
        assert crud.get_unread_count(db, student.id) == 0
        assert crud.get_unread_count(db, other_student.id) == 1

    def test_other_users_rows_untouchable(self, db, student, other_student):
        note = self._send(db, student.id)

        assert crud.mark_notification_read(db, note.id, other_student.id) is None
        assert crud.delete_notification(db, note.id, other_student.id) is False
        assert crud.delete_notification(db, note.id, student.id) is True
        assert crud.get_user_notifications(db, student.id) == []

    def test_limit(self, db, student):
        for i in range(3):
            self._send(db, student.id, f"note {i}")

        assert len(crud.get_user_notifications(db, student.id, limit=2)) == 2


class TestBulkNotifications:
    """Test sending one notification to several users."""

    def test_creates_one_row_per_user(self, db, student, other_student):
        rows = crud.create_bulk_notifications(
            db,
            [student.id, other_student.id],
            models.NotificationType.LESSON,
            "New lesson",
            "Lesson 4 is live",
            {"lesson": 4},
        )

        assert len(rows) == 2
        assert {row.user_id for row in rows} == {student.id, other_student.id}
        assert all(row.data == {"lesson": 4} for row in rows)

    def test_empty_recipients_rejected(self, db):
        with pytest.raises(ValueError):
            crud.create_bulk_notifications(db, [], models.NotificationType.LESSON, "x", "y")

    def test_unknown_recipient_rejected_by_database(self, db, student):
        """Recipients must reference existing profiles."""
        with pytest.raises(IntegrityError):
            crud.create_bulk_notifications(db, [student.id, uuid4()], models.NotificationType.LESSON, "x", "y")
        db.rollback()

        assert crud.get_user_notifications(db, student.id) == []

    def test_missing_profile_ids(self, db, student, other_student):
        ghost = uuid4()

        assert crud.get_missing_profile_ids(db, [student.id, ghost, other_student.id, ghost]) == [ghost]
        assert crud.get_missing_profile_ids(db, [student.id]) == []


class TestReviewerRoster:
    """Test the reviewer capability lookups."""

    def test_reviewer_ids(self, db, student, teacher, admin):
        assert set(crud.get_reviewer_ids(db)) == {teacher.id, admin.id}

    def test_is_reviewer(self, student, teacher, admin):
        assert crud.is_reviewer(teacher)
        assert crud.is_reviewer(admin)
        assert not crud.is_reviewer(student)
        assert not crud.is_reviewer(None)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
