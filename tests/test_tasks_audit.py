from unittest.mock import MagicMock, patch

from doclib.models import AuditLog
from doclib.tasks.audit import _record, audit_action, record_audit


class TestAudit:
    def test_action_mapping(self):
        assert audit_action("file.deleted") == "FILE_TRASHED"
        assert audit_action("version.current_changed") == "FILE_VERSION_SET_CURRENT"
        assert audit_action("section.created") == "SECTION_CREATED"

    def test_record(self, db_session):
        entry = _record(
            db_session,
            "version.current_changed",
            "file_version",
            12,
            1,
            3,
            {"before": 10, "after": 12},
        )
        stored = db_session.get(AuditLog, entry.id)
        assert stored.action == "FILE_VERSION_SET_CURRENT"
        assert stored.actor_user_id == 1
        assert stored.diff == {"before": 10, "after": 12}
        assert stored.meta == {"event_type": "version.current_changed", "file_item_id": 3}

    def test_record_without_payload(self, db_session):
        entry = _record(db_session, "section.deleted", "section", 2, None, None, {})
        assert entry.diff is None
        assert entry.meta == {"event_type": "section.deleted"}

    @patch("doclib.db.SessionLocal")
    def test_task_rolls_back_and_closes_on_failure(self, mock_session_cls):
        mock_db = MagicMock()
        mock_db.commit.side_effect = RuntimeError("db down")
        mock_session_cls.return_value = mock_db
        record_audit(event_type="file.created", entity_type="file_item", entity_id=1)
        mock_db.rollback.assert_called_once()
        mock_db.close.assert_called_once()
