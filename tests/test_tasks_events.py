from unittest.mock import patch

from doclib.tasks.events import process_event


class TestProcessEvent:
    @patch("doclib.tasks.notifications.dispatch_notifications.delay")
    @patch("doclib.tasks.audit.record_audit.delay")
    def test_fans_out(self, mock_audit, mock_notify):
        process_event(
            event_type="file_request.approved",
            entity_type="file_request",
            entity_id=4,
            actor_id=1,
            payload={"submitter_id": 7},
        )
        expected = {
            "event_type": "file_request.approved",
            "entity_type": "file_request",
            "entity_id": 4,
            "actor_id": 1,
            "file_item_id": None,
            "payload": {"submitter_id": 7},
        }
        mock_audit.assert_called_once_with(**expected)
        mock_notify.assert_called_once_with(**expected)

    @patch("doclib.tasks.notifications.dispatch_notifications.delay")
    @patch("doclib.tasks.audit.record_audit.delay", side_effect=RuntimeError("down"))
    def test_audit_failure_does_not_block_notifications(self, mock_audit, mock_notify):
        process_event(event_type="file.created", entity_type="file_item", entity_id=1)
        mock_notify.assert_called_once()
