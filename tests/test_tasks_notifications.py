from doclib.models import Notification
from doclib.tasks.notifications import _dispatch


class TestNotifications:
    def test_rejection_notifies_submitter(self, db_session):
        sent = _dispatch(
            db_session,
            "file_request.rejected",
            "file_request",
            9,
            1,
            {"submitter_id": 7, "reason": "blurry scan"},
        )
        assert sent == 1
        note = db_session.query(Notification).one()
        assert note.user_id == 7
        assert note.title == "Request rejected"
        assert note.body == "Your request #9 was rejected. Reason: blurry scan"

    def test_ignored_events(self, db_session):
        assert _dispatch(db_session, "file.created", "file_item", 1, 1, {}) == 0
        assert _dispatch(db_session, "file_request.approved", "file_request", 1, 1, {}) == 0
        assert db_session.query(Notification).count() == 0
