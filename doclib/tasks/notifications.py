import logging

from doclib.celery_app import celery_app

logger = logging.getLogger(__name__)

_TEMPLATES = {
    "file_request.approved": (
        "Request approved",
        "Your request #{entity_id} was approved.",
    ),
    "file_request.rejected": (
        "Request rejected",
        "Your request #{entity_id} was rejected.",
    ),
}


@celery_app.task(
    name="doclib.tasks.notifications.dispatch_notifications", ignore_result=True
)
def dispatch_notifications(
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    file_item_id: int | None = None,
    payload: dict | None = None,
) -> None:
    """Create in-app notifications for an event.

    Only request resolutions notify anyone today: the submitter gets one
    notification per approval or rejection.
    """
    if event_type not in _TEMPLATES:
        return

    from doclib.db import SessionLocal

    db = SessionLocal()
    try:
        _dispatch(db, event_type, entity_type, entity_id, actor_id, payload)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to dispatch notifications for %s: %s", event_type, e)
    finally:
        db.close()


def _dispatch(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None,
    payload: dict | None,
) -> int:
    from doclib.models import Notification

    template = _TEMPLATES.get(event_type)
    submitter_id = (payload or {}).get("submitter_id")
    if template is None or submitter_id is None:
        return 0

    title, body = template
    body = body.format(entity_id=entity_id)
    reason = (payload or {}).get("reason")
    if reason:
        body = f"{body} Reason: {reason}"

    db.add(
        Notification(
            user_id=int(submitter_id),
            title=title,
            body=body,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=int(entity_id),
        )
    )
    db.commit()
    logger.info(
        "Dispatched %s notification to user %s for %s/%s",
        event_type,
        submitter_id,
        entity_type,
        entity_id,
    )
    return 1
