import logging

from doclib.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="doclib.tasks.events.process_event", ignore_result=True)
def process_event(
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    file_item_id: int | None = None,
    payload: dict | None = None,
) -> None:
    """Central fan-out task for library events.

    Dispatches to the audit and notification sub-tasks. Each fan-out is
    wrapped so one failure doesn't block the other.
    """
    event_data = {
        "event_type": event_type,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "actor_id": actor_id,
        "file_item_id": file_item_id,
        "payload": payload or {},
    }
    logger.info("Processing event %s for %s/%s", event_type, entity_type, entity_id)

    _fanout_audit(event_data)
    _fanout_notifications(event_data)


def _fanout_audit(event_data: dict) -> None:
    try:
        from doclib.tasks.audit import record_audit

        record_audit.delay(**event_data)
    except Exception as e:
        logger.exception("Failed to fan-out audit record: %s", e)


def _fanout_notifications(event_data: dict) -> None:
    try:
        from doclib.tasks.notifications import dispatch_notifications

        dispatch_notifications.delay(**event_data)
    except Exception as e:
        logger.exception("Failed to fan-out notifications: %s", e)
