import logging

from doclib.celery_app import celery_app

logger = logging.getLogger(__name__)

# Event type -> audit action. Unlisted events fall back to an upper-cased
# form of the event type, e.g. "section.created" -> "SECTION_CREATED".
AUDIT_ACTIONS = {
    "file.created": "FILE_CREATED",
    "file.updated": "FILE_UPDATED",
    "file.access_updated": "FILE_ACCESS_UPDATED",
    "file.deleted": "FILE_TRASHED",
    "file.restored": "FILE_RESTORED",
    "file.force_deleted": "FILE_FORCE_DELETED",
    "version.created": "FILE_VERSION_CREATED",
    "version.current_changed": "FILE_VERSION_SET_CURRENT",
    "version.deleted": "FILE_VERSION_TRASHED",
    "version.restored": "FILE_VERSION_RESTORED",
    "version.force_deleted": "FILE_VERSION_FORCE_DELETED",
    "asset.uploaded": "FILE_ASSET_UPLOADED",
    "asset.deleted": "FILE_ASSET_TRASHED",
    "asset.restored": "FILE_ASSET_RESTORED",
    "asset.force_deleted": "FILE_ASSET_FORCE_DELETED",
    "file_request.submitted": "FILE_REQUEST_SUBMITTED",
    "file_request.asset_uploaded": "FILE_REQUEST_ASSET_UPLOADED",
    "file_request.approved": "FILE_REQUEST_APPROVED",
    "file_request.rejected": "FILE_REQUEST_REJECTED",
    "file_request.canceled": "FILE_REQUEST_CANCELED",
}


def audit_action(event_type: str) -> str:
    if event_type in AUDIT_ACTIONS:
        return AUDIT_ACTIONS[event_type]
    return event_type.replace(".", "_").upper()


@celery_app.task(name="doclib.tasks.audit.record_audit", ignore_result=True)
def record_audit(
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    file_item_id: int | None = None,
    payload: dict | None = None,
) -> None:
    """Append one audit log row for an event."""
    from doclib.db import SessionLocal

    db = SessionLocal()
    try:
        _record(db, event_type, entity_type, entity_id, actor_id, file_item_id, payload)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to record audit for %s: %s", event_type, e)
    finally:
        db.close()


def _record(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None,
    file_item_id: int | None,
    payload: dict | None,
):
    from doclib.models import AuditLog

    meta = {"event_type": event_type}
    if file_item_id is not None:
        meta["file_item_id"] = file_item_id
    entry = AuditLog(
        actor_user_id=actor_id,
        action=audit_action(event_type),
        entity_type=entity_type,
        entity_id=int(entity_id),
        diff=payload or None,
        meta=meta,
    )
    db.add(entry)
    db.commit()
    logger.info(
        "Recorded audit %s for %s/%s", entry.action, entity_type, entity_id
    )
    return entry
