import enum
import logging

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    department_created = "department.created"
    department_updated = "department.updated"
    department_moved = "department.moved"
    department_deleted = "department.deleted"

    section_created = "section.created"
    section_updated = "section.updated"
    section_deleted = "section.deleted"

    category_created = "category.created"
    category_updated = "category.updated"
    category_moved = "category.moved"
    category_deleted = "category.deleted"

    file_created = "file.created"
    file_updated = "file.updated"
    file_access_updated = "file.access_updated"
    file_deleted = "file.deleted"
    file_restored = "file.restored"
    file_force_deleted = "file.force_deleted"

    version_created = "version.created"
    version_current_changed = "version.current_changed"
    version_deleted = "version.deleted"
    version_restored = "version.restored"
    version_force_deleted = "version.force_deleted"

    asset_uploaded = "asset.uploaded"
    asset_deleted = "asset.deleted"
    asset_restored = "asset.restored"
    asset_force_deleted = "asset.force_deleted"

    file_request_submitted = "file_request.submitted"
    file_request_asset_uploaded = "file_request.asset_uploaded"
    file_request_approved = "file_request.approved"
    file_request_rejected = "file_request.rejected"
    file_request_canceled = "file_request.canceled"


def publish_event(
    event_type: EventType,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    file_item_id: int | None = None,
    payload: dict | None = None,
) -> None:
    """Fire-and-forget event publishing.

    Queues a Celery task that writes the audit record and fans out
    notifications. Never raises; logs failures and continues.
    """
    try:
        from doclib.tasks.events import process_event

        process_event.delay(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=int(entity_id),
            actor_id=int(actor_id) if actor_id is not None else None,
            file_item_id=int(file_item_id) if file_item_id is not None else None,
            payload=payload or {},
        )
        logger.debug(
            "Published event %s for %s/%s", event_type.value, entity_type, entity_id
        )
    except Exception as e:
        logger.exception("Failed to publish event %s: %s", event_type.value, e)
