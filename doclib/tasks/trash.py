import logging
from datetime import datetime, timedelta, timezone

from doclib.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="doclib.tasks.trash.purge_expired_trash", ignore_result=True)
def purge_expired_trash() -> None:
    """Periodic task force-deleting files trashed longer than the TTL."""
    from doclib.db import SessionLocal

    db = SessionLocal()
    try:
        _purge(db, datetime.now(timezone.utc))
    except Exception as e:
        logger.exception("Failed to purge expired trash: %s", e)
    finally:
        db.close()


def _purge(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    now: datetime,
) -> int:
    from sqlalchemy import select

    from doclib.config import settings
    from doclib.models import FileItem
    from doclib.services.files import FileItems

    cutoff = now - timedelta(days=settings.trash_ttl_days)
    expired = db.scalars(
        select(FileItem.id)
        .where(FileItem.deleted_at.is_not(None))
        .where(FileItem.deleted_at <= cutoff)
        .order_by(FileItem.deleted_at.asc())
    ).all()

    count = 0
    for item_id in expired:
        try:
            FileItems.force_delete(db, None, item_id)
            count += 1
        except Exception as e:
            logger.warning("Failed to purge file item %s: %s", item_id, e)

    logger.info("Purged %d expired file item(s) from the trash", count)
    return count
