import logging

from doclib.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="doclib.tasks.storage.reclaim_storage", ignore_result=True)
def reclaim_storage(paths: list[str]) -> None:
    """Delete blobs that no asset row references any more.

    References are re-checked here, so a path picked up again between the
    enqueue and this run is left alone.
    """
    from doclib.db import SessionLocal

    db = SessionLocal()
    try:
        _reclaim(db, paths)
    except Exception as e:
        logger.exception("Failed to reclaim storage: %s", e)
    finally:
        db.close()


def _reclaim(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    paths: list[str],
) -> int:
    from doclib.services.files import unreferenced_paths
    from doclib.services.storage import delete_blobs

    orphaned = unreferenced_paths(db, paths)
    skipped = len(set(paths)) - len(orphaned)
    if skipped:
        logger.warning("Skipped %d blob(s) that are referenced again", skipped)
    removed = delete_blobs(orphaned)
    logger.info("Reclaimed %d of %d blob(s)", removed, len(orphaned))
    return removed
