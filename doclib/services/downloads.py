import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from doclib.models import Download
from doclib.services.common import apply_pagination, atomic, coerce_id
from doclib.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


class Downloads(ListResponseMixin):
    """Append-only download ledger. Rows are inserted and listed, nothing else."""

    @staticmethod
    def record(
        db: Session,
        user_id: int | None,
        file_item_id: int,
        file_version_id: int,
        file_version_asset_id: int,
        lang: str,
    ) -> Download:
        with atomic(db):
            event = Download(
                user_id=user_id,
                file_item_id=file_item_id,
                file_version_id=file_version_id,
                file_version_asset_id=file_version_asset_id,
                lang=lang,
            )
            db.add(event)
            db.flush()
        logger.info(
            "Recorded download of file item %s (asset %s) by user %s",
            file_item_id,
            file_version_asset_id,
            user_id,
        )
        return event

    @staticmethod
    def list(
        db: Session,
        user_id: int | None,
        file_item_id: int | None,
        limit: int,
        offset: int,
    ) -> list[Download]:
        stmt = select(Download)
        if user_id is not None:
            stmt = stmt.where(Download.user_id == coerce_id(user_id))
        if file_item_id is not None:
            stmt = stmt.where(Download.file_item_id == coerce_id(file_item_id))
        stmt = stmt.order_by(Download.created_at.desc(), Download.id.desc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


downloads = Downloads()
