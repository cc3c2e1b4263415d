import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from doclib.models import FileFavorite, FileItem
from doclib.services.access import Actor, visible_clause
from doclib.services.common import apply_pagination, atomic, coerce_id
from doclib.services.files import FileItems
from doclib.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


class Favorites(ListResponseMixin):
    @staticmethod
    def add(db: Session, actor: Actor, file_item_id) -> FileFavorite:
        """Bookmark a file for the actor. Adding twice keeps a single row."""
        item = FileItems.get_for_actor(db, actor, file_item_id)
        with atomic(db):
            favorite = db.get(FileFavorite, (item.id, actor.user_id))
            if favorite is None:
                favorite = FileFavorite(file_item_id=item.id, user_id=actor.user_id)
                db.add(favorite)
                db.flush()
                logger.info(
                    "User %s added file item %s to favorites", actor.user_id, item.id
                )
        return favorite

    @staticmethod
    def remove(db: Session, actor: Actor, file_item_id) -> None:
        """Remove a bookmark; removing an absent one is a no-op."""
        with atomic(db):
            result = db.execute(
                delete(FileFavorite)
                .where(FileFavorite.file_item_id == coerce_id(file_item_id))
                .where(FileFavorite.user_id == actor.user_id)
            )
        if result.rowcount:
            logger.info(
                "User %s removed file item %s from favorites",
                actor.user_id,
                file_item_id,
            )

    @staticmethod
    def is_favorite(db: Session, actor: Actor, file_item_id) -> bool:
        return db.get(FileFavorite, (coerce_id(file_item_id), actor.user_id)) is not None

    @staticmethod
    def list(db: Session, actor: Actor, limit: int, offset: int) -> list[FileItem]:
        """Favorite files the actor can still view, most recently added first."""
        stmt = (
            select(FileItem)
            .join(FileFavorite, FileFavorite.file_item_id == FileItem.id)
            .where(FileFavorite.user_id == actor.user_id)
            .where(visible_clause(actor))
            .order_by(FileFavorite.created_at.desc(), FileItem.id.desc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


favorites = Favorites()
