from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from doclib.api.deps import get_actor, get_db
from doclib.schemas.common import ListResponse
from doclib.schemas.files import FavoriteRead, FileItemRead
from doclib.services.access import Actor
from doclib.services.favorites import favorites

router = APIRouter(prefix="/favorites", tags=["favorites"])


@router.get("", response_model=ListResponse[FileItemRead])
def list_favorites(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return favorites.list_response(db, actor, limit, offset)


@router.put("/{file_item_id}", response_model=FavoriteRead)
def add_favorite(
    file_item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return favorites.add(db, actor, file_item_id)


@router.delete("/{file_item_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_favorite(
    file_item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    favorites.remove(db, actor, file_item_id)
