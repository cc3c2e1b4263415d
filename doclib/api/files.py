from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from doclib.api.deps import get_actor, get_db, require_permission
from doclib.errors import ForbiddenError, NotFoundError
from doclib.schemas.common import ListResponse
from doclib.schemas.files import (
    AssetRead,
    DownloadRead,
    FileAccessUpdate,
    FileItemCreate,
    FileItemRead,
    FileItemUpdate,
    FileTranslationsUpdate,
    FileVersionCreate,
    FileVersionRead,
    MenuRead,
    SetCurrentVersion,
)
from doclib.services.access import PERM_TRASH_READ, Actor
from doclib.services.downloads import downloads
from doclib.services.files import file_assets, file_items, file_versions
from doclib.services.storage import get_storage

router = APIRouter(prefix="/files", tags=["files"])


def _content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "ignore").decode() or "download"
    fallback = fallback.replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# ------------------------------------------------------------------
# Browsing
# ------------------------------------------------------------------


@router.get("", response_model=ListResponse[FileItemRead])
def list_files(
    q: str | None = None,
    section_id: int | None = None,
    category_id: int | None = None,
    scope: str | None = Query(default=None, pattern="^(all|mine|department)$"),
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    items = file_items.list_for_actor(
        db,
        actor,
        q,
        section_id,
        category_id,
        scope,
        order_by,
        order_dir,
        limit,
        offset,
    )
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.get("/menu", response_model=MenuRead)
def files_menu(
    lang: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return file_items.menu_for_actor(db, actor, lang)


@router.get("/manage", response_model=ListResponse[FileItemRead])
def list_files_manage(
    q: str | None = None,
    section_id: int | None = None,
    category_id: int | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.read")),
):
    items = file_items.list_manage(
        db, q, section_id, category_id, order_by, order_dir, limit, offset
    )
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.get("/trash", response_model=ListResponse[FileItemRead])
def list_trash(
    q: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission(PERM_TRASH_READ)),
):
    items = file_items.list_trash(db, q, limit, offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.get("/downloads", response_model=ListResponse[DownloadRead])
def list_downloads(
    user_id: int | None = None,
    file_item_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.read")),
):
    return downloads.list_response(db, user_id, file_item_id, limit, offset)


@router.get("/{file_item_id}", response_model=FileItemRead)
def get_file(
    file_item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    try:
        return file_items.get_for_actor(db, actor, file_item_id)
    except ForbiddenError:
        # Hidden files are reported as missing.
        raise NotFoundError("File not found")


# ------------------------------------------------------------------
# File item management
# ------------------------------------------------------------------


@router.post("", response_model=FileItemRead, status_code=status.HTTP_201_CREATED)
def create_file(
    payload: FileItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.add")),
):
    return file_items.create(db, actor, payload)


@router.patch("/{file_item_id}", response_model=FileItemRead)
def update_file(
    file_item_id: int,
    payload: FileItemUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.update")),
):
    return file_items.update(db, actor, file_item_id, payload)


@router.put("/{file_item_id}/translations", response_model=FileItemRead)
def update_file_translations(
    file_item_id: int,
    payload: FileTranslationsUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.update")),
):
    return file_items.update_translations(db, actor, file_item_id, payload)


@router.put("/{file_item_id}/access", response_model=FileItemRead)
def update_file_access(
    file_item_id: int,
    payload: FileAccessUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.access.update")),
):
    return file_items.update_access(db, actor, file_item_id, payload)


@router.delete("/{file_item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(
    file_item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    file_items.delete(db, actor, file_item_id)


@router.post("/{file_item_id}/restore", response_model=FileItemRead)
def restore_file(
    file_item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    return file_items.restore(db, actor, file_item_id)


@router.delete("/{file_item_id}/force", status_code=status.HTTP_204_NO_CONTENT)
def force_delete_file(
    file_item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    file_items.force_delete(db, actor, file_item_id)


# ------------------------------------------------------------------
# Versions
# ------------------------------------------------------------------


@router.get("/{file_item_id}/versions", response_model=ListResponse[FileVersionRead])
def list_versions(
    file_item_id: int,
    include_deleted: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.read")),
):
    return file_versions.list_response(
        db, file_item_id, include_deleted, limit, offset
    )


@router.post(
    "/{file_item_id}/versions",
    response_model=FileVersionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_version(
    file_item_id: int,
    payload: FileVersionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.update")),
):
    return file_versions.create(db, actor, file_item_id, payload)


@router.put("/{file_item_id}/current-version", response_model=FileItemRead)
def set_current_version(
    file_item_id: int,
    payload: SetCurrentVersion,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.update")),
):
    return file_versions.set_current(db, actor, file_item_id, payload.version_id)


@router.delete("/versions/{version_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_version(
    version_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    file_versions.delete(db, actor, version_id)


@router.post("/versions/{version_id}/restore", response_model=FileVersionRead)
def restore_version(
    version_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    return file_versions.restore(db, actor, version_id)


@router.delete("/versions/{version_id}/force", status_code=status.HTTP_204_NO_CONTENT)
def force_delete_version(
    version_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    file_versions.force_delete(db, actor, version_id)


# ------------------------------------------------------------------
# Assets
# ------------------------------------------------------------------


@router.post(
    "/versions/{version_id}/assets",
    response_model=AssetRead,
    status_code=status.HTTP_201_CREATED,
)
def upload_asset(
    version_id: int,
    lang: str = Form(...),
    upload: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.update")),
):
    data = upload.file.read()
    return file_assets.upload(
        db,
        actor,
        version_id,
        lang,
        data,
        upload.filename or "upload",
        upload.content_type or "application/octet-stream",
    )


@router.delete("/assets/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    file_assets.delete(db, actor, asset_id)


@router.post("/assets/{asset_id}/restore", response_model=AssetRead)
def restore_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    return file_assets.restore(db, actor, asset_id)


@router.delete("/assets/{asset_id}/force", status_code=status.HTTP_204_NO_CONTENT)
def force_delete_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("file.delete")),
):
    file_assets.force_delete(db, actor, asset_id)


# ------------------------------------------------------------------
# Download
# ------------------------------------------------------------------


def _iter_blob(stream, chunk_size: int = 64 * 1024):
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


@router.get("/{file_item_id}/download")
def download_file(
    file_item_id: int,
    version_id: int | None = None,
    lang: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    asset = file_items.download(db, actor, file_item_id, version_id, lang)
    stream = get_storage().get(asset.path)
    return StreamingResponse(
        _iter_blob(stream),
        media_type=asset.mime,
        headers={
            "Content-Disposition": _content_disposition(asset.original_name),
            "Content-Length": str(asset.size),
        },
    )
