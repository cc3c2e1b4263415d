from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from doclib.api.deps import get_actor, get_db, require_permission
from doclib.errors import ForbiddenError
from doclib.schemas.common import ListResponse
from doclib.schemas.requests import (
    AccessOptionsRead,
    FileRequestCreate,
    FileRequestRead,
    FileRequestReject,
    FileUpdateRequestCreate,
    StagedAssetRead,
)
from doclib.services.access import Actor
from doclib.services.file_requests import PERM_SUBMIT, file_requests

PERM_REVIEW = "file_request.review"

router = APIRouter(prefix="/file-requests", tags=["file-requests"])


# ------------------------------------------------------------------
# Submitter endpoints
# ------------------------------------------------------------------


@router.post("", response_model=FileRequestRead, status_code=status.HTTP_201_CREATED)
def submit_request(
    payload: FileRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return file_requests.submit(db, actor, payload)


@router.post(
    "/files/{file_item_id}",
    response_model=FileRequestRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_update_request(
    file_item_id: int,
    payload: FileUpdateRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return file_requests.submit_update(db, actor, file_item_id, payload)


@router.get("/access-options", response_model=AccessOptionsRead)
def access_options(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission(PERM_SUBMIT)),
):
    return file_requests.access_options(db, actor)


@router.get("/mine", response_model=ListResponse[FileRequestRead])
def list_my_requests(
    scope: str | None = Query(default=None, pattern="^(pending|history)$"),
    status_filter: str | None = Query(default=None, alias="status"),
    q: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    items = file_requests.list_for_user(
        db, actor, scope, status_filter, q, limit, offset
    )
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.post(
    "/{request_id}/assets",
    response_model=StagedAssetRead,
    status_code=status.HTTP_201_CREATED,
)
def upload_staged_asset(
    request_id: int,
    lang: str = Form(...),
    upload: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    data = upload.file.read()
    return file_requests.upload_staged_asset(
        db,
        actor,
        request_id,
        lang,
        data,
        upload.filename or "upload",
        upload.content_type or "application/octet-stream",
    )


@router.post("/{request_id}/cancel", response_model=FileRequestRead)
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return file_requests.cancel(db, actor, request_id)


# ------------------------------------------------------------------
# Moderation
# ------------------------------------------------------------------


@router.get("/pending", response_model=ListResponse[FileRequestRead])
def list_pending_requests(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission(PERM_REVIEW)),
):
    items = file_requests.list_pending(db, limit, offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.get("", response_model=ListResponse[FileRequestRead])
def list_requests(
    scope: str | None = Query(default=None, pattern="^(pending|history)$"),
    status_filter: str | None = Query(default=None, alias="status"),
    q: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission(PERM_REVIEW)),
):
    return file_requests.list_response(db, scope, status_filter, q, limit, offset)


@router.get("/{request_id}", response_model=FileRequestRead)
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    request = file_requests.get(db, request_id)
    if request.created_by != actor.user_id and not actor.has(PERM_REVIEW):
        raise ForbiddenError("Access denied")
    return request


@router.get("/{request_id}/assets", response_model=list[StagedAssetRead])
def list_staged_assets(
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    request = file_requests.get(db, request_id)
    if request.created_by != actor.user_id and not actor.has(PERM_REVIEW):
        raise ForbiddenError("Access denied")
    return file_requests.list_staged_assets(db, request_id)


@router.post("/{request_id}/approve", response_model=FileRequestRead)
def approve_request(
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission(PERM_REVIEW)),
):
    return file_requests.approve(db, actor, request_id)


@router.post("/{request_id}/reject", response_model=FileRequestRead)
def reject_request(
    request_id: int,
    payload: FileRequestReject,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission(PERM_REVIEW)),
):
    return file_requests.reject(db, actor, request_id, payload.reason)
