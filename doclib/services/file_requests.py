"""Moderated publication requests.

A request stages translations and per-language assets until an approver
resolves it. Approval promotes the staged content into a new file item
(``new``) or a new version of an existing one (``update``); rejection and
cancellation discard the staged blobs. Every resolution is a single guarded
``UPDATE ... WHERE status = 'pending'``, so a request leaves ``pending``
exactly once.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doclib.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from doclib.models import (
    AccessType,
    Department,
    FileRequest,
    FileRequestAccessDepartment,
    FileRequestAccessUser,
    FileRequestAsset,
    FileRequestStatus,
    FileRequestTranslation,
    FileRequestType,
    FileVersionAsset,
)
from doclib.schemas.requests import FileRequestCreate, FileUpdateRequestCreate
from doclib.services.access import Actor, can_view, department_scope
from doclib.services.common import apply_pagination, atomic, coerce_id
from doclib.services.event import EventType, publish_event
from doclib.services.files import (
    FileItems,
    FileVersions,
    _lock_item,
    unreferenced_paths,
    validate_placement,
)
from doclib.services.lang import require_lang, validate_translations
from doclib.services.response import ListResponseMixin
from doclib.services.storage import get_storage, release_blobs, validate_upload

logger = logging.getLogger(__name__)

PERM_SUBMIT = "file.submit"


def _lock_request(db: Session, request_id) -> FileRequest:
    request = db.execute(
        select(FileRequest)
        .where(FileRequest.id == coerce_id(request_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not request:
        raise NotFoundError("Request not found")
    return request


def _resolve(db: Session, request: FileRequest, status: FileRequestStatus, **values):
    """Flip a pending request to ``status``; InvalidState if it already left pending."""
    result = db.execute(
        update(FileRequest)
        .where(FileRequest.id == request.id)
        .where(FileRequest.status == FileRequestStatus.pending)
        .values(status=status, resolved_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError("Request is not pending")
    db.expire(request)


def normalize_request_access(
    db: Session,
    actor: Actor,
    access_type: AccessType,
    department_ids,
    user_ids,
) -> tuple[list[int], list[int]]:
    """Restrict a submitter's allow-lists to what the submitter may grant.

    Departments must lie within the submitter's department subtree. Without a
    department the submitter can only name itself. When both lists end up
    empty the submitter's department, or else the submitter, is used.
    """
    if access_type == AccessType.public:
        return [], []

    department_ids = sorted({coerce_id(d) for d in department_ids or []})
    user_ids = sorted({coerce_id(u) for u in user_ids or []})
    if access_type == AccessType.department_closed:
        user_ids = []

    scope = department_scope(db, actor.department_id)
    outside = [d for d in department_ids if d not in scope]
    if outside:
        raise ForbiddenError(
            "Department access not allowed", details={"department_ids": outside}
        )
    if not scope:
        foreign = [u for u in user_ids if u != actor.user_id]
        if foreign:
            raise ForbiddenError(
                "User access not allowed", details={"user_ids": foreign}
            )

    if not department_ids and not user_ids:
        if actor.department_id is not None and scope:
            department_ids = [actor.department_id]
        elif access_type == AccessType.restricted:
            user_ids = [actor.user_id]
        else:
            raise ValidationError(
                "Department-closed access needs a department allow-list"
            )
    return department_ids, user_ids


class FileRequests(ListResponseMixin):
    # ------------------------------------------------------------------
    # Submission and staging
    # ------------------------------------------------------------------

    @staticmethod
    def submit(db: Session, actor: Actor, payload: FileRequestCreate) -> FileRequest:
        if not actor.has(PERM_SUBMIT):
            raise ForbiddenError("File submission is not allowed")
        translations = validate_translations(payload.translations)
        comment = (payload.comment or "").strip() or None

        with atomic(db):
            if payload.request_type == FileRequestType.update:
                if payload.file_item_id is None:
                    raise ValidationError("file_item_id is required for update requests")
                target = FileItems.get(db, payload.file_item_id)
                if target.deleted_at is not None:
                    raise InvalidStateError("Target file is in the trash")
                if not can_view(actor, target):
                    raise ForbiddenError("Access denied")
                section_id = target.section_id
                category_id = target.category_id
                access_type = target.access_type
                department_ids: list[int] = []
                user_ids: list[int] = []
                file_item_id = target.id
            else:
                if payload.section_id is None:
                    raise ValidationError("section_id is required")
                validate_placement(db, payload.section_id, payload.category_id)
                section_id = payload.section_id
                category_id = payload.category_id
                access_type = payload.access_type
                department_ids, user_ids = normalize_request_access(
                    db,
                    actor,
                    access_type,
                    payload.access_department_ids,
                    payload.access_user_ids,
                )
                file_item_id = None

            request = FileRequest(
                request_type=payload.request_type,
                file_item_id=file_item_id,
                section_id=section_id,
                category_id=category_id,
                access_type=access_type,
                status=FileRequestStatus.pending,
                comment=comment,
                created_by=actor.user_id,
            )
            request.translations = [FileRequestTranslation(**t) for t in translations]
            request.access_departments = [
                FileRequestAccessDepartment(department_id=d) for d in department_ids
            ]
            request.access_users = [FileRequestAccessUser(user_id=u) for u in user_ids]
            db.add(request)
            db.flush()
        db.refresh(request)
        logger.info(
            "Submitted %s request %s by user %s",
            request.request_type.value,
            request.id,
            actor.user_id,
        )
        publish_event(
            EventType.file_request_submitted,
            entity_type="file_request",
            entity_id=request.id,
            actor_id=actor.user_id,
            file_item_id=request.file_item_id,
            payload={"request_type": request.request_type.value},
        )
        return request

    @staticmethod
    def submit_update(
        db: Session, actor: Actor, file_item_id, payload: FileUpdateRequestCreate
    ) -> FileRequest:
        return FileRequests.submit(
            db,
            actor,
            FileRequestCreate(
                request_type=FileRequestType.update,
                file_item_id=coerce_id(file_item_id),
                translations=payload.translations,
                comment=payload.comment,
            ),
        )

    @staticmethod
    def access_options(db: Session, actor: Actor) -> dict:
        """Departments and users the actor may put on a request's allow-lists."""
        scope = department_scope(db, actor.department_id)
        departments = []
        if scope:
            departments = db.scalars(
                select(Department)
                .where(Department.id.in_(scope))
                .order_by(Department.depth.asc(), Department.id.asc())
            ).all()
        return {
            "departments": departments,
            "user_ids": [] if scope else [actor.user_id],
        }

    @staticmethod
    def upload_staged_asset(
        db: Session,
        actor: Actor,
        request_id,
        lang: str,
        data: bytes,
        original_name: str,
        mime: str,
    ) -> FileRequestAsset:
        lang = require_lang(lang)
        request = FileRequests.get(db, request_id)
        if request.created_by != actor.user_id:
            raise ForbiddenError("Only the submitter can upload request assets")
        if request.status != FileRequestStatus.pending:
            raise InvalidStateError("Request is not pending")
        validate_upload(data, original_name)
        if FileRequests._staged_lang_taken(db, request.id, lang):
            raise ConflictError(f"Request already has a {lang} asset")

        storage = get_storage()
        blob = storage.put(data, original_name)
        try:
            with atomic(db):
                request = _lock_request(db, request.id)
                if request.status != FileRequestStatus.pending:
                    raise InvalidStateError("Request is not pending")
                if FileRequests._staged_lang_taken(db, request.id, lang):
                    raise ConflictError(f"Request already has a {lang} asset")
                asset = FileRequestAsset(
                    file_request_id=request.id,
                    lang=lang,
                    original_name=original_name,
                    mime=mime or "application/octet-stream",
                    size=blob.size,
                    path=blob.path,
                    checksum=blob.checksum,
                )
                db.add(asset)
                request.updated_at = datetime.now(timezone.utc)
                db.flush()
        except IntegrityError:
            FileRequests._discard_blob(blob.path)
            raise ConflictError(f"Request already has a {lang} asset")
        except Exception:
            FileRequests._discard_blob(blob.path)
            raise
        db.refresh(asset)
        logger.info(
            "Staged %s asset %s on request %s (%d bytes)",
            lang,
            asset.id,
            asset.file_request_id,
            asset.size,
        )
        publish_event(
            EventType.file_request_asset_uploaded,
            entity_type="file_request",
            entity_id=asset.file_request_id,
            actor_id=actor.user_id,
            payload={"lang": lang, "size": asset.size, "original_name": original_name},
        )
        return asset

    @staticmethod
    def _staged_lang_taken(db: Session, request_id: int, lang: str) -> bool:
        return (
            db.scalar(
                select(FileRequestAsset.id)
                .where(FileRequestAsset.file_request_id == request_id)
                .where(FileRequestAsset.lang == lang)
                .limit(1)
            )
            is not None
        )

    @staticmethod
    def _discard_blob(path: str) -> None:
        try:
            get_storage().delete(path)
        except Exception as e:
            logger.exception("Failed to remove uncommitted blob %s: %s", path, e)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def approve(db: Session, actor: Actor, request_id) -> FileRequest:
        """Promote the staged content and mark the request approved.

        Staged asset rows are replaced by version asset rows pointing at the
        same blobs inside one transaction, so the bytes change owner without
        being copied and no staged row survives the approval.
        """
        created_item = False
        with atomic(db):
            request = _lock_request(db, request_id)
            if request.status != FileRequestStatus.pending:
                raise InvalidStateError("Request is not pending")
            staged = list(request.assets)
            if not staged:
                raise InvalidStateError("Request has no staged assets")
            translations = [
                {"lang": t.lang, "title": t.title, "description": t.description}
                for t in request.translations
            ]
            submitter = Actor(user_id=request.created_by)

            if request.request_type == FileRequestType.new:
                user_ids = list(request.access_user_ids)
                if (
                    request.access_type == AccessType.restricted
                    and request.created_by not in user_ids
                ):
                    user_ids.append(request.created_by)
                item = FileItems.create_in_transaction(
                    db,
                    submitter,
                    section_id=request.section_id,
                    category_id=request.category_id,
                    access_type=request.access_type,
                    translations=translations,
                    department_ids=request.access_department_ids,
                    user_ids=user_ids,
                    version_translations=translations,
                )
                version = item.versions[0]
                created_item = True
            else:
                if request.file_item_id is None:
                    raise InvalidStateError("Target file no longer exists")
                item = _lock_item(db, request.file_item_id)
                if item.deleted_at is not None:
                    raise InvalidStateError("Target file is in the trash")
                version = FileVersions.create_in_transaction(
                    db,
                    submitter,
                    item,
                    comment=request.comment,
                    translations=translations,
                )

            for asset in staged:
                db.add(
                    FileVersionAsset(
                        file_version_id=version.id,
                        lang=asset.lang,
                        original_name=asset.original_name,
                        mime=asset.mime,
                        size=asset.size,
                        path=asset.path,
                        checksum=asset.checksum,
                    )
                )
            db.execute(
                delete(FileRequestAsset).where(
                    FileRequestAsset.file_request_id == request.id
                )
            )
            item.current_version_id = version.id
            db.flush()
            _resolve(
                db,
                request,
                FileRequestStatus.approved,
                resolved_by=actor.user_id,
                rejection_reason=None,
                file_item_id=item.id,
            )
            item_id, version_id = item.id, version.id
            version_number = version.version_number
        db.refresh(request)
        logger.info(
            "Approved request %s into file item %s version %s",
            request.id,
            item_id,
            version_id,
        )
        publish_event(
            EventType.file_request_approved,
            entity_type="file_request",
            entity_id=request.id,
            actor_id=actor.user_id,
            file_item_id=item_id,
            payload={
                "submitter_id": request.created_by,
                "version_id": version_id,
                "request_type": request.request_type.value,
            },
        )
        if created_item:
            publish_event(
                EventType.file_created,
                entity_type="file_item",
                entity_id=item_id,
                actor_id=actor.user_id,
                file_item_id=item_id,
                payload={"request_id": request.id},
            )
        publish_event(
            EventType.version_created,
            entity_type="file_version",
            entity_id=version_id,
            actor_id=actor.user_id,
            file_item_id=item_id,
            payload={"version_number": version_number, "request_id": request.id},
        )
        return request

    @staticmethod
    def _discard_staged(db: Session, request: FileRequest) -> list[str]:
        paths = [asset.path for asset in request.assets]
        db.execute(
            delete(FileRequestAsset).where(FileRequestAsset.file_request_id == request.id)
        )
        db.flush()
        return unreferenced_paths(db, paths)

    @staticmethod
    def reject(
        db: Session, actor: Actor, request_id, reason: str | None = None
    ) -> FileRequest:
        with atomic(db):
            request = _lock_request(db, request_id)
            if request.status != FileRequestStatus.pending:
                raise InvalidStateError("Request is not pending")
            orphaned = FileRequests._discard_staged(db, request)
            _resolve(
                db,
                request,
                FileRequestStatus.rejected,
                resolved_by=actor.user_id,
                rejection_reason=(reason or "").strip() or None,
            )
        release_blobs(orphaned)
        db.refresh(request)
        logger.info("Rejected request %s", request.id)
        publish_event(
            EventType.file_request_rejected,
            entity_type="file_request",
            entity_id=request.id,
            actor_id=actor.user_id,
            file_item_id=request.file_item_id,
            payload={
                "submitter_id": request.created_by,
                "reason": request.rejection_reason,
            },
        )
        return request

    @staticmethod
    def cancel(db: Session, actor: Actor, request_id) -> FileRequest:
        with atomic(db):
            request = _lock_request(db, request_id)
            if request.created_by != actor.user_id:
                raise ForbiddenError("Only the submitter can cancel a request")
            if request.status != FileRequestStatus.pending:
                raise InvalidStateError("Request is not pending")
            orphaned = FileRequests._discard_staged(db, request)
            _resolve(db, request, FileRequestStatus.canceled, resolved_by=actor.user_id)
        release_blobs(orphaned)
        db.refresh(request)
        logger.info("Canceled request %s", request.id)
        publish_event(
            EventType.file_request_canceled,
            entity_type="file_request",
            entity_id=request.id,
            actor_id=actor.user_id,
            file_item_id=request.file_item_id,
        )
        return request

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def get(db: Session, request_id) -> FileRequest:
        request = db.get(FileRequest, coerce_id(request_id))
        if not request:
            raise NotFoundError("Request not found")
        return request

    @staticmethod
    def _filtered(stmt, scope: str | None, status: str | None, q: str | None):
        if scope == "pending":
            stmt = stmt.where(FileRequest.status == FileRequestStatus.pending)
        elif scope == "history":
            stmt = stmt.where(FileRequest.status != FileRequestStatus.pending)
        elif scope is not None:
            raise ValidationError("Invalid scope. Allowed: history, pending")
        if status is not None:
            try:
                stmt = stmt.where(FileRequest.status == FileRequestStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status: {status}")
        if q:
            pattern = f"%{q}%"
            stmt = stmt.where(
                or_(
                    FileRequest.comment.ilike(pattern),
                    FileRequest.id.in_(
                        select(FileRequestTranslation.file_request_id).where(
                            or_(
                                FileRequestTranslation.title.ilike(pattern),
                                FileRequestTranslation.description.ilike(pattern),
                            )
                        )
                    ),
                )
            )
        return stmt

    @staticmethod
    def list_pending(db: Session, limit: int, offset: int) -> list[FileRequest]:
        """Moderation queue, oldest first."""
        stmt = (
            select(FileRequest)
            .where(FileRequest.status == FileRequestStatus.pending)
            .order_by(FileRequest.created_at.asc(), FileRequest.id.asc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def list_for_user(
        db: Session,
        actor: Actor,
        scope: str | None,
        status: str | None,
        q: str | None,
        limit: int,
        offset: int,
    ) -> list[FileRequest]:
        stmt = select(FileRequest).where(FileRequest.created_by == actor.user_id)
        stmt = FileRequests._filtered(stmt, scope, status, q)
        stmt = stmt.order_by(FileRequest.created_at.desc(), FileRequest.id.desc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def list_admin(
        db: Session,
        scope: str | None,
        status: str | None,
        q: str | None,
        limit: int,
        offset: int,
    ) -> list[FileRequest]:
        stmt = FileRequests._filtered(select(FileRequest), scope, status, q)
        stmt = stmt.order_by(FileRequest.created_at.desc(), FileRequest.id.desc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def list_staged_assets(db: Session, request_id) -> list[FileRequestAsset]:
        request = FileRequests.get(db, request_id)
        return db.scalars(
            select(FileRequestAsset)
            .where(FileRequestAsset.file_request_id == request.id)
            .order_by(FileRequestAsset.lang.asc())
        ).all()

    @staticmethod
    def get_staged_asset(db: Session, request_id, asset_id) -> FileRequestAsset:
        asset = db.get(FileRequestAsset, coerce_id(asset_id))
        if not asset or asset.file_request_id != coerce_id(request_id):
            raise NotFoundError("Request asset not found")
        return asset

    list = list_admin


file_requests = FileRequests()
