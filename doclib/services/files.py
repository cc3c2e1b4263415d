from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
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
    Category,
    Department,
    FileAccessDepartment,
    FileAccessUser,
    FileFavorite,
    FileItem,
    FileRequest,
    FileRequestAsset,
    FileTranslation,
    FileVersion,
    FileVersionAsset,
    FileVersionTranslation,
    Section,
)
from doclib.schemas.files import (
    FileAccessUpdate,
    FileItemCreate,
    FileItemUpdate,
    FileTranslationsUpdate,
    FileVersionCreate,
)
from doclib.services.access import Actor, can_download, can_view, visible_clause
from doclib.services.common import apply_ordering, apply_pagination, atomic, coerce_id
from doclib.services.downloads import downloads
from doclib.services.event import EventType, publish_event
from doclib.services.lang import (
    available_langs,
    pick_by_lang,
    require_lang,
    validate_translations,
)
from doclib.services.response import ListResponseMixin
from doclib.services.storage import (
    get_storage,
    release_blobs,
    validate_upload,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _lock_item(db: Session, file_item_id) -> FileItem:
    """Load the item with a row lock held until the surrounding commit."""
    item = db.execute(
        select(FileItem)
        .where(FileItem.id == coerce_id(file_item_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not item:
        raise NotFoundError("File not found")
    return item


def _title_order_column():
    return (
        select(func.min(FileTranslation.title))
        .where(FileTranslation.file_item_id == FileItem.id)
        .scalar_subquery()
    )


def _title_filter(stmt, q: str | None):
    if not q:
        return stmt
    return stmt.where(
        FileItem.id.in_(
            select(FileTranslation.file_item_id).where(
                FileTranslation.title.ilike(f"%{q}%")
            )
        )
    )


def _ordering_columns() -> dict:
    return {
        "created_at": FileItem.created_at,
        "updated_at": FileItem.updated_at,
        "id": FileItem.id,
        "title": _title_order_column(),
    }


def validate_placement(db: Session, section_id, category_id) -> None:
    """Section must exist; a category, when given, must exist inside it."""
    section = db.get(Section, coerce_id(section_id))
    if not section:
        raise NotFoundError("Section not found")
    if category_id is None:
        return
    category = db.get(Category, coerce_id(category_id))
    if not category:
        raise NotFoundError("Category not found")
    if category.section_id != section.id:
        raise ValidationError("Category does not belong to the section")


def normalize_access_lists(
    db: Session,
    access_type: AccessType,
    department_ids,
    user_ids,
) -> tuple[list[int], list[int]]:
    """Drop the lists an access type ignores and check departments exist."""
    department_ids = sorted({coerce_id(d) for d in department_ids or []})
    user_ids = sorted({coerce_id(u) for u in user_ids or []})
    if access_type == AccessType.public:
        return [], []
    if access_type == AccessType.department_closed:
        user_ids = []
    if department_ids:
        found = set(
            db.scalars(
                select(Department.id).where(Department.id.in_(department_ids))
            ).all()
        )
        missing = [d for d in department_ids if d not in found]
        if missing:
            raise ValidationError(
                "Unknown department in access list", details={"missing": missing}
            )
    return department_ids, user_ids


def _replace_access(
    db: Session, item: FileItem, department_ids: list[int], user_ids: list[int]
) -> None:
    item.access_departments.clear()
    item.access_users.clear()
    db.flush()
    item.access_departments.extend(
        FileAccessDepartment(department_id=d) for d in department_ids
    )
    item.access_users.extend(FileAccessUser(user_id=u) for u in user_ids)
    db.flush()


def unreferenced_paths(db: Session, paths) -> list[str]:
    """Paths no remaining asset row (live, trashed or staged) points at."""
    paths = {p for p in paths if p}
    if not paths:
        return []
    used = set(
        db.scalars(
            select(FileVersionAsset.path).where(FileVersionAsset.path.in_(paths))
        ).all()
    ) | set(
        db.scalars(
            select(FileRequestAsset.path).where(FileRequestAsset.path.in_(paths))
        ).all()
    )
    return sorted(paths - used)


# ---------------------------------------------------------------------------
# File items
# ---------------------------------------------------------------------------


class FileItems(ListResponseMixin):
    @staticmethod
    def create(db: Session, actor: Actor, payload: FileItemCreate) -> FileItem:
        translations = validate_translations(payload.translations)
        with atomic(db):
            item = FileItems.create_in_transaction(
                db,
                actor,
                section_id=payload.section_id,
                category_id=payload.category_id,
                access_type=payload.access_type,
                translations=translations,
                department_ids=payload.access_department_ids,
                user_ids=payload.access_user_ids,
                allow_version_access=payload.allow_version_access,
            )
            version = item.versions[0]
        db.refresh(item)
        logger.info("Created file item %s", item.id)
        publish_event(
            EventType.file_created,
            entity_type="file_item",
            entity_id=item.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={"access_type": item.access_type.value},
        )
        publish_event(
            EventType.version_created,
            entity_type="file_version",
            entity_id=version.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={"version_number": 1},
        )
        return item

    @staticmethod
    def create_in_transaction(
        db: Session,
        actor: Actor,
        *,
        section_id,
        category_id,
        access_type: AccessType,
        translations: list[dict],
        department_ids=None,
        user_ids=None,
        allow_version_access: bool = True,
        version_translations: list[dict] | None = None,
    ) -> FileItem:
        """Insert an item with an empty Version #1 and no current version.

        Runs inside the caller's transaction; the request workflow reuses it.
        """
        validate_placement(db, section_id, category_id)
        department_ids, user_ids = normalize_access_lists(
            db, access_type, department_ids, user_ids
        )
        item = FileItem(
            section_id=coerce_id(section_id),
            category_id=coerce_id(category_id),
            access_type=access_type,
            allow_version_access=allow_version_access,
            last_version_number=1,
            created_by=actor.user_id,
        )
        item.translations = [FileTranslation(**t) for t in translations]
        db.add(item)
        db.flush()
        _replace_access(db, item, department_ids, user_ids)

        version = FileVersion(
            file_item_id=item.id, version_number=1, created_by=actor.user_id
        )
        version.translations = [
            FileVersionTranslation(**t) for t in version_translations or []
        ]
        db.add(version)
        db.flush()
        db.refresh(item, ["versions"])
        return item

    @staticmethod
    def get(db: Session, file_item_id) -> FileItem:
        item = db.get(FileItem, coerce_id(file_item_id))
        if not item:
            raise NotFoundError("File not found")
        return item

    @staticmethod
    def get_live(db: Session, file_item_id) -> FileItem:
        item = FileItems.get(db, file_item_id)
        if item.deleted_at is not None:
            raise NotFoundError("File not found")
        return item

    @staticmethod
    def get_for_actor(db: Session, actor: Actor, file_item_id) -> FileItem:
        """Raises Forbidden on denial; masking it as 404 is the caller's call."""
        item = FileItems.get(db, file_item_id)
        if item.deleted_at is not None and not can_view(actor, item):
            raise NotFoundError("File not found")
        if not can_view(actor, item):
            raise ForbiddenError("Access denied")
        return item

    @staticmethod
    def list_manage(
        db: Session,
        q: str | None,
        section_id: int | None,
        category_id: int | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[FileItem]:
        stmt = select(FileItem).where(FileItem.deleted_at.is_(None))
        if section_id is not None:
            stmt = stmt.where(FileItem.section_id == coerce_id(section_id))
        if category_id is not None:
            stmt = stmt.where(FileItem.category_id == coerce_id(category_id))
        stmt = _title_filter(stmt, q)
        stmt = apply_ordering(stmt, order_by, order_dir, _ordering_columns())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def list_for_actor(
        db: Session,
        actor: Actor,
        q: str | None,
        section_id: int | None,
        category_id: int | None,
        scope: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[FileItem]:
        """Visible, non-deleted files.

        ``scope`` narrows further: ``mine`` keeps files the actor created,
        ``department`` keeps files shared with the actor's department.
        """
        stmt = select(FileItem).where(visible_clause(actor))
        if scope == "mine":
            stmt = stmt.where(FileItem.created_by == actor.user_id)
        elif scope == "department":
            if actor.department_id is None:
                return []
            stmt = stmt.where(
                FileItem.id.in_(
                    select(FileAccessDepartment.file_item_id).where(
                        FileAccessDepartment.department_id == actor.department_id
                    )
                )
            )
        elif scope not in (None, "all"):
            raise ValidationError("Invalid scope. Allowed: all, department, mine")
        if section_id is not None:
            stmt = stmt.where(FileItem.section_id == coerce_id(section_id))
        if category_id is not None:
            stmt = stmt.where(FileItem.category_id == coerce_id(category_id))
        stmt = _title_filter(stmt, q)
        stmt = apply_ordering(stmt, order_by, order_dir, _ordering_columns())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def list_trash(
        db: Session, q: str | None, limit: int, offset: int
    ) -> list[FileItem]:
        stmt = select(FileItem).where(FileItem.deleted_at.is_not(None))
        stmt = _title_filter(stmt, q)
        stmt = stmt.order_by(FileItem.deleted_at.desc(), FileItem.id.desc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def menu_for_actor(db: Session, actor: Actor, lang: str | None = None) -> dict:
        """Sections and categories that hold at least one file visible to ``actor``."""
        rows = db.execute(
            select(FileItem.section_id, FileItem.category_id).where(
                visible_clause(actor)
            )
        ).all()
        section_ids = sorted({r.section_id for r in rows if r.section_id is not None})
        category_ids = sorted({r.category_id for r in rows if r.category_id is not None})
        if not section_ids:
            return {"sections": [], "categories": []}

        sections = db.scalars(
            select(Section).where(Section.id.in_(section_ids)).order_by(Section.id)
        ).all()
        categories = db.scalars(
            select(Category).where(Category.id.in_(category_ids)).order_by(Category.id)
        ).all()

        def _entry(node) -> dict:
            picked = pick_by_lang(node.translations, lang)
            return {
                "id": node.id,
                "title": picked.title if picked else None,
                "available_langs": available_langs(node.translations),
            }

        return {
            "sections": [_entry(s) for s in sections],
            "categories": [
                {**_entry(c), "section_id": c.section_id, "parent_id": c.parent_id}
                for c in categories
            ],
        }

    @staticmethod
    def update(
        db: Session, actor: Actor, file_item_id, payload: FileItemUpdate
    ) -> FileItem:
        data = payload.model_dump(exclude_unset=True)
        with atomic(db):
            item = FileItems.get(db, file_item_id)
            if "section_id" in data or "category_id" in data:
                section_id = data.get("section_id") or item.section_id
                category_id = (
                    data["category_id"] if "category_id" in data else item.category_id
                )
                validate_placement(db, section_id, category_id)
                item.section_id = coerce_id(section_id)
                item.category_id = coerce_id(category_id)
            if data.get("allow_version_access") is not None:
                item.allow_version_access = data["allow_version_access"]
            db.flush()
        db.refresh(item)
        logger.info("Updated file item %s", item.id)
        publish_event(
            EventType.file_updated,
            entity_type="file_item",
            entity_id=item.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={"changed_fields": list(data.keys())},
        )
        return item

    @staticmethod
    def update_translations(
        db: Session, actor: Actor, file_item_id, payload: FileTranslationsUpdate
    ) -> FileItem:
        translations = validate_translations(payload.translations)
        with atomic(db):
            item = FileItems.get(db, file_item_id)
            before = sorted(t.lang for t in item.translations)
            item.translations.clear()
            db.flush()
            item.translations.extend(FileTranslation(**t) for t in translations)
            db.flush()
        db.refresh(item)
        logger.info("Replaced translations of file item %s", item.id)
        publish_event(
            EventType.file_updated,
            entity_type="file_item",
            entity_id=item.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={
                "changed_fields": ["translations"],
                "before": before,
                "after": [t["lang"] for t in translations],
            },
        )
        return item

    @staticmethod
    def update_access(
        db: Session, actor: Actor, file_item_id, payload: FileAccessUpdate
    ) -> FileItem:
        with atomic(db):
            item = FileItems.get(db, file_item_id)
            before = {
                "access_type": item.access_type.value,
                "department_ids": item.access_department_ids,
                "user_ids": item.access_user_ids,
            }
            department_ids, user_ids = normalize_access_lists(
                db,
                payload.access_type,
                payload.access_department_ids,
                payload.access_user_ids,
            )
            item.access_type = payload.access_type
            _replace_access(db, item, department_ids, user_ids)
        db.refresh(item)
        logger.info(
            "Updated access of file item %s to %s", item.id, item.access_type.value
        )
        publish_event(
            EventType.file_access_updated,
            entity_type="file_item",
            entity_id=item.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={
                "before": before,
                "after": {
                    "access_type": item.access_type.value,
                    "department_ids": department_ids,
                    "user_ids": user_ids,
                },
            },
        )
        return item

    @staticmethod
    def delete(db: Session, actor: Actor, file_item_id) -> FileItem:
        with atomic(db):
            item = FileItems.get(db, file_item_id)
            if item.deleted_at is not None:
                raise InvalidStateError("File is already in the trash")
            item.deleted_at = _now()
            db.flush()
        logger.info("Soft-deleted file item %s", item.id)
        publish_event(
            EventType.file_deleted,
            entity_type="file_item",
            entity_id=item.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
        )
        return item

    @staticmethod
    def restore(db: Session, actor: Actor, file_item_id) -> FileItem:
        """Undelete the item and drop a current pointer that went stale."""
        with atomic(db):
            item = _lock_item(db, file_item_id)
            if item.deleted_at is None:
                raise InvalidStateError("File is not in the trash")
            item.deleted_at = None
            if item.current_version_id is not None:
                current = db.get(FileVersion, item.current_version_id)
                if (
                    current is None
                    or current.deleted_at is not None
                    or current.file_item_id != item.id
                ):
                    logger.warning(
                        "Cleared stale current version %s of file item %s",
                        item.current_version_id,
                        item.id,
                    )
                    item.current_version_id = None
            db.flush()
        logger.info("Restored file item %s", item.id)
        publish_event(
            EventType.file_restored,
            entity_type="file_item",
            entity_id=item.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
        )
        return item

    @staticmethod
    def force_delete(db: Session, actor: Actor | None, file_item_id) -> None:
        """Remove a trashed item with every version, asset and translation."""
        with atomic(db):
            item = _lock_item(db, file_item_id)
            if item.deleted_at is None:
                raise InvalidStateError("Only files in the trash can be force-deleted")
            item_id = item.id
            version_ids = [v.id for v in item.versions]
            paths = []
            if version_ids:
                paths = db.scalars(
                    select(FileVersionAsset.path).where(
                        FileVersionAsset.file_version_id.in_(version_ids)
                    )
                ).all()
            item.current_version_id = None
            db.flush()

            db.execute(delete(FileFavorite).where(FileFavorite.file_item_id == item_id))
            db.execute(
                update(FileRequest)
                .where(FileRequest.file_item_id == item_id)
                .values(file_item_id=None)
            )
            db.delete(item)
            db.flush()
            orphaned = unreferenced_paths(db, paths)
        release_blobs(orphaned)
        logger.info(
            "Force-deleted file item %s (%d version(s), %d blob(s))",
            item_id,
            len(version_ids),
            len(orphaned),
        )
        publish_event(
            EventType.file_force_deleted,
            entity_type="file_item",
            entity_id=item_id,
            actor_id=actor.user_id if actor else None,
            file_item_id=item_id,
        )

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    @staticmethod
    def download(
        db: Session,
        actor: Actor,
        file_item_id,
        version_id=None,
        lang: str | None = None,
    ) -> FileVersionAsset:
        """Pick the asset to serve and append a download event.

        Uses the current version unless ``version_id`` is given, and the asset
        in ``lang``, else the default data language, else the first one.
        """
        item = FileItems.get_live(db, file_item_id)
        if version_id is None:
            if item.current_version_id is None:
                raise NotFoundError("File has no current version")
            version = db.get(FileVersion, item.current_version_id)
        else:
            version = db.get(FileVersion, coerce_id(version_id))
            if not version or version.file_item_id != item.id:
                raise NotFoundError("Version not found")
            if version.deleted_at is not None:
                raise NotFoundError("Version not found")
        if not can_download(actor, item, version):
            raise ForbiddenError("Access denied")

        asset = pick_by_lang(version.live_assets, lang)
        if asset is None:
            raise NotFoundError("No downloadable assets")
        downloads.record(
            db,
            user_id=actor.user_id,
            file_item_id=item.id,
            file_version_id=version.id,
            file_version_asset_id=asset.id,
            lang=asset.lang,
        )
        return asset

    @staticmethod
    def title(item: FileItem, lang: str | None = None) -> str | None:
        picked = pick_by_lang(item.translations, lang)
        return picked.title if picked else None


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


class FileVersions(ListResponseMixin):
    @staticmethod
    def next_number(item: FileItem) -> int:
        """Advance the item's version counter; the caller must hold the item lock.

        The counter only grows, so a number freed by a force delete is never
        handed out again.
        """
        item.last_version_number = (item.last_version_number or 0) + 1
        return item.last_version_number

    @staticmethod
    def create(
        db: Session, actor: Actor, file_item_id, payload: FileVersionCreate
    ) -> FileVersion:
        translations = validate_translations(payload.translations, require_one=False)
        storage = get_storage()
        written: list[str] = []
        try:
            with atomic(db):
                item = _lock_item(db, file_item_id)
                if item.deleted_at is not None:
                    raise InvalidStateError("File is in the trash")
                version = FileVersions.create_in_transaction(
                    db, actor, item, comment=payload.comment, translations=translations
                )
                if payload.copy_from_current and item.current_version_id is not None:
                    source = db.get(FileVersion, item.current_version_id)
                    for asset in source.live_assets:
                        with storage.get(asset.path) as fh:
                            data = fh.read()
                        blob = storage.put(data, asset.original_name)
                        written.append(blob.path)
                        db.add(
                            FileVersionAsset(
                                file_version_id=version.id,
                                lang=asset.lang,
                                original_name=asset.original_name,
                                mime=asset.mime,
                                size=blob.size,
                                path=blob.path,
                                checksum=blob.checksum,
                            )
                        )
                    db.flush()
        except Exception:
            for path in written:
                try:
                    storage.delete(path)
                except Exception as e:
                    logger.exception("Failed to remove copied blob %s: %s", path, e)
            raise
        db.refresh(version)
        logger.info(
            "Created version %s (v%d) for file item %s",
            version.id,
            version.version_number,
            version.file_item_id,
        )
        publish_event(
            EventType.version_created,
            entity_type="file_version",
            entity_id=version.id,
            actor_id=actor.user_id,
            file_item_id=version.file_item_id,
            payload={
                "version_number": version.version_number,
                "copied_assets": len(written),
            },
        )
        return version

    @staticmethod
    def create_in_transaction(
        db: Session,
        actor: Actor,
        item: FileItem,
        comment: str | None = None,
        translations: list[dict] | None = None,
    ) -> FileVersion:
        """Number and insert a version; the caller must hold the item lock."""
        version = FileVersion(
            file_item_id=item.id,
            version_number=FileVersions.next_number(item),
            comment=(comment or "").strip() or None,
            created_by=actor.user_id,
        )
        version.translations = [
            FileVersionTranslation(**t) for t in translations or []
        ]
        db.add(version)
        db.flush()
        return version

    @staticmethod
    def get(db: Session, version_id) -> FileVersion:
        version = db.get(FileVersion, coerce_id(version_id))
        if not version:
            raise NotFoundError("Version not found")
        return version

    @staticmethod
    def list(
        db: Session,
        file_item_id,
        include_deleted: bool,
        limit: int,
        offset: int,
    ) -> list[FileVersion]:
        FileItems.get(db, file_item_id)
        stmt = select(FileVersion).where(
            FileVersion.file_item_id == coerce_id(file_item_id)
        )
        if not include_deleted:
            stmt = stmt.where(FileVersion.deleted_at.is_(None))
        stmt = stmt.order_by(FileVersion.version_number.desc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def set_current(
        db: Session, actor: Actor, file_item_id, version_id
    ) -> FileItem:
        with atomic(db):
            item = _lock_item(db, file_item_id)
            version = FileVersions.get(db, version_id)
            db.refresh(version)
            if version.file_item_id != item.id:
                raise InvalidStateError("Version belongs to another file")
            if version.deleted_at is not None:
                raise InvalidStateError("Deleted version cannot be current")
            before = item.current_version_id
            item.current_version_id = version.id
            db.flush()
        db.refresh(item)
        logger.info(
            "Set current version of file item %s: %s -> %s", item.id, before, version.id
        )
        publish_event(
            EventType.version_current_changed,
            entity_type="file_version",
            entity_id=version.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={"before": before, "after": version.id},
        )
        return item

    @staticmethod
    def delete(db: Session, actor: Actor, version_id) -> FileVersion:
        """Soft-delete a version other than the current or the last live one."""
        with atomic(db):
            version = FileVersions.get(db, version_id)
            item = _lock_item(db, version.file_item_id)
            db.refresh(version)
            if version.deleted_at is not None:
                raise InvalidStateError("Version is already deleted")
            if item.current_version_id == version.id:
                raise ConflictError(
                    "Cannot delete the current version; set another version current first"
                )
            live = db.scalar(
                select(func.count())
                .select_from(FileVersion)
                .where(FileVersion.file_item_id == item.id)
                .where(FileVersion.deleted_at.is_(None))
            )
            if live <= 1:
                raise ConflictError("Cannot delete the last version of a file")
            version.deleted_at = _now()
            db.flush()
        logger.info(
            "Soft-deleted version %s of file item %s", version.id, version.file_item_id
        )
        publish_event(
            EventType.version_deleted,
            entity_type="file_version",
            entity_id=version.id,
            actor_id=actor.user_id,
            file_item_id=version.file_item_id,
        )
        return version

    @staticmethod
    def restore(db: Session, actor: Actor, version_id) -> FileVersion:
        with atomic(db):
            version = FileVersions.get(db, version_id)
            _lock_item(db, version.file_item_id)
            db.refresh(version)
            if version.deleted_at is None:
                raise InvalidStateError("Version is not deleted")
            version.deleted_at = None
            db.flush()
        logger.info(
            "Restored version %s of file item %s", version.id, version.file_item_id
        )
        publish_event(
            EventType.version_restored,
            entity_type="file_version",
            entity_id=version.id,
            actor_id=actor.user_id,
            file_item_id=version.file_item_id,
        )
        return version

    @staticmethod
    def force_delete(db: Session, actor: Actor, version_id) -> None:
        with atomic(db):
            version = FileVersions.get(db, version_id)
            item = _lock_item(db, version.file_item_id)
            db.refresh(version)
            if version.deleted_at is None:
                raise InvalidStateError(
                    "Only deleted versions can be force-deleted"
                )
            # A deleted version is never current; guard against legacy rows.
            if item.current_version_id == version.id:
                item.current_version_id = None
            paths = [asset.path for asset in version.assets]
            file_item_id = version.file_item_id
            db.delete(version)
            db.flush()
            orphaned = unreferenced_paths(db, paths)
        release_blobs(orphaned)
        logger.info("Force-deleted version %s of file item %s", version_id, file_item_id)
        publish_event(
            EventType.version_force_deleted,
            entity_type="file_version",
            entity_id=coerce_id(version_id),
            actor_id=actor.user_id,
            file_item_id=file_item_id,
        )


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class FileAssets:
    @staticmethod
    def get(db: Session, asset_id) -> FileVersionAsset:
        asset = db.get(FileVersionAsset, coerce_id(asset_id))
        if not asset:
            raise NotFoundError("Asset not found")
        return asset

    @staticmethod
    def _live_slot_taken(
        db: Session, version_id: int, lang: str, exclude_id: int | None = None
    ) -> bool:
        stmt = (
            select(FileVersionAsset.id)
            .where(FileVersionAsset.file_version_id == version_id)
            .where(FileVersionAsset.lang == lang)
            .where(FileVersionAsset.deleted_at.is_(None))
        )
        if exclude_id is not None:
            stmt = stmt.where(FileVersionAsset.id != exclude_id)
        return db.scalar(stmt.limit(1)) is not None

    @staticmethod
    def upload(
        db: Session,
        actor: Actor,
        version_id,
        lang: str,
        data: bytes,
        original_name: str,
        mime: str,
    ) -> FileVersionAsset:
        """Store the payload, then commit its row; the blob is removed on failure.

        The first asset uploaded to an item without a current version makes
        its version current.
        """
        lang = require_lang(lang)
        validate_upload(data, original_name)
        version = FileVersions.get(db, version_id)
        item = FileItems.get(db, version.file_item_id)
        if version.deleted_at is not None or item.deleted_at is not None:
            raise InvalidStateError("Cannot upload to a deleted file or version")
        if FileAssets._live_slot_taken(db, version.id, lang):
            raise ConflictError(f"Version already has a {lang} asset")

        storage = get_storage()
        blob = storage.put(data, original_name)
        made_current = False
        try:
            with atomic(db):
                item = _lock_item(db, version.file_item_id)
                if FileAssets._live_slot_taken(db, version.id, lang):
                    raise ConflictError(f"Version already has a {lang} asset")
                asset = FileVersionAsset(
                    file_version_id=version.id,
                    lang=lang,
                    original_name=original_name,
                    mime=mime or "application/octet-stream",
                    size=blob.size,
                    path=blob.path,
                    checksum=blob.checksum,
                )
                db.add(asset)
                db.flush()
                if item.current_version_id is None:
                    item.current_version_id = version.id
                    made_current = True
                    db.flush()
        except IntegrityError:
            FileAssets._discard_blob(blob.path)
            raise ConflictError(f"Version already has a {lang} asset")
        except Exception:
            FileAssets._discard_blob(blob.path)
            raise
        db.refresh(asset)
        logger.info(
            "Uploaded %s asset %s to version %s (%d bytes)",
            lang,
            asset.id,
            version.id,
            asset.size,
        )
        publish_event(
            EventType.asset_uploaded,
            entity_type="file_version",
            entity_id=version.id,
            actor_id=actor.user_id,
            file_item_id=item.id,
            payload={
                "asset_id": asset.id,
                "lang": lang,
                "size": asset.size,
                "original_name": original_name,
                "made_current": made_current,
            },
        )
        return asset

    @staticmethod
    def _discard_blob(path: str) -> None:
        try:
            get_storage().delete(path)
        except Exception as e:
            logger.exception("Failed to remove uncommitted blob %s: %s", path, e)

    @staticmethod
    def delete(db: Session, actor: Actor, asset_id) -> FileVersionAsset:
        with atomic(db):
            asset = FileAssets.get(db, asset_id)
            if asset.deleted_at is not None:
                raise InvalidStateError("Asset is already deleted")
            asset.deleted_at = _now()
            db.flush()
        logger.info("Soft-deleted asset %s", asset.id)
        publish_event(
            EventType.asset_deleted,
            entity_type="file_version",
            entity_id=asset.file_version_id,
            actor_id=actor.user_id,
            file_item_id=asset.version.file_item_id,
            payload={"asset_id": asset.id, "lang": asset.lang},
        )
        return asset

    @staticmethod
    def restore(db: Session, actor: Actor, asset_id) -> FileVersionAsset:
        with atomic(db):
            asset = FileAssets.get(db, asset_id)
            if asset.deleted_at is None:
                raise InvalidStateError("Asset is not deleted")
            if FileAssets._live_slot_taken(
                db, asset.file_version_id, asset.lang, exclude_id=asset.id
            ):
                raise ConflictError(f"Version already has a live {asset.lang} asset")
            asset.deleted_at = None
            db.flush()
        logger.info("Restored asset %s", asset.id)
        publish_event(
            EventType.asset_restored,
            entity_type="file_version",
            entity_id=asset.file_version_id,
            actor_id=actor.user_id,
            file_item_id=asset.version.file_item_id,
            payload={"asset_id": asset.id, "lang": asset.lang},
        )
        return asset

    @staticmethod
    def force_delete(db: Session, actor: Actor, asset_id) -> None:
        with atomic(db):
            asset = FileAssets.get(db, asset_id)
            if asset.deleted_at is None:
                raise InvalidStateError("Only deleted assets can be force-deleted")
            version_id = asset.file_version_id
            file_item_id = asset.version.file_item_id
            path = asset.path
            db.delete(asset)
            db.flush()
            orphaned = unreferenced_paths(db, [path])
        release_blobs(orphaned)
        logger.info("Force-deleted asset %s of version %s", asset_id, version_id)
        publish_event(
            EventType.asset_force_deleted,
            entity_type="file_version",
            entity_id=version_id,
            actor_id=actor.user_id,
            file_item_id=file_item_id,
            payload={"asset_id": coerce_id(asset_id)},
        )


file_items = FileItems()
file_versions = FileVersions()
file_assets = FileAssets()
