"""Visibility and downloadability of file items for an actor.

``can_view`` and ``can_download`` are pure functions over already-loaded rows;
``visible_clause`` is the same rule expressed as a SQL predicate so listings
filter in the database rather than in Python.
"""

from dataclasses import dataclass, field

from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.orm import Session

from doclib.models import (
    AccessType,
    Department,
    FileAccessDepartment,
    FileAccessUser,
    FileItem,
    FileVersion,
)

PERM_DOWNLOAD_RESTRICTED = "file.download.restricted"
PERM_TRASH_READ = "file.trash.read"


@dataclass(frozen=True)
class Actor:
    user_id: int
    department_id: int | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)
    role_level: int = 0

    def has(self, permission: str) -> bool:
        return permission in self.permissions


def _item_visible(actor: Actor, item: FileItem) -> bool:
    if item.deleted_at is not None and not actor.has(PERM_TRASH_READ):
        return False
    if item.access_type == AccessType.public:
        return True
    in_department = (
        actor.department_id is not None
        and actor.department_id in item.access_department_ids
    )
    if item.access_type == AccessType.department_closed:
        return in_department
    if item.access_type == AccessType.restricted:
        return (
            in_department
            or actor.user_id in item.access_user_ids
            or actor.has(PERM_DOWNLOAD_RESTRICTED)
        )
    return False


def can_view(actor: Actor, item: FileItem) -> bool:
    return _item_visible(actor, item)


def can_download(actor: Actor, item: FileItem, version: FileVersion | None) -> bool:
    """True when ``actor`` may fetch an asset of ``version``.

    ``None`` or the current version follows the item rule. Any other version
    must be live, belong to the item, and the item must allow version access.
    """
    if not _item_visible(actor, item):
        return False
    if version is None or version.id == item.current_version_id:
        return True
    if version.file_item_id != item.id or version.deleted_at is not None:
        return False
    return bool(item.allow_version_access)


def visible_clause(actor: Actor, include_deleted: bool = False):
    """SQL predicate on ``FileItem`` equivalent to ``can_view``."""
    department_match = false()
    if actor.department_id is not None:
        department_match = FileItem.id.in_(
            select(FileAccessDepartment.file_item_id).where(
                FileAccessDepartment.department_id == actor.department_id
            )
        )
    user_match = FileItem.id.in_(
        select(FileAccessUser.file_item_id).where(
            FileAccessUser.user_id == actor.user_id
        )
    )
    restricted_match = or_(
        department_match,
        user_match,
        true() if actor.has(PERM_DOWNLOAD_RESTRICTED) else false(),
    )
    access = or_(
        FileItem.access_type == AccessType.public,
        and_(FileItem.access_type == AccessType.restricted, restricted_match),
        and_(FileItem.access_type == AccessType.department_closed, department_match),
    )
    if include_deleted and actor.has(PERM_TRASH_READ):
        return access
    return and_(FileItem.deleted_at.is_(None), access)


def department_scope(db: Session, department_id: int | None) -> set[int]:
    """The department and all of its descendants."""
    if department_id is None:
        return set()
    if db.get(Department, department_id) is None:
        return set()
    scope = {department_id}
    frontier = [department_id]
    while frontier:
        children = db.scalars(
            select(Department.id).where(Department.parent_id.in_(frontier))
        ).all()
        frontier = [child for child in children if child not in scope]
        scope.update(frontier)
    return scope
