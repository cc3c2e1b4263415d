import logging
from collections import deque

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from doclib.config import settings
from doclib.errors import (
    ConflictError,
    CycleDetectedError,
    NotFoundError,
    ValidationError,
)
from doclib.models import (
    Category,
    CategoryTranslation,
    Department,
    FileAccessDepartment,
    FileItem,
    FileRequest,
    FileRequestAccessDepartment,
    FileRequestStatus,
    Section,
    SectionTranslation,
)
from doclib.schemas.hierarchy import (
    CategoryCreate,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentUpdate,
    SectionCreate,
    SectionUpdate,
)
from doclib.services.common import apply_pagination, atomic, coerce_id
from doclib.services.event import EventType, publish_event
from doclib.services.lang import pick_by_lang, validate_translations
from doclib.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic adjacency tree
# ---------------------------------------------------------------------------


class TreeStore(ListResponseMixin):
    """Self-referencing tree with a cached ``depth`` column.

    Subclasses set ``model`` and implement ``_label``. Paths are walked from
    the database on every call so a rename in another process is seen at once.
    """

    model = None
    label = "Node"
    entity_type = "node"
    moved_event: EventType | None = None

    def get(self, db: Session, node_id):
        node = db.get(self.model, coerce_id(node_id))
        if not node:
            raise NotFoundError(f"{self.label} not found")
        return node

    def _label(self, node, lang: str | None) -> str:
        raise NotImplementedError

    # -- depth bookkeeping -------------------------------------------------

    def _check_depth(self, depth: int) -> None:
        if depth > settings.hierarchy_max_depth:
            raise ValidationError(
                f"Maximum {self.label.lower()} depth of "
                f"{settings.hierarchy_max_depth} exceeded"
            )

    def _children_ids(self, db: Session, parent_ids) -> list[int]:
        return db.scalars(
            select(self.model.id).where(self.model.parent_id.in_(parent_ids))
        ).all()

    def subtree_ids(self, db: Session, node_id: int) -> list[int]:
        """Ids of ``node_id`` and every descendant, breadth-first."""
        ordered = [node_id]
        seen = {node_id}
        frontier = [node_id]
        while frontier:
            children = [c for c in self._children_ids(db, frontier) if c not in seen]
            seen.update(children)
            ordered.extend(children)
            frontier = children
        return ordered

    def _subtree_height(self, db: Session, node_id: int) -> int:
        height = 1
        seen = {node_id}
        frontier = [node_id]
        while True:
            children = [c for c in self._children_ids(db, frontier) if c not in seen]
            if not children:
                return height
            seen.update(children)
            frontier = children
            height += 1

    def _recompute_depths(self, db: Session, root) -> None:
        root.depth = 1 if root.parent_id is None else self.get(db, root.parent_id).depth + 1
        queue = deque([root])
        seen = {root.id}
        while queue:
            node = queue.popleft()
            children = db.scalars(
                select(self.model).where(self.model.parent_id == node.id)
            ).all()
            for child in children:
                if child.id in seen:
                    continue
                seen.add(child.id)
                child.depth = node.depth + 1
                queue.append(child)
        db.flush()

    def _is_ancestor_or_self(self, db: Session, node_id: int, candidate_id: int) -> bool:
        """True when ``node_id`` appears on the path from ``candidate_id`` to a root."""
        seen = set()
        current = candidate_id
        while current is not None and current not in seen:
            if current == node_id:
                return True
            seen.add(current)
            current = db.scalar(
                select(self.model.parent_id).where(self.model.id == current)
            )
        return False

    # -- mutations shared by every tree ------------------------------------

    def _validate_move(self, db: Session, node, new_parent) -> None:
        if new_parent is None:
            new_depth = 1
        else:
            if self._is_ancestor_or_self(db, node.id, new_parent.id):
                raise CycleDetectedError(
                    f"Cannot move {self.label.lower()} {node.id} under its own subtree"
                )
            new_depth = new_parent.depth + 1
        self._check_depth(new_depth + self._subtree_height(db, node.id) - 1)

    def move(self, db: Session, node_id, new_parent_id, actor_id: int | None = None):
        with atomic(db):
            node = self.get(db, node_id)
            new_parent = None
            if new_parent_id is not None:
                new_parent = self.get(db, new_parent_id)
            self._validate_move(db, node, new_parent)
            old_parent_id = node.parent_id
            node.parent_id = new_parent.id if new_parent is not None else None
            db.flush()
            self._recompute_depths(db, node)
        db.refresh(node)
        logger.info(
            "Moved %s %s from %s to %s",
            self.entity_type,
            node.id,
            old_parent_id,
            node.parent_id,
        )
        if self.moved_event is not None:
            publish_event(
                self.moved_event,
                entity_type=self.entity_type,
                entity_id=node.id,
                actor_id=actor_id,
                payload={"before": old_parent_id, "after": node.parent_id},
            )
        return node

    def path_of(self, db: Session, node_id, lang: str | None = None) -> list[str]:
        """Labels from the root down to ``node_id``.

        Walks ``parent_id`` links; a repeated id stops the walk so corrupted
        data cannot loop.
        """
        node = self.get(db, coerce_id(node_id))
        labels = []
        seen = set()
        while node is not None and node.id not in seen:
            seen.add(node.id)
            labels.append(self._label(node, lang))
            if node.parent_id is None:
                break
            node = db.get(self.model, node.parent_id)
        labels.reverse()
        return labels


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


class Departments(TreeStore):
    model = Department
    label = "Department"
    entity_type = "department"
    moved_event = EventType.department_moved

    def _label(self, node, lang):
        return node.name

    def create(
        self, db: Session, payload: DepartmentCreate, actor_id: int | None = None
    ) -> Department:
        with atomic(db):
            depth = 1
            if payload.parent_id is not None:
                parent = db.get(Department, coerce_id(payload.parent_id))
                if not parent:
                    raise NotFoundError("Parent department not found")
                depth = parent.depth + 1
            self._check_depth(depth)
            department = Department(
                name=payload.name.strip(), parent_id=payload.parent_id, depth=depth
            )
            db.add(department)
            db.flush()
        db.refresh(department)
        logger.info("Created department %s", department.id)
        publish_event(
            EventType.department_created,
            entity_type="department",
            entity_id=department.id,
            actor_id=actor_id,
            payload={"name": department.name, "parent_id": department.parent_id},
        )
        return department

    def update(
        self,
        db: Session,
        department_id,
        payload: DepartmentUpdate,
        actor_id: int | None = None,
    ) -> Department:
        with atomic(db):
            department = self.get(db, department_id)
            data = payload.model_dump(exclude_unset=True)
            if data.get("name") is not None:
                department.name = data["name"].strip()
            db.flush()
        db.refresh(department)
        logger.info("Updated department %s", department.id)
        publish_event(
            EventType.department_updated,
            entity_type="department",
            entity_id=department.id,
            actor_id=actor_id,
            payload={"changed_fields": list(data.keys())},
        )
        return department

    def delete(
        self,
        db: Session,
        department_id,
        cascade: bool = False,
        actor_id: int | None = None,
    ) -> list[int]:
        """Delete the department together with its whole subtree.

        Allow-list rows naming any department of the subtree block the delete
        unless ``cascade`` is set, in which case they are removed as well.
        Returns the deleted ids.
        """
        with atomic(db):
            department = self.get(db, department_id)
            ids = self.subtree_ids(db, department.id)
            referencing = db.scalar(
                select(func.count())
                .select_from(FileAccessDepartment)
                .where(FileAccessDepartment.department_id.in_(ids))
            ) + db.scalar(
                select(func.count())
                .select_from(FileRequestAccessDepartment)
                .where(FileRequestAccessDepartment.department_id.in_(ids))
            )
            if referencing and not cascade:
                raise ConflictError(
                    "Department is referenced by file access lists",
                    details={"department_ids": ids, "references": referencing},
                )
            db.execute(
                delete(FileAccessDepartment).where(
                    FileAccessDepartment.department_id.in_(ids)
                )
            )
            db.execute(
                delete(FileRequestAccessDepartment).where(
                    FileRequestAccessDepartment.department_id.in_(ids)
                )
            )
            # Deepest first so the self-reference never dangles mid-statement.
            for node_id in reversed(ids):
                db.execute(delete(Department).where(Department.id == node_id))
        db.expire_all()
        logger.info("Deleted department %s (%d node(s))", department_id, len(ids))
        publish_event(
            EventType.department_deleted,
            entity_type="department",
            entity_id=coerce_id(department_id),
            actor_id=actor_id,
            payload={"deleted_ids": ids, "cascade": cascade},
        )
        return ids

    def list(
        self,
        db: Session,
        q: str | None,
        parent_id: int | None,
        limit: int,
        offset: int,
    ) -> list[Department]:
        stmt = select(Department)
        if q:
            stmt = stmt.where(Department.name.ilike(f"%{q}%"))
        if parent_id is not None:
            stmt = stmt.where(Department.parent_id == coerce_id(parent_id))
        stmt = stmt.order_by(Department.depth.asc(), Department.id.asc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class Sections(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, payload: SectionCreate, actor_id: int | None = None
    ) -> Section:
        translations = validate_translations(payload.translations)
        with atomic(db):
            section = Section()
            section.translations = [
                SectionTranslation(lang=t["lang"], title=t["title"])
                for t in translations
            ]
            db.add(section)
            db.flush()
        db.refresh(section)
        logger.info("Created section %s", section.id)
        publish_event(
            EventType.section_created,
            entity_type="section",
            entity_id=section.id,
            actor_id=actor_id,
        )
        return section

    @staticmethod
    def get(db: Session, section_id) -> Section:
        section = db.get(Section, coerce_id(section_id))
        if not section:
            raise NotFoundError("Section not found")
        return section

    @staticmethod
    def list(db: Session, q: str | None, limit: int, offset: int) -> list[Section]:
        stmt = select(Section)
        if q:
            stmt = stmt.where(
                Section.id.in_(
                    select(SectionTranslation.section_id).where(
                        SectionTranslation.title.ilike(f"%{q}%")
                    )
                )
            )
        stmt = stmt.order_by(Section.id.asc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update_translations(
        db: Session, section_id, payload: SectionUpdate, actor_id: int | None = None
    ) -> Section:
        translations = validate_translations(payload.translations)
        with atomic(db):
            section = Sections.get(db, section_id)
            section.translations.clear()
            db.flush()
            section.translations.extend(
                SectionTranslation(lang=t["lang"], title=t["title"])
                for t in translations
            )
            db.flush()
        db.refresh(section)
        logger.info("Updated section %s", section.id)
        publish_event(
            EventType.section_updated,
            entity_type="section",
            entity_id=section.id,
            actor_id=actor_id,
        )
        return section

    @staticmethod
    def delete(db: Session, section_id, actor_id: int | None = None) -> None:
        with atomic(db):
            section = Sections.get(db, section_id)
            category_count = db.scalar(
                select(func.count())
                .select_from(Category)
                .where(Category.section_id == section.id)
            )
            item_count = db.scalar(
                select(func.count())
                .select_from(FileItem)
                .where(FileItem.section_id == section.id)
            )
            pending_count = db.scalar(
                select(func.count())
                .select_from(FileRequest)
                .where(FileRequest.section_id == section.id)
                .where(FileRequest.status == FileRequestStatus.pending)
            )
            if category_count or item_count or pending_count:
                raise ConflictError(
                    "Section is still in use",
                    details={
                        "categories": category_count,
                        "file_items": item_count,
                        "pending_requests": pending_count,
                    },
                )
            db.execute(
                update(FileRequest)
                .where(FileRequest.section_id == section.id)
                .values(section_id=None)
            )
            db.delete(section)
        logger.info("Deleted section %s", section_id)
        publish_event(
            EventType.section_deleted,
            entity_type="section",
            entity_id=coerce_id(section_id),
            actor_id=actor_id,
        )

    @staticmethod
    def title(section: Section, lang: str | None = None) -> str | None:
        picked = pick_by_lang(section.translations, lang)
        return picked.title if picked else None


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class Categories(TreeStore):
    model = Category
    label = "Category"
    entity_type = "category"
    moved_event = EventType.category_moved

    def _label(self, node, lang):
        picked = pick_by_lang(node.translations, lang)
        return picked.title if picked else f"#{node.id}"

    def create(
        self, db: Session, payload: CategoryCreate, actor_id: int | None = None
    ) -> Category:
        translations = validate_translations(payload.translations)
        with atomic(db):
            section = db.get(Section, coerce_id(payload.section_id))
            if not section:
                raise NotFoundError("Section not found")
            depth = 1
            if payload.parent_id is not None:
                parent = db.get(Category, coerce_id(payload.parent_id))
                if not parent:
                    raise NotFoundError("Parent category not found")
                if parent.section_id != section.id:
                    raise ValidationError("Parent category belongs to another section")
                depth = parent.depth + 1
            self._check_depth(depth)
            category = Category(
                section_id=section.id, parent_id=payload.parent_id, depth=depth
            )
            category.translations = [
                CategoryTranslation(lang=t["lang"], title=t["title"])
                for t in translations
            ]
            db.add(category)
            db.flush()
        db.refresh(category)
        logger.info("Created category %s in section %s", category.id, section.id)
        publish_event(
            EventType.category_created,
            entity_type="category",
            entity_id=category.id,
            actor_id=actor_id,
            payload={"section_id": category.section_id, "parent_id": category.parent_id},
        )
        return category

    def list(
        self,
        db: Session,
        section_id: int | None,
        parent_id: int | None,
        q: str | None,
        limit: int,
        offset: int,
    ) -> list[Category]:
        stmt = select(Category)
        if section_id is not None:
            stmt = stmt.where(Category.section_id == coerce_id(section_id))
        if parent_id is not None:
            stmt = stmt.where(Category.parent_id == coerce_id(parent_id))
        if q:
            stmt = stmt.where(
                Category.id.in_(
                    select(CategoryTranslation.category_id).where(
                        CategoryTranslation.title.ilike(f"%{q}%")
                    )
                )
            )
        stmt = stmt.order_by(Category.depth.asc(), Category.id.asc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    def update_translations(
        self, db: Session, category_id, payload: CategoryUpdate, actor_id: int | None = None
    ) -> Category:
        translations = validate_translations(payload.translations)
        with atomic(db):
            category = self.get(db, category_id)
            category.translations.clear()
            db.flush()
            category.translations.extend(
                CategoryTranslation(lang=t["lang"], title=t["title"])
                for t in translations
            )
            db.flush()
        db.refresh(category)
        logger.info("Updated category %s", category.id)
        publish_event(
            EventType.category_updated,
            entity_type="category",
            entity_id=category.id,
            actor_id=actor_id,
        )
        return category

    def _validate_move(self, db: Session, node, new_parent) -> None:
        if new_parent is not None and new_parent.section_id != node.section_id:
            raise ValidationError("Parent category belongs to another section")
        super()._validate_move(db, node, new_parent)

    def delete(
        self,
        db: Session,
        category_id,
        cascade: bool = False,
        actor_id: int | None = None,
    ) -> None:
        """Delete one category; its children become roots of their own subtrees.

        File items and pending requests filed under the category block the
        delete unless ``cascade`` is set, which detaches them instead.
        """
        with atomic(db):
            category = self.get(db, category_id)
            item_count = db.scalar(
                select(func.count())
                .select_from(FileItem)
                .where(FileItem.category_id == category.id)
            )
            pending_count = db.scalar(
                select(func.count())
                .select_from(FileRequest)
                .where(FileRequest.category_id == category.id)
                .where(FileRequest.status == FileRequestStatus.pending)
            )
            if (item_count or pending_count) and not cascade:
                raise ConflictError(
                    "Category is still in use",
                    details={"file_items": item_count, "pending_requests": pending_count},
                )
            db.execute(
                update(FileItem)
                .where(FileItem.category_id == category.id)
                .values(category_id=None)
            )
            db.execute(
                update(FileRequest)
                .where(FileRequest.category_id == category.id)
                .values(category_id=None)
            )

            children = db.scalars(
                select(Category).where(Category.parent_id == category.id)
            ).all()
            for child in children:
                child.parent_id = None
            db.flush()
            for child in children:
                self._recompute_depths(db, child)

            db.delete(category)
            db.flush()
        logger.info(
            "Deleted category %s, detached %d child(ren)", category_id, len(children)
        )
        publish_event(
            EventType.category_deleted,
            entity_type="category",
            entity_id=coerce_id(category_id),
            actor_id=actor_id,
            payload={"detached_children": [child.id for child in children]},
        )


departments = Departments()
sections = Sections()
categories = Categories()
