from unittest.mock import patch

import pytest
from sqlalchemy import update

from doclib.errors import ConflictError, CycleDetectedError, NotFoundError, ValidationError
from doclib.models import AccessType, Category, Department, FileAccessDepartment
from doclib.schemas.files import FileItemCreate, Translation
from doclib.schemas.hierarchy import (
    CategoryCreate,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentUpdate,
    SectionCreate,
    SectionUpdate,
    TitleTranslation,
)
from doclib.services.files import FileItems
from doclib.services.hierarchy import categories, departments, sections


def _dept(db, name, parent=None):
    return departments.create(
        db, DepartmentCreate(name=name, parent_id=parent.id if parent else None)
    )


def _cat(db, section, title, parent=None):
    return categories.create(
        db,
        CategoryCreate(
            section_id=section.id,
            parent_id=parent.id if parent else None,
            translations=[TitleTranslation(lang="en", title=title)],
        ),
    )


class TestDepartmentsCreate:
    def test_root_has_depth_one(self, db_session):
        root = _dept(db_session, "Root")
        assert root.depth == 1
        assert root.parent_id is None

    def test_child_depth_follows_parent(self, db_session):
        root = _dept(db_session, "Root")
        child = _dept(db_session, "Child", root)
        grandchild = _dept(db_session, "Grandchild", child)
        assert child.depth == 2
        assert grandchild.depth == 3

    def test_missing_parent(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            departments.create(db_session, DepartmentCreate(name="X", parent_id=999))
        assert exc.value.status_code == 404
        assert "Parent" in exc.value.detail

    def test_max_depth(self, db_session):
        root = _dept(db_session, "Root")
        child = _dept(db_session, "Child", root)
        with patch("doclib.services.hierarchy.settings") as mock_settings:
            mock_settings.hierarchy_max_depth = 2
            with pytest.raises(ValidationError) as exc:
                _dept(db_session, "Too deep", child)
        assert exc.value.status_code == 422
        assert "depth" in exc.value.detail

    def test_publishes_event(self, db_session, published):
        _dept(db_session, "Root")
        assert published.call_args.kwargs["event_type"] == "department.created"


class TestDepartmentsMove:
    def test_move_recomputes_subtree_depths(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B")
        b1 = _dept(db_session, "B1", b)
        b2 = _dept(db_session, "B2", b1)
        departments.move(db_session, b.id, a.id)
        db_session.expire_all()
        assert db_session.get(Department, b.id).depth == 2
        assert db_session.get(Department, b1.id).depth == 3
        assert db_session.get(Department, b2.id).depth == 4

    def test_move_to_root(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        moved = departments.move(db_session, b.id, None)
        assert moved.parent_id is None
        assert moved.depth == 1

    def test_move_under_descendant_is_cycle(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        c = _dept(db_session, "C", b)
        with pytest.raises(CycleDetectedError) as exc:
            departments.move(db_session, a.id, c.id)
        assert exc.value.status_code == 409
        db_session.expire_all()
        assert db_session.get(Department, a.id).parent_id is None

    def test_move_under_itself_is_cycle(self, db_session):
        a = _dept(db_session, "A")
        with pytest.raises(ConflictError):
            departments.move(db_session, a.id, a.id)

    def test_move_respects_max_depth(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B")
        _dept(db_session, "B1", b)
        with patch("doclib.services.hierarchy.settings") as mock_settings:
            mock_settings.hierarchy_max_depth = 2
            with pytest.raises(ValidationError):
                departments.move(db_session, b.id, a.id)


class TestDepartmentsPath:
    def test_path_root_to_node(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        c = _dept(db_session, "C", b)
        assert departments.path_of(db_session, c.id) == ["A", "B", "C"]

    def test_path_reflects_rename(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        assert departments.path_of(db_session, b.id) == ["A", "B"]
        departments.update(db_session, a.id, DepartmentUpdate(name="Renamed"))
        assert departments.path_of(db_session, b.id) == ["Renamed", "B"]

    def test_path_terminates_on_corrupted_cycle(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        a.parent_id = b.id
        db_session.commit()
        path = departments.path_of(db_session, b.id)
        assert path == ["A", "B"]

    def test_path_sees_rename_made_outside_the_service(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        assert departments.path_of(db_session, b.id) == ["A", "B"]
        db_session.execute(
            update(Department).where(Department.id == a.id).values(name="Elsewhere")
        )
        db_session.commit()
        assert departments.path_of(db_session, b.id) == ["Elsewhere", "B"]


class TestDepartmentsDelete:
    def test_delete_removes_subtree(self, db_session):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        c = _dept(db_session, "C", b)
        other = _dept(db_session, "Other")
        deleted = departments.delete(db_session, a.id)
        assert set(deleted) == {a.id, b.id, c.id}
        remaining = [d.id for d in db_session.query(Department).all()]
        assert remaining == [other.id]

    def test_delete_blocked_by_access_list(self, db_session, admin, section):
        a = _dept(db_session, "A")
        b = _dept(db_session, "B", a)
        FileItems.create(
            db_session,
            admin,
            FileItemCreate(
                section_id=section.id,
                access_type=AccessType.department_closed,
                translations=[Translation(lang="en", title="Doc")],
                access_department_ids=[b.id],
            ),
        )
        with pytest.raises(ConflictError) as exc:
            departments.delete(db_session, a.id)
        assert exc.value.status_code == 409
        assert db_session.get(Department, b.id) is not None

    def test_cascade_delete_removes_access_rows(self, db_session, admin, section):
        a = _dept(db_session, "A")
        FileItems.create(
            db_session,
            admin,
            FileItemCreate(
                section_id=section.id,
                access_type=AccessType.department_closed,
                translations=[Translation(lang="en", title="Doc")],
                access_department_ids=[a.id],
            ),
        )
        departments.delete(db_session, a.id, cascade=True)
        assert db_session.query(FileAccessDepartment).count() == 0


class TestDepartmentsList:
    def test_ordered_by_depth_then_id(self, db_session):
        a = _dept(db_session, "A")
        a1 = _dept(db_session, "A1", a)
        b = _dept(db_session, "B")
        result = departments.list_response(
            db_session, q=None, parent_id=None, limit=50, offset=0
        )
        assert [d.id for d in result["items"]] == [a.id, b.id, a1.id]
        assert result["count"] == 3


class TestSections:
    def test_create_and_update_translations(self, db_session):
        section = sections.create(
            db_session,
            SectionCreate(translations=[TitleTranslation(lang="ru", title="Раздел")]),
        )
        updated = sections.update_translations(
            db_session,
            section.id,
            SectionUpdate(
                translations=[
                    TitleTranslation(lang="en", title="Section"),
                    TitleTranslation(lang="uz", title="Bo'lim"),
                ]
            ),
        )
        assert sorted(t.lang for t in updated.translations) == ["en", "uz"]
        assert sections.title(updated, "uz") == "Bo'lim"

    def test_create_rejects_empty_title(self, db_session):
        with pytest.raises(ValidationError):
            sections.create(
                db_session,
                SectionCreate(translations=[TitleTranslation(lang="en", title="  ")]),
            )

    def test_create_rejects_duplicate_lang(self, db_session):
        with pytest.raises(ValidationError):
            sections.create(
                db_session,
                SectionCreate(
                    translations=[
                        TitleTranslation(lang="en", title="A"),
                        TitleTranslation(lang="en", title="B"),
                    ]
                ),
            )

    def test_delete_blocked_by_categories(self, db_session, section, category):
        with pytest.raises(ConflictError) as exc:
            sections.delete(db_session, section.id)
        assert "in use" in exc.value.detail

    def test_delete_empty_section(self, db_session, section):
        sections.delete(db_session, section.id)
        with pytest.raises(NotFoundError):
            sections.get(db_session, section.id)


class TestCategories:
    def test_parent_must_share_section(self, db_session, section):
        other = sections.create(
            db_session,
            SectionCreate(translations=[TitleTranslation(lang="en", title="Other")]),
        )
        parent = _cat(db_session, other, "Elsewhere")
        with pytest.raises(ValidationError) as exc:
            _cat(db_session, section, "Child", parent)
        assert "another section" in exc.value.detail

    def test_missing_section(self, db_session):
        with pytest.raises(NotFoundError):
            categories.create(
                db_session,
                CategoryCreate(
                    section_id=404,
                    translations=[TitleTranslation(lang="en", title="X")],
                ),
            )

    def test_path_uses_requested_language(self, db_session, section):
        root = categories.create(
            db_session,
            CategoryCreate(
                section_id=section.id,
                translations=[
                    TitleTranslation(lang="ru", title="Кадры"),
                    TitleTranslation(lang="en", title="HR"),
                ],
            ),
        )
        leaf = _cat(db_session, section, "Leave", root)
        assert categories.path_of(db_session, leaf.id, "ru") == ["Кадры", "Leave"]
        assert categories.path_of(db_session, leaf.id, "en") == ["HR", "Leave"]

    def test_path_reflects_translation_update(self, db_session, section):
        root = _cat(db_session, section, "Old")
        assert categories.path_of(db_session, root.id, "en") == ["Old"]
        categories.update_translations(
            db_session,
            root.id,
            CategoryUpdate(translations=[TitleTranslation(lang="en", title="New")]),
        )
        assert categories.path_of(db_session, root.id, "en") == ["New"]

    def test_unknown_lang_falls_back_without_retaining_state(self, db_session, section):
        root = _cat(db_session, section, "Policies")
        before = dict(vars(categories))
        for i in range(50):
            assert categories.path_of(db_session, root.id, f"zz{i}") == ["Policies"]
        assert vars(categories) == before

    def test_move_across_sections_rejected(self, db_session, section):
        other = sections.create(
            db_session,
            SectionCreate(translations=[TitleTranslation(lang="en", title="Other")]),
        )
        a = _cat(db_session, section, "A")
        b = _cat(db_session, other, "B")
        with pytest.raises(ValidationError):
            categories.move(db_session, a.id, b.id)

    def test_move_under_descendant_is_cycle(self, db_session, section):
        a = _cat(db_session, section, "A")
        b = _cat(db_session, section, "B", a)
        with pytest.raises(CycleDetectedError):
            categories.move(db_session, a.id, b.id)

    def test_delete_detaches_children(self, db_session, section):
        a = _cat(db_session, section, "A")
        b = _cat(db_session, section, "B", a)
        c = _cat(db_session, section, "C", b)
        categories.delete(db_session, a.id)
        db_session.expire_all()
        b = db_session.get(Category, b.id)
        c = db_session.get(Category, c.id)
        assert db_session.get(Category, a.id) is None
        assert b.parent_id is None
        assert b.depth == 1
        assert c.depth == 2

    def test_delete_blocked_by_file_items(self, db_session, admin, section, category):
        item = FileItems.create(
            db_session,
            admin,
            FileItemCreate(
                section_id=section.id,
                category_id=category.id,
                translations=[Translation(lang="en", title="Doc")],
            ),
        )
        with pytest.raises(ConflictError):
            categories.delete(db_session, category.id)
        categories.delete(db_session, category.id, cascade=True)
        db_session.expire_all()
        assert FileItems.get(db_session, item.id).category_id is None

    def test_list_filters_by_section(self, db_session, section):
        other = sections.create(
            db_session,
            SectionCreate(translations=[TitleTranslation(lang="en", title="Other")]),
        )
        a = _cat(db_session, section, "A")
        _cat(db_session, other, "B")
        items = categories.list(
            db_session, section_id=section.id, parent_id=None, q=None, limit=50, offset=0
        )
        assert [c.id for c in items] == [a.id]
