from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from doclib.api.deps import get_actor, get_db, require_permission
from doclib.schemas.common import ListResponse
from doclib.schemas.hierarchy import (
    CategoryCreate,
    CategoryRead,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentRead,
    DepartmentUpdate,
    NodeMove,
    PathRead,
    SectionCreate,
    SectionRead,
    SectionUpdate,
)
from doclib.services.access import Actor
from doclib.services.hierarchy import categories, departments, sections

router = APIRouter(tags=["hierarchy"])


# ------------------------------------------------------------------
# Departments
# ------------------------------------------------------------------


@router.post(
    "/departments", response_model=DepartmentRead, status_code=status.HTTP_201_CREATED
)
def create_department(
    payload: DepartmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.add")),
):
    return departments.create(db, payload, actor_id=actor.user_id)


@router.get("/departments", response_model=ListResponse[DepartmentRead])
def list_departments(
    q: str | None = None,
    parent_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.read")),
):
    return departments.list_response(db, q, parent_id, limit, offset)


@router.get("/departments/{department_id}", response_model=DepartmentRead)
def get_department(
    department_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.read")),
):
    return departments.get(db, department_id)


@router.get("/departments/{department_id}/path", response_model=PathRead)
def department_path(
    department_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.read")),
):
    return {"id": department_id, "path": departments.path_of(db, department_id)}


@router.patch("/departments/{department_id}", response_model=DepartmentRead)
def update_department(
    department_id: int,
    payload: DepartmentUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.update")),
):
    return departments.update(db, department_id, payload, actor_id=actor.user_id)


@router.post("/departments/{department_id}/move", response_model=DepartmentRead)
def move_department(
    department_id: int,
    payload: NodeMove,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.update")),
):
    return departments.move(db, department_id, payload.parent_id, actor_id=actor.user_id)


@router.delete("/departments/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_department(
    department_id: int,
    cascade: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("department.delete")),
):
    departments.delete(db, department_id, cascade=cascade, actor_id=actor.user_id)


# ------------------------------------------------------------------
# Sections
# ------------------------------------------------------------------


@router.post(
    "/sections", response_model=SectionRead, status_code=status.HTTP_201_CREATED
)
def create_section(
    payload: SectionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("section.add")),
):
    return sections.create(db, payload, actor_id=actor.user_id)


@router.get("/sections", response_model=ListResponse[SectionRead])
def list_sections(
    q: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return sections.list_response(db, q, limit, offset)


@router.get("/sections/{section_id}", response_model=SectionRead)
def get_section(
    section_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return sections.get(db, section_id)


@router.put("/sections/{section_id}/translations", response_model=SectionRead)
def update_section_translations(
    section_id: int,
    payload: SectionUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("section.update")),
):
    return sections.update_translations(db, section_id, payload, actor_id=actor.user_id)


@router.delete("/sections/{section_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_section(
    section_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("section.delete")),
):
    sections.delete(db, section_id, actor_id=actor.user_id)


# ------------------------------------------------------------------
# Categories
# ------------------------------------------------------------------


@router.post(
    "/categories", response_model=CategoryRead, status_code=status.HTTP_201_CREATED
)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("category.add")),
):
    return categories.create(db, payload, actor_id=actor.user_id)


@router.get("/categories", response_model=ListResponse[CategoryRead])
def list_categories(
    section_id: int | None = None,
    parent_id: int | None = None,
    q: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return categories.list_response(db, section_id, parent_id, q, limit, offset)


@router.get("/categories/{category_id}", response_model=CategoryRead)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return categories.get(db, category_id)


@router.get("/categories/{category_id}/path", response_model=PathRead)
def category_path(
    category_id: int,
    lang: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return {"id": category_id, "path": categories.path_of(db, category_id, lang)}


@router.put("/categories/{category_id}/translations", response_model=CategoryRead)
def update_category_translations(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("category.update")),
):
    return categories.update_translations(
        db, category_id, payload, actor_id=actor.user_id
    )


@router.post("/categories/{category_id}/move", response_model=CategoryRead)
def move_category(
    category_id: int,
    payload: NodeMove,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("category.update")),
):
    return categories.move(db, category_id, payload.parent_id, actor_id=actor.user_id)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    cascade: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("category.delete")),
):
    categories.delete(db, category_id, cascade=cascade, actor_id=actor.user_id)
