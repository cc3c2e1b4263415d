from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TitleTranslation(BaseModel):
    lang: str = Field(min_length=2, max_length=8)
    title: str = Field(max_length=500)


class TitleTranslationRead(TitleTranslation):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Department
# ---------------------------------------------------------------------------


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    parent_id: int | None = None


class DepartmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class NodeMove(BaseModel):
    parent_id: int | None = None


class DepartmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: int | None
    depth: int
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Section
# ---------------------------------------------------------------------------


class SectionCreate(BaseModel):
    translations: list[TitleTranslation]


class SectionUpdate(BaseModel):
    translations: list[TitleTranslation]


class SectionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    translations: list[TitleTranslationRead]
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Category
# ---------------------------------------------------------------------------


class CategoryCreate(BaseModel):
    section_id: int
    parent_id: int | None = None
    translations: list[TitleTranslation]


class CategoryUpdate(BaseModel):
    translations: list[TitleTranslation]


class CategoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    section_id: int
    parent_id: int | None
    depth: int
    translations: list[TitleTranslationRead]
    created_at: datetime
    updated_at: datetime


class PathRead(BaseModel):
    id: int
    path: list[str]
