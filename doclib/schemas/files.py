from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from doclib.models import AccessType


class Translation(BaseModel):
    lang: str = Field(min_length=2, max_length=8)
    title: str = Field(max_length=500)
    description: str | None = None


class TranslationRead(Translation):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# File item
# ---------------------------------------------------------------------------


class FileItemCreate(BaseModel):
    section_id: int
    category_id: int | None = None
    access_type: AccessType = AccessType.public
    translations: list[Translation]
    access_department_ids: list[int] = Field(default_factory=list)
    access_user_ids: list[int] = Field(default_factory=list)
    allow_version_access: bool = True


class FileItemUpdate(BaseModel):
    section_id: int | None = None
    category_id: int | None = None
    allow_version_access: bool | None = None


class FileTranslationsUpdate(BaseModel):
    translations: list[Translation]


class FileAccessUpdate(BaseModel):
    access_type: AccessType
    access_department_ids: list[int] = Field(default_factory=list)
    access_user_ids: list[int] = Field(default_factory=list)


class FileItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    section_id: int | None
    category_id: int | None
    access_type: AccessType
    current_version_id: int | None
    allow_version_access: bool
    created_by: int | None
    deleted_at: datetime | None
    translations: list[TranslationRead]
    access_department_ids: list[int]
    access_user_ids: list[int]
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Versions and assets
# ---------------------------------------------------------------------------


class FileVersionCreate(BaseModel):
    comment: str | None = Field(default=None, max_length=1000)
    translations: list[Translation] = Field(default_factory=list)
    copy_from_current: bool = False


class SetCurrentVersion(BaseModel):
    version_id: int


class AssetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lang: str
    original_name: str
    mime: str
    size: int
    checksum: str | None
    deleted_at: datetime | None = None
    created_at: datetime


class FileVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_item_id: int
    version_number: int
    comment: str | None
    created_by: int | None
    deleted_at: datetime | None
    translations: list[TranslationRead]
    assets: list[AssetRead]
    created_at: datetime


# ---------------------------------------------------------------------------
# Favorites and downloads
# ---------------------------------------------------------------------------


class FavoriteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    file_item_id: int
    user_id: int
    created_at: datetime


class DownloadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None
    file_item_id: int | None
    file_version_id: int | None
    file_version_asset_id: int | None
    lang: str
    created_at: datetime


class MenuEntry(BaseModel):
    id: int
    title: str | None
    available_langs: list[str]


class MenuCategory(MenuEntry):
    section_id: int
    parent_id: int | None


class MenuRead(BaseModel):
    sections: list[MenuEntry]
    categories: list[MenuCategory]
