from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from doclib.models import AccessType, FileRequestStatus, FileRequestType
from doclib.schemas.files import Translation, TranslationRead


class FileRequestCreate(BaseModel):
    request_type: FileRequestType = FileRequestType.new
    file_item_id: int | None = None
    section_id: int | None = None
    category_id: int | None = None
    access_type: AccessType = AccessType.public
    translations: list[Translation]
    comment: str | None = Field(default=None, max_length=4000)
    access_department_ids: list[int] = Field(default_factory=list)
    access_user_ids: list[int] = Field(default_factory=list)


class FileUpdateRequestCreate(BaseModel):
    translations: list[Translation]
    comment: str | None = Field(default=None, max_length=4000)


class FileRequestReject(BaseModel):
    reason: str | None = Field(default=None, max_length=4000)


class StagedAssetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lang: str
    original_name: str
    mime: str
    size: int
    checksum: str | None
    created_at: datetime


class FileRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_type: FileRequestType
    file_item_id: int | None
    section_id: int | None
    category_id: int | None
    access_type: AccessType
    status: FileRequestStatus
    comment: str | None
    rejection_reason: str | None
    created_by: int
    resolved_by: int | None
    resolved_at: datetime | None
    translations: list[TranslationRead]
    assets: list[StagedAssetRead]
    access_department_ids: list[int]
    access_user_ids: list[int]
    created_at: datetime
    updated_at: datetime


class AccessOptionDepartment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: int | None
    depth: int


class AccessOptionsRead(BaseModel):
    departments: list[AccessOptionDepartment]
    user_ids: list[int]
