import enum
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from doclib.db import Base


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AccessType(enum.Enum):
    public = "public"
    restricted = "restricted"
    department_closed = "department_closed"


class FileRequestType(enum.Enum):
    new = "new"
    update = "update"


class FileRequestStatus(enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    canceled = "canceled"


# ---------------------------------------------------------------------------
# File items
# ---------------------------------------------------------------------------


class FileItem(Base):
    __tablename__ = "file_items"
    __table_args__ = (
        Index("ix_file_items_section_id", "section_id"),
        Index("ix_file_items_category_id", "category_id"),
        Index("ix_file_items_deleted_at", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    section_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sections.id", ondelete="SET NULL")
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL")
    )
    access_type: Mapped[AccessType] = mapped_column(
        Enum(AccessType), nullable=False, default=AccessType.public
    )
    # Validated by the repository service: must point at a live version of
    # this item, or be NULL.
    current_version_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey(
            "file_versions.id",
            use_alter=True,
            name="fk_file_items_current_version_id",
            ondelete="SET NULL",
        ),
    )
    allow_version_access: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    # Highest version number ever issued for this item, deleted ones included.
    last_version_number: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    created_by: Mapped[int | None] = mapped_column(Integer)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    translations = relationship(
        "FileTranslation",
        back_populates="file_item",
        cascade="all, delete-orphan",
        order_by="FileTranslation.lang",
    )
    versions = relationship(
        "FileVersion",
        foreign_keys="FileVersion.file_item_id",
        back_populates="file_item",
        cascade="all, delete-orphan",
        order_by="FileVersion.version_number.desc()",
    )
    access_departments = relationship(
        "FileAccessDepartment",
        back_populates="file_item",
        cascade="all, delete-orphan",
    )
    access_users = relationship(
        "FileAccessUser",
        back_populates="file_item",
        cascade="all, delete-orphan",
    )

    @property
    def access_department_ids(self) -> list[int]:
        return sorted(row.department_id for row in self.access_departments)

    @property
    def access_user_ids(self) -> list[int]:
        return sorted(row.user_id for row in self.access_users)


class FileTranslation(Base):
    __tablename__ = "file_translations"
    __table_args__ = (
        UniqueConstraint("file_item_id", "lang", name="uq_file_translations_lang"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    file_item = relationship("FileItem", back_populates="translations")


class FileAccessDepartment(Base):
    __tablename__ = "file_access_departments"

    file_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="CASCADE"), primary_key=True
    )
    department_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), primary_key=True
    )

    file_item = relationship("FileItem", back_populates="access_departments")


class FileAccessUser(Base):
    __tablename__ = "file_access_users"

    file_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    file_item = relationship("FileItem", back_populates="access_users")


# ---------------------------------------------------------------------------
# Versions, version translations and assets
# ---------------------------------------------------------------------------


class FileVersion(Base):
    __tablename__ = "file_versions"
    __table_args__ = (
        UniqueConstraint(
            "file_item_id",
            "version_number",
            name="uq_file_versions_item_number",
        ),
        Index("ix_file_versions_file_item_id", "file_item_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="CASCADE"), nullable=False
    )
    # Never reused or renumbered, even after the version is deleted.
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(String(1000))
    created_by: Mapped[int | None] = mapped_column(Integer)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    file_item = relationship(
        "FileItem", foreign_keys=[file_item_id], back_populates="versions"
    )
    translations = relationship(
        "FileVersionTranslation",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="FileVersionTranslation.lang",
    )
    assets = relationship(
        "FileVersionAsset",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="FileVersionAsset.lang",
    )

    @property
    def live_assets(self) -> list["FileVersionAsset"]:
        return [asset for asset in self.assets if asset.deleted_at is None]


class FileVersionTranslation(Base):
    __tablename__ = "file_version_translations"
    __table_args__ = (
        UniqueConstraint(
            "file_version_id", "lang", name="uq_file_version_translations_lang"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_version_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_versions.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    version = relationship("FileVersion", back_populates="translations")


class FileVersionAsset(Base):
    __tablename__ = "file_version_assets"
    __table_args__ = (
        # One live asset per (version, lang); soft-deleted rows keep their slot
        # history without blocking a re-upload.
        Index(
            "uq_file_version_assets_version_lang_live",
            "file_version_id",
            "lang",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_version_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_versions.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    original_name: Mapped[str] = mapped_column(String(500), nullable=False)
    mime: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    checksum: Mapped[str | None] = mapped_column(String(64))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    version = relationship("FileVersion", back_populates="assets")


# ---------------------------------------------------------------------------
# Publication requests (staging area)
# ---------------------------------------------------------------------------


class FileRequest(Base):
    __tablename__ = "file_requests"
    __table_args__ = (
        Index("ix_file_requests_status_created_at", "status", "created_at"),
        Index("ix_file_requests_created_by", "created_by"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_type: Mapped[FileRequestType] = mapped_column(
        Enum(FileRequestType), nullable=False, default=FileRequestType.new
    )
    file_item_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="SET NULL")
    )
    section_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sections.id", ondelete="SET NULL")
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL")
    )
    access_type: Mapped[AccessType] = mapped_column(Enum(AccessType), nullable=False)
    status: Mapped[FileRequestStatus] = mapped_column(
        Enum(FileRequestStatus), nullable=False, default=FileRequestStatus.pending
    )
    comment: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    resolved_by: Mapped[int | None] = mapped_column(Integer)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    file_item = relationship("FileItem")
    translations = relationship(
        "FileRequestTranslation",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="FileRequestTranslation.lang",
    )
    assets = relationship(
        "FileRequestAsset",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="FileRequestAsset.lang",
    )
    access_departments = relationship(
        "FileRequestAccessDepartment",
        back_populates="request",
        cascade="all, delete-orphan",
    )
    access_users = relationship(
        "FileRequestAccessUser",
        back_populates="request",
        cascade="all, delete-orphan",
    )

    @property
    def access_department_ids(self) -> list[int]:
        return sorted(row.department_id for row in self.access_departments)

    @property
    def access_user_ids(self) -> list[int]:
        return sorted(row.user_id for row in self.access_users)


class FileRequestTranslation(Base):
    __tablename__ = "file_request_translations"
    __table_args__ = (
        UniqueConstraint(
            "file_request_id", "lang", name="uq_file_request_translations_lang"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_requests.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    request = relationship("FileRequest", back_populates="translations")


class FileRequestAsset(Base):
    __tablename__ = "file_request_assets"
    __table_args__ = (
        UniqueConstraint("file_request_id", "lang", name="uq_file_request_assets_lang"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    file_request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_requests.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    original_name: Mapped[str] = mapped_column(String(500), nullable=False)
    mime: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    checksum: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    request = relationship("FileRequest", back_populates="assets")


class FileRequestAccessDepartment(Base):
    __tablename__ = "file_request_access_departments"

    file_request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_requests.id", ondelete="CASCADE"), primary_key=True
    )
    department_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), primary_key=True
    )

    request = relationship("FileRequest", back_populates="access_departments")


class FileRequestAccessUser(Base):
    __tablename__ = "file_request_access_users"

    file_request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_requests.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    request = relationship("FileRequest", back_populates="access_users")


# ---------------------------------------------------------------------------
# Favorites and the download ledger
# ---------------------------------------------------------------------------


class FileFavorite(Base):
    __tablename__ = "file_favorites"

    file_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    file_item = relationship("FileItem")


class Download(Base):
    """Append-only download event. Never updated or deleted by the engine."""

    __tablename__ = "downloads"
    __table_args__ = (
        Index("ix_downloads_created_at", "created_at"),
        Index("ix_downloads_file_item_id", "file_item_id"),
        Index("ix_downloads_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer)
    file_item_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("file_items.id", ondelete="SET NULL")
    )
    file_version_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("file_versions.id", ondelete="SET NULL")
    )
    file_version_asset_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("file_version_assets.id", ondelete="SET NULL")
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
