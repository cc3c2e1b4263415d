from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from doclib.db import Base


# ---------------------------------------------------------------------------
# Departments (self-referencing tree, cached depth)
# ---------------------------------------------------------------------------


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (
        Index("ix_departments_parent_id", "parent_id"),
        Index("ix_departments_depth", "depth"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="CASCADE")
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    parent = relationship(
        "Department", remote_side="Department.id", back_populates="children"
    )
    children = relationship("Department", back_populates="parent")


# ---------------------------------------------------------------------------
# Sections (flat, translated)
# ---------------------------------------------------------------------------


class Section(Base):
    __tablename__ = "sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    translations = relationship(
        "SectionTranslation",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="SectionTranslation.lang",
    )
    categories = relationship("Category", back_populates="section")


class SectionTranslation(Base):
    __tablename__ = "sections_translations"
    __table_args__ = (
        UniqueConstraint("section_id", "lang", name="uq_sections_translations_lang"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    section_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)

    section = relationship("Section", back_populates="translations")


# ---------------------------------------------------------------------------
# Categories (tree scoped by section, parent SET NULL)
# ---------------------------------------------------------------------------


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        Index("ix_categories_parent_id", "parent_id"),
        Index("ix_categories_depth", "depth"),
        Index("ix_categories_section_id", "section_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    section_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL")
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    section = relationship("Section", back_populates="categories")
    parent = relationship(
        "Category", remote_side="Category.id", back_populates="children"
    )
    children = relationship("Category", back_populates="parent")
    translations = relationship(
        "CategoryTranslation",
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="CategoryTranslation.lang",
    )


class CategoryTranslation(Base):
    __tablename__ = "categories_translations"
    __table_args__ = (
        UniqueConstraint(
            "category_id", "lang", name="uq_categories_translations_lang"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    lang: Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)

    category = relationship("Category", back_populates="translations")
