"""initial schema

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "3f1c2a9b7d10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # --- Enums ---
    accesstype = sa.Enum(
        "public", "restricted", "department_closed", name="accesstype"
    )
    filerequesttype = sa.Enum("new", "update", name="filerequesttype")
    filerequeststatus = sa.Enum(
        "pending", "approved", "rejected", "canceled", name="filerequeststatus"
    )
    accesstype.create(op.get_bind(), checkfirst=True)
    filerequesttype.create(op.get_bind(), checkfirst=True)
    filerequeststatus.create(op.get_bind(), checkfirst=True)
    access_type_col = sa.Enum(
        "public",
        "restricted",
        "department_closed",
        name="accesstype",
        create_type=False,
    )
    request_type_col = sa.Enum(
        "new", "update", name="filerequesttype", create_type=False
    )
    request_status_col = sa.Enum(
        "pending",
        "approved",
        "rejected",
        "canceled",
        name="filerequeststatus",
        create_type=False,
    )

    # --- Hierarchy ---
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["parent_id"], ["departments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_departments_parent_id", "departments", ["parent_id"])
    op.create_index("ix_departments_depth", "departments", ["depth"])

    op.create_table(
        "sections",
        sa.Column("id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "sections_translations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.ForeignKeyConstraint(["section_id"], ["sections.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("section_id", "lang", name="uq_sections_translations_lang"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("depth", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["section_id"], ["sections.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["categories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_categories_parent_id", "categories", ["parent_id"])
    op.create_index("ix_categories_depth", "categories", ["depth"])
    op.create_index("ix_categories_section_id", "categories", ["section_id"])
    op.create_table(
        "categories_translations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "category_id", "lang", name="uq_categories_translations_lang"
        ),
    )

    # --- File items and versions (circular FK added afterwards) ---
    op.create_table(
        "file_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("access_type", access_type_col, nullable=False),
        sa.Column("current_version_id", sa.Integer(), nullable=True),
        sa.Column("allow_version_access", sa.Boolean(), nullable=False),
        sa.Column(
            "last_version_number", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["section_id"], ["sections.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_file_items_section_id", "file_items", ["section_id"])
    op.create_index("ix_file_items_category_id", "file_items", ["category_id"])
    op.create_index("ix_file_items_deleted_at", "file_items", ["deleted_at"])

    op.create_table(
        "file_translations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_item_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("file_item_id", "lang", name="uq_file_translations_lang"),
    )

    op.create_table(
        "file_access_departments",
        sa.Column("file_item_id", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["department_id"], ["departments.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("file_item_id", "department_id"),
    )
    op.create_table(
        "file_access_users",
        sa.Column("file_item_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("file_item_id", "user_id"),
    )

    op.create_table(
        "file_versions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_item_id", sa.Integer(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("comment", sa.String(length=1000), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "file_item_id", "version_number", name="uq_file_versions_item_number"
        ),
    )
    op.create_index(
        "ix_file_versions_file_item_id", "file_versions", ["file_item_id"]
    )
    op.create_foreign_key(
        "fk_file_items_current_version_id",
        "file_items",
        "file_versions",
        ["current_version_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "file_version_translations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_version_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["file_version_id"], ["file_versions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "file_version_id", "lang", name="uq_file_version_translations_lang"
        ),
    )

    op.create_table(
        "file_version_assets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_version_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("original_name", sa.String(length=500), nullable=False),
        sa.Column("mime", sa.String(length=255), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.Column("checksum", sa.String(length=64), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["file_version_id"], ["file_versions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_file_version_assets_version_lang_live",
        "file_version_assets",
        ["file_version_id", "lang"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    # --- Publication requests ---
    op.create_table(
        "file_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_type", request_type_col, nullable=False),
        sa.Column("file_item_id", sa.Integer(), nullable=True),
        sa.Column("section_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("access_type", access_type_col, nullable=False),
        sa.Column("status", request_status_col, nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("resolved_by", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["section_id"], ["sections.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_file_requests_status_created_at", "file_requests", ["status", "created_at"]
    )
    op.create_index("ix_file_requests_created_by", "file_requests", ["created_by"])

    op.create_table(
        "file_request_translations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_request_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["file_request_id"], ["file_requests.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "file_request_id", "lang", name="uq_file_request_translations_lang"
        ),
    )
    op.create_table(
        "file_request_assets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("file_request_id", sa.Integer(), nullable=False),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("original_name", sa.String(length=500), nullable=False),
        sa.Column("mime", sa.String(length=255), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.Column("checksum", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["file_request_id"], ["file_requests.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "file_request_id", "lang", name="uq_file_request_assets_lang"
        ),
    )
    op.create_table(
        "file_request_access_departments",
        sa.Column("file_request_id", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["file_request_id"], ["file_requests.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["department_id"], ["departments.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("file_request_id", "department_id"),
    )
    op.create_table(
        "file_request_access_users",
        sa.Column("file_request_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["file_request_id"], ["file_requests.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("file_request_id", "user_id"),
    )

    # --- Favorites and download ledger ---
    op.create_table(
        "file_favorites",
        sa.Column("file_item_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("file_item_id", "user_id"),
    )
    op.create_table(
        "downloads",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("file_item_id", sa.Integer(), nullable=True),
        sa.Column("file_version_id", sa.Integer(), nullable=True),
        sa.Column("file_version_asset_id", sa.Integer(), nullable=True),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["file_item_id"], ["file_items.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["file_version_id"], ["file_versions.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["file_version_asset_id"], ["file_version_assets.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_downloads_created_at", "downloads", ["created_at"])
    op.create_index("ix_downloads_file_item_id", "downloads", ["file_item_id"])
    op.create_index("ix_downloads_user_id", "downloads", ["user_id"])

    # --- Audit and notifications ---
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=120), nullable=False),
        sa.Column("entity_type", sa.String(length=60), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("diff", sa.JSON(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("entity_type", sa.String(length=60), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    for name in [
        "ix_audit_logs_action",
        "ix_audit_logs_entity",
        "ix_audit_logs_actor_user_id",
        "ix_audit_logs_created_at",
    ]:
        op.drop_index(name, table_name="audit_logs")
    op.drop_table("audit_logs")

    for name in [
        "ix_downloads_user_id",
        "ix_downloads_file_item_id",
        "ix_downloads_created_at",
    ]:
        op.drop_index(name, table_name="downloads")
    op.drop_table("downloads")
    op.drop_table("file_favorites")

    op.drop_table("file_request_access_users")
    op.drop_table("file_request_access_departments")
    op.drop_table("file_request_assets")
    op.drop_table("file_request_translations")
    op.drop_index("ix_file_requests_created_by", table_name="file_requests")
    op.drop_index("ix_file_requests_status_created_at", table_name="file_requests")
    op.drop_table("file_requests")

    op.drop_index(
        "uq_file_version_assets_version_lang_live", table_name="file_version_assets"
    )
    op.drop_table("file_version_assets")
    op.drop_table("file_version_translations")
    op.drop_constraint(
        "fk_file_items_current_version_id", "file_items", type_="foreignkey"
    )
    op.drop_index("ix_file_versions_file_item_id", table_name="file_versions")
    op.drop_table("file_versions")
    op.drop_table("file_access_users")
    op.drop_table("file_access_departments")
    op.drop_table("file_translations")
    op.drop_index("ix_file_items_deleted_at", table_name="file_items")
    op.drop_index("ix_file_items_category_id", table_name="file_items")
    op.drop_index("ix_file_items_section_id", table_name="file_items")
    op.drop_table("file_items")

    op.drop_table("categories_translations")
    op.drop_index("ix_categories_section_id", table_name="categories")
    op.drop_index("ix_categories_depth", table_name="categories")
    op.drop_index("ix_categories_parent_id", table_name="categories")
    op.drop_table("categories")
    op.drop_table("sections_translations")
    op.drop_table("sections")
    op.drop_index("ix_departments_depth", table_name="departments")
    op.drop_index("ix_departments_parent_id", table_name="departments")
    op.drop_table("departments")

    for enum_name in ["filerequeststatus", "filerequesttype", "accesstype"]:
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
