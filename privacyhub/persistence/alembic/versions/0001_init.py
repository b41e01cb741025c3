"""init reference data, organizations and component catalogs

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-01 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _catalog_columns() -> list[sa.Column]:
    # Null organization marks a system template visible to every tenant.
    return [
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "countries",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("iso_code", sa.String(length=2), nullable=False),
        sa.Column("gdpr_status", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_countries_iso_code", "countries", ["iso_code"], unique=True)

    op.create_table(
        "transfer_mechanisms",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("gdpr_article", sa.String(), nullable=True),
        sa.Column("is_derogation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_transfer_mechanisms_code", "transfer_mechanisms", ["code"], unique=True)

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("settings", postgresql.JSONB(), nullable=True),
        sa.Column(
            "home_country_id",
            sa.String(),
            sa.ForeignKey("countries.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "purposes",
        *_catalog_columns(),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_purposes_organization_id", "purposes", ["organization_id"])
    op.create_index("ix_purposes_org_active", "purposes", ["organization_id", "is_active"])

    op.create_table(
        "data_categories",
        *_catalog_columns(),
        sa.Column("sensitivity", sa.String(), nullable=False, server_default="standard"),
        sa.Column("is_special_category", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_data_categories_organization_id", "data_categories", ["organization_id"])
    op.create_index("ix_data_categories_org_active", "data_categories", ["organization_id", "is_active"])

    op.create_table(
        "data_subject_categories",
        *_catalog_columns(),
        sa.Column("is_vulnerable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        "ix_data_subject_categories_organization_id", "data_subject_categories", ["organization_id"]
    )
    op.create_index(
        "ix_data_subject_categories_org_active",
        "data_subject_categories",
        ["organization_id", "is_active"],
    )


def downgrade() -> None:
    op.drop_index("ix_data_subject_categories_org_active", table_name="data_subject_categories")
    op.drop_index("ix_data_subject_categories_organization_id", table_name="data_subject_categories")
    op.drop_table("data_subject_categories")
    op.drop_index("ix_data_categories_org_active", table_name="data_categories")
    op.drop_index("ix_data_categories_organization_id", table_name="data_categories")
    op.drop_table("data_categories")
    op.drop_index("ix_purposes_org_active", table_name="purposes")
    op.drop_index("ix_purposes_organization_id", table_name="purposes")
    op.drop_table("purposes")
    op.drop_index("ix_organizations_slug", table_name="organizations")
    op.drop_table("organizations")
    op.drop_index("ix_transfer_mechanisms_code", table_name="transfer_mechanisms")
    op.drop_table("transfer_mechanisms")
    op.drop_index("ix_countries_iso_code", table_name="countries")
    op.drop_table("countries")
