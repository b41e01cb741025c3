"""add recipients, digital assets, processing activities and junctions

Revision ID: 0002_recipients_assets_activities
Revises: 0001_init
Create Date: 2026-10-02
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0002_recipients_assets_activities"
down_revision = "0001_init"
branch_labels = None
depends_on = None


_JUNCTIONS = (
    ("activity_purposes", "purpose_id", "purposes"),
    ("activity_data_categories", "data_category_id", "data_categories"),
    ("activity_data_subjects", "data_subject_category_id", "data_subject_categories"),
    ("activity_recipients", "recipient_id", "recipients"),
    ("activity_digital_assets", "digital_asset_id", "digital_assets"),
)

_LOCATIONS = (
    (
        "asset_processing_locations",
        "digital_asset_id",
        "digital_assets",
        "ix_asset_locations_org_asset",
        "ix_asset_locations_org_country",
    ),
    (
        "recipient_processing_locations",
        "recipient_id",
        "recipients",
        "ix_recipient_locations_org_recipient",
        "ix_recipient_locations_org_country",
    ),
)


def _org_column() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.String(),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "external_organizations",
        sa.Column("id", sa.String(), primary_key=True),
        _org_column(),
        sa.Column("legal_name", sa.String(), nullable=False),
        sa.Column("trading_name", sa.String(), nullable=True),
        sa.Column(
            "headquarters_country_id",
            sa.String(),
            sa.ForeignKey("countries.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("website", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        "ix_external_organizations_organization_id", "external_organizations", ["organization_id"]
    )

    op.create_table(
        "recipients",
        sa.Column("id", sa.String(), primary_key=True),
        _org_column(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "external_organization_id",
            sa.String(),
            sa.ForeignKey("external_organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        # Self reference; deleting a parent leaves children orphaned for health scans.
        sa.Column(
            "parent_recipient_id",
            sa.String(),
            sa.ForeignKey("recipients.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("hierarchy_type", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_recipients_organization_id", "recipients", ["organization_id"])
    op.create_index("ix_recipients_org_parent", "recipients", ["organization_id", "parent_recipient_id"])
    op.create_index("ix_recipients_org_type", "recipients", ["organization_id", "type"])

    op.create_table(
        "digital_assets",
        sa.Column("id", sa.String(), primary_key=True),
        _org_column(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_digital_assets_organization_id", "digital_assets", ["organization_id"])

    op.create_table(
        "processing_activities",
        sa.Column("id", sa.String(), primary_key=True),
        _org_column(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("risk_level", sa.String(), nullable=True),
        sa.Column("requires_dpia", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("retention_period", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_processing_activities_organization_id", "processing_activities", ["organization_id"])
    op.create_index(
        "ix_processing_activities_org_status", "processing_activities", ["organization_id", "status"]
    )

    # Composite primary keys make each (activity, target) pair unique.
    for table, target_column, target_table in _JUNCTIONS:
        op.create_table(
            table,
            sa.Column(
                "activity_id",
                sa.String(),
                sa.ForeignKey("processing_activities.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column(
                target_column,
                sa.String(),
                sa.ForeignKey(f"{target_table}.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index(f"ix_{table}_{target_column}", table, [target_column])

    for table, owner_column, owner_table, owner_index, country_index in _LOCATIONS:
        op.create_table(
            table,
            sa.Column("id", sa.String(), primary_key=True),
            _org_column(),
            sa.Column(
                owner_column,
                sa.String(),
                sa.ForeignKey(f"{owner_table}.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("service", sa.String(), nullable=False),
            sa.Column(
                "purpose_id",
                sa.String(),
                sa.ForeignKey("purposes.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("purpose_text", sa.Text(), nullable=True),
            sa.Column(
                "country_id",
                sa.String(),
                sa.ForeignKey("countries.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("location_role", sa.String(), nullable=False, server_default="PROCESSING"),
            sa.Column(
                "transfer_mechanism_id",
                sa.String(),
                sa.ForeignKey("transfer_mechanisms.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("metadata", postgresql.JSONB(), nullable=True),
            *_timestamps(),
        )
        op.create_index(f"ix_{table}_organization_id", table, ["organization_id"])
        op.create_index(owner_index, table, ["organization_id", owner_column])
        op.create_index(country_index, table, ["organization_id", "country_id"])


def downgrade() -> None:
    for table, _owner_column, _owner_table, owner_index, country_index in reversed(_LOCATIONS):
        op.drop_index(country_index, table_name=table)
        op.drop_index(owner_index, table_name=table)
        op.drop_index(f"ix_{table}_organization_id", table_name=table)
        op.drop_table(table)
    for table, target_column, _target_table in reversed(_JUNCTIONS):
        op.drop_index(f"ix_{table}_{target_column}", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_processing_activities_org_status", table_name="processing_activities")
    op.drop_index("ix_processing_activities_organization_id", table_name="processing_activities")
    op.drop_table("processing_activities")
    op.drop_index("ix_digital_assets_organization_id", table_name="digital_assets")
    op.drop_table("digital_assets")
    op.drop_index("ix_recipients_org_type", table_name="recipients")
    op.drop_index("ix_recipients_org_parent", table_name="recipients")
    op.drop_index("ix_recipients_organization_id", table_name="recipients")
    op.drop_table("recipients")
    op.drop_index("ix_external_organizations_organization_id", table_name="external_organizations")
    op.drop_table("external_organizations")
