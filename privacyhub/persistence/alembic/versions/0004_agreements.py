"""add agreements with external organizations

Revision ID: 0004_agreements
Revises: 0003_change_ledger
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0004_agreements"
down_revision = "0003_change_ledger"
branch_labels = None
depends_on = None


_INDEXES = (
    ("ix_agreements_org_external", ["organization_id", "external_organization_id"]),
    ("ix_agreements_org_type", ["organization_id", "type"]),
    ("ix_agreements_org_status", ["organization_id", "status"]),
    ("ix_agreements_org_expiry", ["organization_id", "expiry_date"]),
)


def upgrade() -> None:
    op.create_table(
        "agreements",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "external_organization_id",
            sa.String(),
            sa.ForeignKey("external_organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="DRAFT"),
        sa.Column("signed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_agreements_organization_id", "agreements", ["organization_id"])
    for name, columns in _INDEXES:
        op.create_index(name, "agreements", columns)


def downgrade() -> None:
    for name, _columns in reversed(_INDEXES):
        op.drop_index(name, table_name="agreements")
    op.drop_index("ix_agreements_organization_id", table_name="agreements")
    op.drop_table("agreements")
