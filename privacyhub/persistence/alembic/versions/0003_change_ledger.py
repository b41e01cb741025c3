"""add component change log, generated documents and affected documents

Revision ID: 0003_change_ledger
Revises: 0002_recipients_assets_activities
Create Date: 2026-10-03
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0003_change_ledger"
down_revision = "0002_recipients_assets_activities"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Append-only ledger; component_id is a loose reference with no FK.
    op.create_table(
        "component_change_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("component_type", sa.String(), nullable=False),
        sa.Column("component_id", sa.String(), nullable=False),
        sa.Column("change_type", sa.String(), nullable=False),
        sa.Column("field_changed", sa.String(), nullable=True),
        sa.Column("old_value", postgresql.JSONB(), nullable=True),
        sa.Column("new_value", postgresql.JSONB(), nullable=True),
        sa.Column("changed_by_user_id", sa.String(), nullable=True),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_change_logs_component",
        "component_change_logs",
        ["organization_id", "component_type", "component_id"],
    )
    op.create_index("ix_change_logs_org_changed_at", "component_change_logs", ["organization_id", "changed_at"])

    op.create_table(
        "generated_documents",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("document_type", sa.String(), nullable=False),
        sa.Column("version", sa.String(), nullable=False, server_default="1.0"),
        sa.Column("assessment_id", sa.String(), nullable=True),
        sa.Column(
            "processing_activity_id",
            sa.String(),
            sa.ForeignKey("processing_activities.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("data_snapshot", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("word_file_url", sa.String(), nullable=True),
        sa.Column("pdf_file_url", sa.String(), nullable=True),
        sa.Column("markdown_content", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="DRAFT"),
        sa.Column("generated_by", sa.String(), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_generated_documents_organization_id", "generated_documents", ["organization_id"])
    op.create_index(
        "ix_generated_documents_org_type", "generated_documents", ["organization_id", "document_type"]
    )

    op.create_table(
        "affected_documents",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "generated_document_id",
            sa.String(),
            sa.ForeignKey("generated_documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "change_log_id",
            sa.String(),
            sa.ForeignKey("component_change_logs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("impact_type", sa.String(), nullable=False),
        sa.Column("impact_description", sa.Text(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        sa.UniqueConstraint(
            "generated_document_id",
            "change_log_id",
            name="uq_affected_documents_document_change",
        ),
    )
    op.create_index("ix_affected_documents_change_log_id", "affected_documents", ["change_log_id"])
    op.create_index(
        "ix_affected_documents_org_reviewed", "affected_documents", ["organization_id", "reviewed_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_affected_documents_org_reviewed", table_name="affected_documents")
    op.drop_index("ix_affected_documents_change_log_id", table_name="affected_documents")
    op.drop_table("affected_documents")
    op.drop_index("ix_generated_documents_org_type", table_name="generated_documents")
    op.drop_index("ix_generated_documents_organization_id", table_name="generated_documents")
    op.drop_table("generated_documents")
    op.drop_index("ix_change_logs_org_changed_at", table_name="component_change_logs")
    op.drop_index("ix_change_logs_component", table_name="component_change_logs")
    op.drop_table("component_change_logs")
