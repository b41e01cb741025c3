from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Store opaque documents as JSONB on Postgres while keeping SQLite test databases usable.
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    # Populate timestamps client-side so async sessions never lazy-load server defaults.
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Country(Base):
    __tablename__ = "countries"

    # Global reference data; never scoped to an organization.
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String)
    iso_code: Mapped[str] = mapped_column(String(2), unique=True, index=True)
    # GDPR classification tags such as ["EU", "EEA"], ["Adequate"] or ["Third Country"].
    gdpr_status: Mapped[list[str]] = mapped_column(JSONType, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class TransferMechanism(Base):
    __tablename__ = "transfer_mechanisms"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str] = mapped_column(String)
    # adequacy | safeguard | derogation
    category: Mapped[str] = mapped_column(String)
    gdpr_article: Mapped[str | None] = mapped_column(String, nullable=True)
    is_derogation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String)
    slug: Mapped[str] = mapped_column(String, unique=True, index=True)
    status: Mapped[str] = mapped_column(String, default="active", nullable=False)
    settings: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    # Home country anchors cross-border transfer derivation.
    home_country_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("countries.id", ondelete="RESTRICT"), nullable=True
    )
    # Soft-delete marker; hard delete cascades to every owned row.
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class Purpose(Base):
    __tablename__ = "purposes"
    __table_args__ = (Index("ix_purposes_org_active", "organization_id", "is_active"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    # Null organization marks a system-defined template shared by every tenant.
    organization_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class DataCategory(Base):
    __tablename__ = "data_categories"
    __table_args__ = (Index("ix_data_categories_org_active", "organization_id", "is_active"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # standard | special | criminal
    sensitivity: Mapped[str] = mapped_column(String, default="standard", nullable=False)
    is_special_category: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class DataSubjectCategory(Base):
    __tablename__ = "data_subject_categories"
    __table_args__ = (
        Index("ix_data_subject_categories_org_active", "organization_id", "is_active"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_vulnerable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class ExternalOrganization(Base):
    __tablename__ = "external_organizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    legal_name: Mapped[str] = mapped_column(String)
    trading_name: Mapped[str | None] = mapped_column(String, nullable=True)
    headquarters_country_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("countries.id", ondelete="SET NULL"), nullable=True
    )
    website: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class Agreement(Base):
    __tablename__ = "agreements"
    __table_args__ = (
        Index("ix_agreements_org_external", "organization_id", "external_organization_id"),
        Index("ix_agreements_org_type", "organization_id", "type"),
        Index("ix_agreements_org_status", "organization_id", "status"),
        Index("ix_agreements_org_expiry", "organization_id", "expiry_date"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    # Agreements live and die with the counterparty they were signed with.
    external_organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("external_organizations.id", ondelete="CASCADE")
    )
    # DPA | JOINT_CONTROLLER_AGREEMENT | SCC | BCR | DPF | NDA
    type: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="DRAFT", server_default="DRAFT")
    signed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class Recipient(Base):
    __tablename__ = "recipients"
    __table_args__ = (
        Index("ix_recipients_org_parent", "organization_id", "parent_recipient_id"),
        Index("ix_recipients_org_type", "organization_id", "type"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String)
    # PROCESSOR | SUB_PROCESSOR | JOINT_CONTROLLER | ... (see services.hierarchy rules).
    type: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_organization_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("external_organizations.id", ondelete="SET NULL"), nullable=True
    )
    # Adjacency list; orphaning on parent delete is surfaced by health scans.
    parent_recipient_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("recipients.id", ondelete="SET NULL"), nullable=True
    )
    # PROCESSOR_CHAIN | ORGANIZATIONAL, derived from the recipient type.
    hierarchy_type: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class DigitalAsset(Base):
    __tablename__ = "digital_assets"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String)
    # database | application | saas | storage | other
    type: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class ProcessingActivity(Base):
    __tablename__ = "processing_activities"
    # Label used in not-found errors surfaced to API clients.
    __entity_label__ = "DataProcessingActivity"
    __table_args__ = (Index("ix_processing_activities_org_status", "organization_id", "status"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # draft | active | under_review | archived
    status: Mapped[str] = mapped_column(String, default="draft", nullable=False)
    risk_level: Mapped[str | None] = mapped_column(String, nullable=True)
    requires_dpia: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    retention_period: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class ActivityPurpose(Base):
    __tablename__ = "activity_purposes"

    # Junction rows carry identity only; they are never edited in place.
    activity_id: Mapped[str] = mapped_column(
        String, ForeignKey("processing_activities.id", ondelete="CASCADE"), primary_key=True
    )
    purpose_id: Mapped[str] = mapped_column(
        String, ForeignKey("purposes.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class ActivityDataCategory(Base):
    __tablename__ = "activity_data_categories"

    activity_id: Mapped[str] = mapped_column(
        String, ForeignKey("processing_activities.id", ondelete="CASCADE"), primary_key=True
    )
    data_category_id: Mapped[str] = mapped_column(
        String, ForeignKey("data_categories.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class ActivityDataSubject(Base):
    __tablename__ = "activity_data_subjects"

    activity_id: Mapped[str] = mapped_column(
        String, ForeignKey("processing_activities.id", ondelete="CASCADE"), primary_key=True
    )
    data_subject_category_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("data_subject_categories.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class ActivityRecipient(Base):
    __tablename__ = "activity_recipients"

    activity_id: Mapped[str] = mapped_column(
        String, ForeignKey("processing_activities.id", ondelete="CASCADE"), primary_key=True
    )
    recipient_id: Mapped[str] = mapped_column(
        String, ForeignKey("recipients.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class ActivityDigitalAsset(Base):
    __tablename__ = "activity_digital_assets"

    activity_id: Mapped[str] = mapped_column(
        String, ForeignKey("processing_activities.id", ondelete="CASCADE"), primary_key=True
    )
    digital_asset_id: Mapped[str] = mapped_column(
        String, ForeignKey("digital_assets.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class AssetProcessingLocation(Base):
    __tablename__ = "asset_processing_locations"
    __table_args__ = (
        Index("ix_asset_locations_org_asset", "organization_id", "digital_asset_id"),
        Index("ix_asset_locations_org_country", "organization_id", "country_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    digital_asset_id: Mapped[str] = mapped_column(
        String, ForeignKey("digital_assets.id", ondelete="CASCADE")
    )
    service: Mapped[str] = mapped_column(String)
    purpose_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("purposes.id", ondelete="SET NULL"), nullable=True
    )
    purpose_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Countries in use cannot be deleted out from under location history.
    country_id: Mapped[str] = mapped_column(String, ForeignKey("countries.id", ondelete="RESTRICT"))
    # HOSTING | PROCESSING | BOTH
    location_role: Mapped[str] = mapped_column(String, default="PROCESSING", nullable=False)
    transfer_mechanism_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("transfer_mechanisms.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class RecipientProcessingLocation(Base):
    __tablename__ = "recipient_processing_locations"
    __table_args__ = (
        Index("ix_recipient_locations_org_recipient", "organization_id", "recipient_id"),
        Index("ix_recipient_locations_org_country", "organization_id", "country_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    recipient_id: Mapped[str] = mapped_column(String, ForeignKey("recipients.id", ondelete="CASCADE"))
    service: Mapped[str] = mapped_column(String)
    purpose_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("purposes.id", ondelete="SET NULL"), nullable=True
    )
    purpose_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    country_id: Mapped[str] = mapped_column(String, ForeignKey("countries.id", ondelete="RESTRICT"))
    location_role: Mapped[str] = mapped_column(String, default="PROCESSING", nullable=False)
    transfer_mechanism_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("transfer_mechanisms.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )


class ComponentChangeLog(Base):
    __tablename__ = "component_change_logs"
    __table_args__ = (
        Index("ix_change_logs_component", "organization_id", "component_type", "component_id"),
        Index("ix_change_logs_org_changed_at", "organization_id", "changed_at"),
    )

    # Append-only; rows disappear only through organization cascade.
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE")
    )
    component_type: Mapped[str] = mapped_column(String)
    # Loose reference resolved through domain.components.COMPONENT_MODELS.
    component_id: Mapped[str] = mapped_column(String)
    # CREATED | UPDATED | DELETED
    change_type: Mapped[str] = mapped_column(String)
    field_changed: Mapped[str | None] = mapped_column(String, nullable=True)
    old_value: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    changed_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class GeneratedDocument(Base):
    __tablename__ = "generated_documents"
    __table_args__ = (
        Index("ix_generated_documents_org_type", "organization_id", "document_type"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    # ROPA | DPIA | LIA | DPA | PRIVACY_STATEMENT | DTIA
    document_type: Mapped[str] = mapped_column(String)
    version: Mapped[str] = mapped_column(String, default="1.0", nullable=False)
    assessment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    processing_activity_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("processing_activities.id", ondelete="SET NULL"), nullable=True
    )
    data_snapshot: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    word_file_url: Mapped[str | None] = mapped_column(String, nullable=True)
    pdf_file_url: Mapped[str | None] = mapped_column(String, nullable=True)
    markdown_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    # DRAFT | FINAL | SUPERSEDED | ARCHIVED
    status: Mapped[str] = mapped_column(String, default="DRAFT", nullable=False)
    generated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class AffectedDocument(Base):
    __tablename__ = "affected_documents"
    __table_args__ = (
        # One impact notice per (document, change) pair.
        UniqueConstraint(
            "generated_document_id",
            "change_log_id",
            name="uq_affected_documents_document_change",
        ),
        Index("ix_affected_documents_org_reviewed", "organization_id", "reviewed_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE")
    )
    generated_document_id: Mapped[str] = mapped_column(
        String, ForeignKey("generated_documents.id", ondelete="CASCADE")
    )
    change_log_id: Mapped[str] = mapped_column(
        String, ForeignKey("component_change_logs.id", ondelete="CASCADE"), index=True
    )
    impact_type: Mapped[str] = mapped_column(String)
    impact_description: Mapped[str] = mapped_column(Text)
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
