from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from privacyhub.core.errors import DomainValidationError


RecipientType = Literal[
    "PROCESSOR",
    "SUB_PROCESSOR",
    "JOINT_CONTROLLER",
    "SERVICE_PROVIDER",
    "SEPARATE_CONTROLLER",
    "PUBLIC_AUTHORITY",
    "INTERNAL_DEPARTMENT",
]
LocationRole = Literal["HOSTING", "PROCESSING", "BOTH"]
AgreementType = Literal["DPA", "JOINT_CONTROLLER_AGREEMENT", "SCC", "BCR", "DPF", "NDA"]
AgreementStatus = Literal["DRAFT", "PENDING_SIGNATURE", "ACTIVE", "EXPIRING_SOON", "EXPIRED", "TERMINATED"]
DocumentType = Literal["ROPA", "DPIA", "LIA", "DPA", "PRIVACY_STATEMENT", "DTIA"]
DocumentStatus = Literal["DRAFT", "FINAL", "SUPERSEDED", "ARCHIVED"]
ActivityStatus = Literal["draft", "active", "under_review", "archived"]
ImpactType = Literal[
    "TRANSFER_SECTION_OUTDATED",
    "MECHANISM_SECTION_OUTDATED",
    "LOCATION_CHANGED",
    "LOCATION_ADDED",
    "LOCATION_REMOVED",
    "THIRD_COUNTRY_ADDED",
    "SAFEGUARD_REMOVED",
    "PURPOSE_SECTION_OUTDATED",
    "LEGAL_BASIS_SECTION_OUTDATED",
    "DATA_CATEGORY_SECTION_OUTDATED",
    "DATA_SUBJECT_SECTION_OUTDATED",
    "RECIPIENT_SECTION_OUTDATED",
    "ACTIVITY_RISK_LEVEL_CHANGED",
    "ACTIVITY_DPIA_REQUIREMENT_CHANGED",
    "RETENTION_SECTION_OUTDATED",
    "OTHER_COMPONENT_CHANGED",
]


class CreateModel(BaseModel):
    # Reject unknown fields so organization_id can never ride along in a payload.
    model_config = {"extra": "forbid"}


class PartialUpdate(BaseModel):
    """Base for partial updates.

    A field left out of the payload is not touched; a field sent as ``None``
    clears the stored value. Fields listed in ``required_fields`` cannot be
    cleared.
    """

    model_config = {"extra": "forbid"}

    required_fields: ClassVar[tuple[str, ...]] = ()

    def changes(self) -> dict[str, Any]:
        values = self.model_dump(exclude_unset=True)
        cleared = [name for name in self.required_fields if name in values and values[name] is None]
        if cleared:
            raise DomainValidationError([f"{name} cannot be null" for name in cleared])
        return values


class OrganizationCreate(CreateModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1, pattern=r"^[a-z0-9][a-z0-9-]*$")
    status: str = "active"
    settings: dict[str, Any] | None = None
    home_country_id: str | None = None


class OrganizationUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "slug", "status")

    name: str | None = None
    slug: str | None = Field(default=None, pattern=r"^[a-z0-9][a-z0-9-]*$")
    status: str | None = None
    settings: dict[str, Any] | None = None
    home_country_id: str | None = None


class PurposeCreate(CreateModel):
    name: str = Field(min_length=1)
    description: str | None = None
    category: str | None = None
    is_active: bool = True


class PurposeUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "is_active")

    name: str | None = None
    description: str | None = None
    category: str | None = None
    is_active: bool | None = None


class DataCategoryCreate(CreateModel):
    name: str = Field(min_length=1)
    description: str | None = None
    sensitivity: Literal["standard", "special", "criminal"] = "standard"
    is_special_category: bool = False
    is_active: bool = True


class DataCategoryUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "sensitivity", "is_special_category", "is_active")

    name: str | None = None
    description: str | None = None
    sensitivity: Literal["standard", "special", "criminal"] | None = None
    is_special_category: bool | None = None
    is_active: bool | None = None


class DataSubjectCategoryCreate(CreateModel):
    name: str = Field(min_length=1)
    description: str | None = None
    is_vulnerable: bool = False
    is_active: bool = True


class DataSubjectCategoryUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "is_vulnerable", "is_active")

    name: str | None = None
    description: str | None = None
    is_vulnerable: bool | None = None
    is_active: bool | None = None


class ExternalOrganizationCreate(CreateModel):
    legal_name: str = Field(min_length=1)
    trading_name: str | None = None
    headquarters_country_id: str | None = None
    website: str | None = None


class ExternalOrganizationUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("legal_name", "is_active")

    legal_name: str | None = None
    trading_name: str | None = None
    headquarters_country_id: str | None = None
    website: str | None = None
    is_active: bool | None = None


class AgreementCreate(CreateModel):
    external_organization_id: str
    type: AgreementType
    status: AgreementStatus = "DRAFT"
    signed_date: datetime | None = None
    expiry_date: datetime | None = None


class AgreementUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("type", "status")

    type: AgreementType | None = None
    status: AgreementStatus | None = None
    signed_date: datetime | None = None
    expiry_date: datetime | None = None


class RecipientCreate(CreateModel):
    name: str = Field(min_length=1)
    type: RecipientType
    description: str | None = None
    external_organization_id: str | None = None
    parent_recipient_id: str | None = None
    is_active: bool = True


class RecipientUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "type", "is_active")

    name: str | None = None
    type: RecipientType | None = None
    description: str | None = None
    external_organization_id: str | None = None
    parent_recipient_id: str | None = None
    is_active: bool | None = None


class ProcessingLocationCreate(CreateModel):
    service: str = Field(min_length=1)
    country_id: str
    location_role: LocationRole = "PROCESSING"
    purpose_id: str | None = None
    purpose_text: str | None = None
    transfer_mechanism_id: str | None = None
    metadata_json: dict[str, Any] | None = None


class ProcessingLocationUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("service", "country_id", "location_role")

    service: str | None = None
    country_id: str | None = None
    location_role: LocationRole | None = None
    purpose_id: str | None = None
    purpose_text: str | None = None
    transfer_mechanism_id: str | None = None
    metadata_json: dict[str, Any] | None = None


class DigitalAssetCreate(CreateModel):
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    description: str | None = None
    owner_name: str | None = None
    is_active: bool = True
    locations: list[ProcessingLocationCreate] = Field(default_factory=list)


class DigitalAssetUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "type", "is_active")

    name: str | None = None
    type: str | None = None
    description: str | None = None
    owner_name: str | None = None
    is_active: bool | None = None


class ProcessingActivityCreate(CreateModel):
    name: str = Field(min_length=1)
    description: str | None = None
    status: ActivityStatus = "draft"
    risk_level: str | None = None
    requires_dpia: bool = False
    retention_period: str | None = None


class ProcessingActivityUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("name", "status", "requires_dpia", "is_active")

    name: str | None = None
    description: str | None = None
    status: ActivityStatus | None = None
    risk_level: str | None = None
    requires_dpia: bool | None = None
    retention_period: str | None = None
    is_active: bool | None = None


class GeneratedDocumentCreate(CreateModel):
    document_type: DocumentType
    version: str = "1.0"
    assessment_id: str | None = None
    processing_activity_id: str | None = None
    data_snapshot: dict[str, Any] = Field(default_factory=dict)
    word_file_url: str | None = None
    pdf_file_url: str | None = None
    markdown_content: str | None = None
    generated_by: str | None = None
