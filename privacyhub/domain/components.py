from __future__ import annotations

from typing import Literal

from privacyhub.core.errors import DomainValidationError
from privacyhub.domain.models import (
    Agreement,
    AssetProcessingLocation,
    Base,
    DataCategory,
    DataSubjectCategory,
    DigitalAsset,
    ExternalOrganization,
    ProcessingActivity,
    Purpose,
    Recipient,
    RecipientProcessingLocation,
)


ComponentType = Literal[
    "PROCESSING_ACTIVITY",
    "PURPOSE",
    "DATA_CATEGORY",
    "DATA_SUBJECT_CATEGORY",
    "RECIPIENT",
    "EXTERNAL_ORGANIZATION",
    "AGREEMENT",
    "DIGITAL_ASSET",
    "ASSET_PROCESSING_LOCATION",
    "RECIPIENT_PROCESSING_LOCATION",
]

# Tag -> model lookup for change-log entries, which reference components without a hard FK.
COMPONENT_MODELS: dict[str, type[Base]] = {
    "PROCESSING_ACTIVITY": ProcessingActivity,
    "PURPOSE": Purpose,
    "DATA_CATEGORY": DataCategory,
    "DATA_SUBJECT_CATEGORY": DataSubjectCategory,
    "RECIPIENT": Recipient,
    "EXTERNAL_ORGANIZATION": ExternalOrganization,
    "AGREEMENT": Agreement,
    "DIGITAL_ASSET": DigitalAsset,
    "ASSET_PROCESSING_LOCATION": AssetProcessingLocation,
    "RECIPIENT_PROCESSING_LOCATION": RecipientProcessingLocation,
}

# Human-readable entity names used in not-found errors.
ENTITY_LABELS: dict[str, str] = {
    "PROCESSING_ACTIVITY": "DataProcessingActivity",
    "PURPOSE": "Purpose",
    "DATA_CATEGORY": "DataCategory",
    "DATA_SUBJECT_CATEGORY": "DataSubjectCategory",
    "RECIPIENT": "Recipient",
    "EXTERNAL_ORGANIZATION": "ExternalOrganization",
    "AGREEMENT": "Agreement",
    "DIGITAL_ASSET": "DigitalAsset",
    "ASSET_PROCESSING_LOCATION": "AssetProcessingLocation",
    "RECIPIENT_PROCESSING_LOCATION": "RecipientProcessingLocation",
}

# Fields whose changes are written to the change log, per component type.
TRACKED_FIELDS: dict[str, tuple[str, ...]] = {
    "PROCESSING_ACTIVITY": (
        "name",
        "description",
        "status",
        "risk_level",
        "requires_dpia",
        "retention_period",
    ),
    "PURPOSE": ("name", "description", "category", "is_active"),
    "DATA_CATEGORY": ("name", "description", "sensitivity", "is_special_category", "is_active"),
    "DATA_SUBJECT_CATEGORY": ("name", "description", "is_vulnerable", "is_active"),
    "RECIPIENT": (
        "name",
        "type",
        "external_organization_id",
        "parent_recipient_id",
        "hierarchy_type",
        "is_active",
    ),
    "EXTERNAL_ORGANIZATION": ("legal_name", "headquarters_country_id", "is_active"),
    "AGREEMENT": ("type", "status", "signed_date", "expiry_date"),
    "DIGITAL_ASSET": ("name", "type", "description", "is_active"),
    "ASSET_PROCESSING_LOCATION": (
        "country_id",
        "transfer_mechanism_id",
        "location_role",
        "is_active",
    ),
    "RECIPIENT_PROCESSING_LOCATION": (
        "country_id",
        "transfer_mechanism_id",
        "location_role",
        "is_active",
    ),
}

CHANGE_CREATED = "CREATED"
CHANGE_UPDATED = "UPDATED"
CHANGE_DELETED = "DELETED"
CHANGE_TYPES = (CHANGE_CREATED, CHANGE_UPDATED, CHANGE_DELETED)


def require_component_type(component_type: str) -> str:
    # Reject unknown tags before they reach the untyped change-log column.
    if component_type not in COMPONENT_MODELS:
        raise DomainValidationError(f"Unsupported component type: {component_type}")
    return component_type


def model_for(component_type: str) -> type[Base]:
    return COMPONENT_MODELS[require_component_type(component_type)]


def label_for(component_type: str) -> str:
    return ENTITY_LABELS[require_component_type(component_type)]
