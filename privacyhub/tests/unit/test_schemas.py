from __future__ import annotations

import pytest
from pydantic import ValidationError

from privacyhub.core.errors import DomainValidationError
from privacyhub.domain.schemas import (
    OrganizationCreate,
    ProcessingActivityUpdate,
    ProcessingLocationCreate,
    RecipientCreate,
    RecipientUpdate,
)


def test_partial_update_distinguishes_omitted_from_null() -> None:
    assert ProcessingActivityUpdate(risk_level="HIGH").changes() == {"risk_level": "HIGH"}
    assert ProcessingActivityUpdate(risk_level=None).changes() == {"risk_level": None}
    assert ProcessingActivityUpdate().changes() == {}


def test_required_fields_cannot_be_cleared() -> None:
    with pytest.raises(DomainValidationError) as excinfo:
        RecipientUpdate(name=None, type=None).changes()
    assert excinfo.value.errors == ["name cannot be null", "type cannot be null"]


def test_optional_references_can_be_cleared() -> None:
    assert RecipientUpdate(parent_recipient_id=None).changes() == {"parent_recipient_id": None}


def test_create_payloads_reject_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        RecipientCreate(name="Vendor", type="PROCESSOR", organization_id="org-2")


def test_recipient_type_is_validated() -> None:
    with pytest.raises(ValidationError):
        RecipientCreate(name="Vendor", type="FRIEND")


def test_location_defaults_to_processing_role() -> None:
    location = ProcessingLocationCreate(service="Hosting", country_id="c1")
    assert location.location_role == "PROCESSING"
    with pytest.raises(ValidationError):
        ProcessingLocationCreate(service="Hosting", country_id="c1", location_role="STORAGE")


def test_organization_slug_pattern() -> None:
    assert OrganizationCreate(name="Acme", slug="acme-eu").slug == "acme-eu"
    with pytest.raises(ValidationError):
        OrganizationCreate(name="Acme", slug="Acme EU")
