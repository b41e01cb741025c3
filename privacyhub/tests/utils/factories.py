from __future__ import annotations

from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import Country, Organization, TransferMechanism
from privacyhub.domain.schemas import (
    AgreementCreate,
    DataCategoryCreate,
    DataSubjectCategoryCreate,
    ExternalOrganizationCreate,
    OrganizationCreate,
    ProcessingActivityCreate,
    ProcessingLocationCreate,
    PurposeCreate,
    RecipientCreate,
)
from privacyhub.persistence.repos import activities, agreements, catalog, external_organizations, organizations
from privacyhub.persistence.repos import processing_locations, recipients
from privacyhub.persistence.repos import reference


# Country fixtures mirror the GDPR classifications used by transfer derivation.
COUNTRY_FIXTURES = {
    "DE": ("Germany", ["EU", "EEA"]),
    "FR": ("France", ["EU", "EEA"]),
    "NO": ("Norway", ["EEA"]),
    "CH": ("Switzerland", ["Adequate"]),
    "GB": ("United Kingdom", ["Adequate"]),
    "US": ("United States", ["Adequate"]),
    "IN": ("India", ["Third Country"]),
    "CN": ("China", ["Third Country"]),
}


async def create_country(session: AsyncSession, iso_code: str) -> Country:
    # Reuse a country across calls within one test database.
    existing = await reference.get_country_by_iso_code(session, iso_code)
    if existing is not None:
        return existing
    name, status = COUNTRY_FIXTURES[iso_code]
    return await reference.create_country(session, name=name, iso_code=iso_code, gdpr_status=status)


async def create_mechanism(session: AsyncSession, code: str = "SCC") -> TransferMechanism:
    existing = await reference.get_transfer_mechanism_by_code(session, code)
    if existing is not None:
        return existing
    return await reference.create_transfer_mechanism(
        session,
        code=code,
        name=f"{code} mechanism",
        category="SAFEGUARD",
        gdpr_article="Art. 46(2)(c)",
    )


async def create_organization(session: AsyncSession, *, home: str | None = "DE") -> Organization:
    home_country = await create_country(session, home) if home else None
    slug = f"org-{uuid4().hex[:12]}"
    return await organizations.create_organization(
        session,
        OrganizationCreate(
            name=slug.title(),
            slug=slug,
            home_country_id=home_country.id if home_country else None,
        ),
    )


async def create_activity(session: AsyncSession, organization_id: str, name: str = "Payroll"):
    return await activities.create_activity(session, organization_id, ProcessingActivityCreate(name=name))


async def create_purpose(session: AsyncSession, organization_id: str, name: str = "Billing"):
    return await catalog.create_purpose(session, organization_id, PurposeCreate(name=name))


async def create_data_category(session: AsyncSession, organization_id: str, name: str = "Contact details"):
    return await catalog.create_data_category(session, organization_id, DataCategoryCreate(name=name))


async def create_data_subject(session: AsyncSession, organization_id: str, name: str = "Employees"):
    return await catalog.create_data_subject_category(
        session, organization_id, DataSubjectCategoryCreate(name=name)
    )


async def create_recipient(
    session: AsyncSession,
    organization_id: str,
    *,
    name: str = "Vendor",
    type: str = "PROCESSOR",
    parent_recipient_id: str | None = None,
    external_organization_id: str | None = None,
):
    return await recipients.create_recipient(
        session,
        organization_id,
        RecipientCreate(
            name=name,
            type=type,
            parent_recipient_id=parent_recipient_id,
            external_organization_id=external_organization_id,
        ),
    )


async def create_recipient_location(
    session: AsyncSession,
    organization_id: str,
    recipient_id: str,
    country_id: str,
    *,
    transfer_mechanism_id: str | None = None,
    service: str = "Hosting",
):
    return await processing_locations.create_recipient_location(
        session,
        recipient_id,
        organization_id,
        ProcessingLocationCreate(
            service=service,
            country_id=country_id,
            transfer_mechanism_id=transfer_mechanism_id,
        ),
    )


async def create_external_organization(session: AsyncSession, organization_id: str, legal_name: str = "Acme GmbH"):
    return await external_organizations.create_external_organization(
        session, organization_id, ExternalOrganizationCreate(legal_name=legal_name)
    )


async def create_agreement(
    session: AsyncSession,
    organization_id: str,
    external_organization_id: str,
    *,
    type: str = "DPA",
    status: str = "ACTIVE",
    expiry_date=None,
):
    return await agreements.create_agreement(
        session,
        organization_id,
        AgreementCreate(
            external_organization_id=external_organization_id,
            type=type,
            status=status,
            expiry_date=expiry_date,
        ),
    )
