from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.domain.models import Agreement
from privacyhub.domain.schemas import AgreementCreate, AgreementUpdate, RecipientUpdate
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import agreements, change_logs, external_organizations, recipients
from privacyhub.tests.utils import factories


@pytest.mark.asyncio
async def test_agreement_requires_own_external_organization() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        foreign_vendor = await factories.create_external_organization(session, other.id, "Elsewhere Ltd")
        org_id, foreign_vendor_id = org.id, foreign_vendor.id

        with pytest.raises(NotFoundOrForbiddenError) as excinfo:
            await agreements.create_agreement(
                session, org_id, AgreementCreate(external_organization_id=foreign_vendor_id, type="DPA")
            )
    assert "ExternalOrganization" in str(excinfo.value)

    async with SessionLocal() as session:
        count = await session.execute(select(func.count(Agreement.id)))
        assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_agreements_are_tenant_scoped_and_tracked() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        vendor = await factories.create_external_organization(session, org.id)
        agreement = await agreements.create_agreement(
            session, org.id, AgreementCreate(external_organization_id=vendor.id, type="DPA")
        )
        org_id, other_id, agreement_id, vendor_id = org.id, other.id, agreement.id, vendor.id
        assert agreement.status == "DRAFT"

        assert await agreements.get_agreement(session, agreement_id, other_id) is None
        with pytest.raises(NotFoundOrForbiddenError):
            await agreements.update_agreement(session, agreement_id, other_id, AgreementUpdate(status="ACTIVE"))

        updated = await agreements.update_agreement(
            session, agreement_id, org_id, AgreementUpdate(status="ACTIVE")
        )
        assert updated.status == "ACTIVE"
        by_vendor = await agreements.get_agreements_by_external_organization(
            session, vendor_id, org_id, status="ACTIVE"
        )
        assert [item.id for item in by_vendor] == [agreement_id]
        page = await agreements.list_agreements(session, org_id, type="DPA")
        assert [item.id for item in page.items] == [agreement_id]
        assert (await agreements.list_agreements(session, other_id)).items == []

        history = await change_logs.get_component_change_history(
            session, agreements.COMPONENT_TYPE, agreement_id, org_id
        )
        assert [(entry.change_type, entry.field_changed) for entry in history] == [
            ("CREATED", None),
            ("UPDATED", "status"),
        ]

    async with SessionLocal() as session:
        with pytest.raises(NotFoundOrForbiddenError):
            await agreements.delete_agreement(session, agreement_id, other_id)
        await agreements.delete_agreement(session, agreement_id, org_id)

    async with SessionLocal() as session:
        assert await agreements.get_agreement(session, agreement_id, org_id) is None


@pytest.mark.asyncio
async def test_expiring_agreements_window() -> None:
    now = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        vendor = await factories.create_external_organization(session, org.id)
        soon = await factories.create_agreement(
            session, org.id, vendor.id, expiry_date=now + timedelta(days=10)
        )
        sooner = await factories.create_agreement(
            session, org.id, vendor.id, type="SCC", expiry_date=now + timedelta(days=2)
        )
        await factories.create_agreement(session, org.id, vendor.id, expiry_date=now + timedelta(days=60))
        await factories.create_agreement(session, org.id, vendor.id, expiry_date=now - timedelta(days=1))
        await factories.create_agreement(
            session, org.id, vendor.id, status="DRAFT", expiry_date=now + timedelta(days=5)
        )
        await factories.create_agreement(session, org.id, vendor.id)

        expiring = await agreements.get_expiring_agreements(session, org.id, now=now)
        assert [item.id for item in expiring] == [sooner.id, soon.id]
        wider = await agreements.get_expiring_agreements(session, org.id, 90, now=now)
        assert len(wider) == 3


@pytest.mark.asyncio
async def test_recipients_missing_required_agreements() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        vendor = await factories.create_external_organization(session, org.id, "Cloud Inc")
        partner = await factories.create_external_organization(session, org.id, "Partner SA")
        processor = await factories.create_recipient(
            session, org.id, name="Hosting", external_organization_id=vendor.id
        )
        joint = await factories.create_recipient(
            session, org.id, name="Co-controller", type="JOINT_CONTROLLER", external_organization_id=partner.id
        )
        await factories.create_recipient(session, org.id, name="Unlinked")
        await factories.create_recipient(
            session, org.id, name="Payroll", type="SERVICE_PROVIDER", external_organization_id=vendor.id
        )
        # A draft agreement does not satisfy the requirement.
        await factories.create_agreement(session, org.id, vendor.id, status="DRAFT")
        org_id, vendor_id, processor_id, joint_id = org.id, vendor.id, processor.id, joint.id

        missing = await recipients.find_recipients_missing_agreements(session, org_id)
        assert [(item.recipient.id, item.required_agreement_type) for item in missing] == [
            (processor_id, "DPA"),
            (joint_id, "JOINT_CONTROLLER_AGREEMENT"),
        ]
        warnings = await recipients.validate_required_agreements(session, processor_id, org_id)
        assert warnings == ["Recipient type PROCESSOR is missing required DPA agreement with Cloud Inc"]
        assert (await recipients.get_recipient_statistics(session, org_id)).missing_agreements == 2

        await factories.create_agreement(session, org_id, vendor_id)
        missing = await recipients.find_recipients_missing_agreements(session, org_id)
        assert [item.recipient.id for item in missing] == [joint_id]
        assert await recipients.validate_required_agreements(session, processor_id, org_id) == []


@pytest.mark.asyncio
async def test_missing_agreements_never_cross_tenants() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        vendor = await factories.create_external_organization(session, org.id)
        processor = await factories.create_recipient(session, org.id, external_organization_id=vendor.id)
        org_id, other_id, processor_id = org.id, other.id, processor.id

        assert await recipients.find_recipients_missing_agreements(session, other_id) == []
        with pytest.raises(NotFoundOrForbiddenError):
            await recipients.validate_required_agreements(session, processor_id, other_id)

        assert len(await recipients.find_recipients_missing_agreements(session, org_id)) == 1
        await recipients.update_recipient(
            session, processor_id, org_id, RecipientUpdate(type="SEPARATE_CONTROLLER")
        )
        assert await recipients.find_recipients_missing_agreements(session, org_id) == []


@pytest.mark.asyncio
async def test_deleting_external_organization_removes_its_agreements() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        vendor = await factories.create_external_organization(session, org.id)
        agreement = await factories.create_agreement(session, org.id, vendor.id)
        org_id, vendor_id, agreement_id = org.id, vendor.id, agreement.id

    async with SessionLocal() as session:
        await external_organizations.delete_external_organization(session, vendor_id, org_id)

    async with SessionLocal() as session:
        assert await agreements.get_agreement(session, agreement_id, org_id) is None
