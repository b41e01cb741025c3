from __future__ import annotations

import pytest
from sqlalchemy import func, select

from privacyhub.core.errors import ConstraintViolationError, NotFoundOrForbiddenError
from privacyhub.domain.models import ActivityPurpose, ComponentChangeLog, Purpose, Recipient
from privacyhub.domain.schemas import OrganizationCreate, ProcessingActivityUpdate, PurposeUpdate
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import activities, activity_junctions, catalog, organizations, recipients
from privacyhub.tests.utils import factories


@pytest.mark.asyncio
async def test_reads_never_cross_organizations() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        recipient = await factories.create_recipient(session, org.id)
        await factories.create_activity(session, other.id, name="Theirs")

        assert await activities.get_activity(session, activity.id, other.id) is None
        assert await recipients.get_recipient(session, recipient.id, other.id) is None
        assert await activity_junctions.get_activity_with_components(session, activity.id, other.id) is None

        page = await activities.list_activities(session, other.id)
        assert [item.name for item in page.items] == ["Theirs"]
        assert await activities.count_activities(session, org.id) == 1


@pytest.mark.asyncio
async def test_writes_against_foreign_rows_read_as_not_found() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id, name="Payroll")
        org_id, other_id, activity_id = org.id, other.id, activity.id

        with pytest.raises(NotFoundOrForbiddenError) as update_error:
            await activities.update_activity(
                session, activity_id, other_id, ProcessingActivityUpdate(name="Hijacked")
            )
        with pytest.raises(NotFoundOrForbiddenError) as missing_error:
            await activities.update_activity(
                session, "does-not-exist", other_id, ProcessingActivityUpdate(name="Hijacked")
            )
        with pytest.raises(NotFoundOrForbiddenError):
            await activities.delete_activity(session, activity_id, other_id)

    # Foreign and missing ids produce the same message shape.
    assert str(update_error.value).endswith("not found or does not belong to organization")
    assert str(missing_error.value).endswith("not found or does not belong to organization")

    async with SessionLocal() as session:
        stored = await activities.get_activity(session, activity_id, org_id)
        assert stored is not None
        assert stored.name == "Payroll"


@pytest.mark.asyncio
async def test_system_entries_are_visible_but_read_only() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        template = await catalog.create_system_entry(session, catalog.PURPOSES, name="Contract performance")
        own = await factories.create_purpose(session, org.id, "Newsletter")
        org_id, template_id = org.id, template.id

        visible = await catalog.list_purposes(session, org_id)
        assert {item.id for item in visible.items} == {template_id, own.id}
        own_only = await catalog.list_purposes(session, org_id, include_system=False)
        assert [item.id for item in own_only.items] == [own.id]
        assert await catalog.get_purpose(session, template_id, org_id) is not None

        with pytest.raises(NotFoundOrForbiddenError):
            await catalog.update_purpose(session, template_id, org_id, PurposeUpdate(name="Renamed"))


@pytest.mark.asyncio
async def test_duplicate_slug_is_a_constraint_violation() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        slug = org.slug
        with pytest.raises(ConstraintViolationError):
            await organizations.create_organization(session, OrganizationCreate(name="Copy", slug=slug))


@pytest.mark.asyncio
async def test_soft_deleted_organization_is_hidden_until_restored() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        org_id = org.id
        await organizations.soft_delete_organization(session, org_id)
        assert await organizations.get_organization(session, org_id) is None
        assert await organizations.get_organization(session, org_id, include_deleted=True) is not None

        restored = await organizations.restore_organization(session, org_id)
        assert restored.deleted_at is None
        assert restored.status == "active"


@pytest.mark.asyncio
async def test_hard_delete_cascades_to_owned_rows() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        survivor = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        purpose = await factories.create_purpose(session, org.id)
        root = await factories.create_recipient(session, org.id, name="Root")
        await factories.create_recipient(
            session, org.id, name="Child", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [purpose.id])
        await factories.create_recipient(session, survivor.id, name="Kept")
        org_id, survivor_id = org.id, survivor.id

        await organizations.delete_organization(session, org_id)

    async with SessionLocal() as session:
        assert await organizations.get_organization(session, org_id, include_deleted=True) is None
        for model in (Purpose, Recipient, ComponentChangeLog):
            count = await session.execute(
                select(func.count()).select_from(model).where(model.organization_id == org_id)
            )
            assert count.scalar_one() == 0
        junctions = await session.execute(select(func.count()).select_from(ActivityPurpose))
        assert junctions.scalar_one() == 0
        kept = await recipients.list_recipients(session, survivor_id)
        assert [item.name for item in kept.items] == ["Kept"]

        with pytest.raises(NotFoundOrForbiddenError):
            await organizations.delete_organization(session, org_id)
