from __future__ import annotations

import pytest
from sqlalchemy import select

from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.domain.models import ActivityPurpose
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import activity_junctions, catalog
from privacyhub.tests.utils import factories


async def _purpose_ids(activity_id: str) -> set[str]:
    # Read through a fresh session so identity-map state cannot mask the store.
    async with SessionLocal() as session:
        result = await session.execute(
            select(ActivityPurpose.purpose_id).where(ActivityPurpose.activity_id == activity_id)
        )
        return set(result.scalars().all())


@pytest.mark.asyncio
async def test_sync_writes_only_the_difference() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        p1 = await factories.create_purpose(session, org.id, "Billing")
        p2 = await factories.create_purpose(session, org.id, "Support")
        p3 = await factories.create_purpose(session, org.id, "Marketing")
        org_id, activity_id = org.id, activity.id

        first = await activity_junctions.sync_activity_purposes(session, activity_id, org_id, [p1.id, p2.id])
        assert set(first.added) == {p1.id, p2.id}
        assert first.removed == ()

        second = await activity_junctions.sync_activity_purposes(session, activity_id, org_id, [p2.id, p3.id])
        assert second.added == (p3.id,)
        assert second.removed == (p1.id,)

    assert await _purpose_ids(activity_id) == {p2.id, p3.id}


@pytest.mark.asyncio
async def test_sync_is_idempotent() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        purpose = await factories.create_purpose(session, org.id)
        await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [purpose.id])
        again = await activity_junctions.sync_activity_purposes(
            session, activity.id, org.id, [purpose.id, purpose.id]
        )
    assert not again.changed
    assert await _purpose_ids(activity.id) == {purpose.id}


@pytest.mark.asyncio
async def test_sync_with_empty_list_clears_the_set() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        purpose = await factories.create_purpose(session, org.id)
        await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [purpose.id])
        result = await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [])
    assert result.removed == (purpose.id,)
    assert await _purpose_ids(activity.id) == set()


@pytest.mark.asyncio
async def test_sync_rejects_foreign_targets_and_keeps_existing_set() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        mine = await factories.create_purpose(session, org.id)
        theirs = await factories.create_purpose(session, other.id)
        org_id, activity_id, mine_id, theirs_id = org.id, activity.id, mine.id, theirs.id
        await activity_junctions.sync_activity_purposes(session, activity_id, org_id, [mine_id])

        with pytest.raises(NotFoundOrForbiddenError) as excinfo:
            await activity_junctions.sync_activity_purposes(session, activity_id, org_id, [theirs_id])
    assert str(excinfo.value) == (
        f"Purpose with id {theirs_id} not found or does not belong to organization"
    )
    assert await _purpose_ids(activity_id) == {mine_id}


@pytest.mark.asyncio
async def test_sync_rejects_unknown_target_without_partial_writes() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        purpose = await factories.create_purpose(session, org.id)
        org_id, activity_id, purpose_id = org.id, activity.id, purpose.id
        with pytest.raises(NotFoundOrForbiddenError):
            await activity_junctions.sync_activity_purposes(
                session, activity_id, org_id, [purpose_id, "missing-purpose"]
            )
    assert await _purpose_ids(activity_id) == set()


@pytest.mark.asyncio
async def test_foreign_anchor_reads_as_not_found() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        other_id, activity_id = other.id, activity.id
        with pytest.raises(NotFoundOrForbiddenError) as excinfo:
            await activity_junctions.sync_activity_purposes(session, activity_id, other_id, [])
        assert str(excinfo.value) == (
            f"DataProcessingActivity with id {activity_id} not found or does not belong to organization"
        )
        with pytest.raises(NotFoundOrForbiddenError):
            await activity_junctions.list_activity_related_ids(
                session, activity_junctions.ACTIVITY_PURPOSES, activity_id, other_id
            )


@pytest.mark.asyncio
async def test_system_catalog_entries_can_be_linked_by_any_tenant() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        template = await catalog.create_system_entry(session, catalog.PURPOSES, name="Legal obligation")
        result = await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [template.id])
    assert result.added == (template.id,)


@pytest.mark.asyncio
async def test_link_is_additive_and_idempotent() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        first = await factories.create_recipient(session, org.id, name="Cloud")
        second = await factories.create_recipient(session, org.id, name="Mail")

        added = await activity_junctions.link_activity_to_recipients(session, activity.id, org.id, [first.id])
        assert added == [first.id]
        added = await activity_junctions.link_activity_to_recipients(
            session, activity.id, org.id, [first.id, second.id]
        )
        assert added == [second.id]
        related = await activity_junctions.list_activity_related_ids(
            session, activity_junctions.ACTIVITY_RECIPIENTS, activity.id, org.id
        )
    assert set(related) == {first.id, second.id}


@pytest.mark.asyncio
async def test_unlink_missing_pair_is_a_no_op() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        category = await factories.create_data_category(session, org.id)
        await activity_junctions.link_activity_to_data_categories(session, activity.id, org.id, [category.id])

        assert await activity_junctions.unlink_activity_from_data_category(
            session, activity.id, org.id, category.id
        )
        assert not await activity_junctions.unlink_activity_from_data_category(
            session, activity.id, org.id, category.id
        )


@pytest.mark.asyncio
async def test_activity_with_components_groups_every_relation() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        activity = await factories.create_activity(session, org.id)
        purpose = await factories.create_purpose(session, org.id)
        subject = await factories.create_data_subject(session, org.id)
        recipient = await factories.create_recipient(session, org.id)
        await activity_junctions.sync_activity_purposes(session, activity.id, org.id, [purpose.id])
        await activity_junctions.sync_activity_data_subjects(session, activity.id, org.id, [subject.id])
        await activity_junctions.sync_activity_recipients(session, activity.id, org.id, [recipient.id])

        bundle = await activity_junctions.get_activity_with_components(session, activity.id, org.id)
        assert bundle is not None
        assert [row.id for row in bundle.purposes] == [purpose.id]
        assert [row.id for row in bundle.data_subjects] == [subject.id]
        assert [row.id for row in bundle.recipients] == [recipient.id]
        assert bundle.data_categories == []
        assert bundle.digital_assets == []

        assert await activity_junctions.get_activity_with_components(session, activity.id, other.id) is None
