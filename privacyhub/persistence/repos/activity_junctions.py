from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import (
    ActivityDataCategory,
    ActivityDataSubject,
    ActivityDigitalAsset,
    ActivityPurpose,
    ActivityRecipient,
    DataCategory,
    DataSubjectCategory,
    DigitalAsset,
    ProcessingActivity,
    Purpose,
    Recipient,
)
from privacyhub.persistence.guards import get_owned, tenant_or_global_predicate, tenant_predicate
from privacyhub.services.relationship_sync import (
    JunctionSpec,
    SyncResult,
    link_relationships,
    list_related_ids,
    sync_relationships,
    unlink_relationship,
)


ACTIVITY_PURPOSES = JunctionSpec(
    name="activity_purposes",
    junction=ActivityPurpose,
    anchor_model=ProcessingActivity,
    anchor_column="activity_id",
    target_model=Purpose,
    target_column="purpose_id",
    allow_global_targets=True,
)
ACTIVITY_DATA_CATEGORIES = JunctionSpec(
    name="activity_data_categories",
    junction=ActivityDataCategory,
    anchor_model=ProcessingActivity,
    anchor_column="activity_id",
    target_model=DataCategory,
    target_column="data_category_id",
    allow_global_targets=True,
)
ACTIVITY_DATA_SUBJECTS = JunctionSpec(
    name="activity_data_subjects",
    junction=ActivityDataSubject,
    anchor_model=ProcessingActivity,
    anchor_column="activity_id",
    target_model=DataSubjectCategory,
    target_column="data_subject_category_id",
    allow_global_targets=True,
)
ACTIVITY_RECIPIENTS = JunctionSpec(
    name="activity_recipients",
    junction=ActivityRecipient,
    anchor_model=ProcessingActivity,
    anchor_column="activity_id",
    target_model=Recipient,
    target_column="recipient_id",
)
ACTIVITY_DIGITAL_ASSETS = JunctionSpec(
    name="activity_digital_assets",
    junction=ActivityDigitalAsset,
    anchor_model=ProcessingActivity,
    anchor_column="activity_id",
    target_model=DigitalAsset,
    target_column="digital_asset_id",
)

JUNCTIONS: dict[str, JunctionSpec] = {
    "purposes": ACTIVITY_PURPOSES,
    "data-categories": ACTIVITY_DATA_CATEGORIES,
    "data-subjects": ACTIVITY_DATA_SUBJECTS,
    "recipients": ACTIVITY_RECIPIENTS,
    "digital-assets": ACTIVITY_DIGITAL_ASSETS,
}


@dataclass
class ActivityWithComponents:
    activity: ProcessingActivity
    purposes: list[Purpose] = field(default_factory=list)
    data_categories: list[DataCategory] = field(default_factory=list)
    data_subjects: list[DataSubjectCategory] = field(default_factory=list)
    recipients: list[Recipient] = field(default_factory=list)
    digital_assets: list[DigitalAsset] = field(default_factory=list)


async def sync_activity_purposes(
    session: AsyncSession, activity_id: str, organization_id: str, purpose_ids: Iterable[str]
) -> SyncResult:
    return await sync_relationships(session, ACTIVITY_PURPOSES, activity_id, organization_id, purpose_ids)


async def sync_activity_data_categories(
    session: AsyncSession, activity_id: str, organization_id: str, data_category_ids: Iterable[str]
) -> SyncResult:
    return await sync_relationships(
        session, ACTIVITY_DATA_CATEGORIES, activity_id, organization_id, data_category_ids
    )


async def sync_activity_data_subjects(
    session: AsyncSession, activity_id: str, organization_id: str, data_subject_ids: Iterable[str]
) -> SyncResult:
    return await sync_relationships(
        session, ACTIVITY_DATA_SUBJECTS, activity_id, organization_id, data_subject_ids
    )


async def sync_activity_recipients(
    session: AsyncSession, activity_id: str, organization_id: str, recipient_ids: Iterable[str]
) -> SyncResult:
    return await sync_relationships(session, ACTIVITY_RECIPIENTS, activity_id, organization_id, recipient_ids)


async def sync_activity_digital_assets(
    session: AsyncSession, activity_id: str, organization_id: str, digital_asset_ids: Iterable[str]
) -> SyncResult:
    return await sync_relationships(
        session, ACTIVITY_DIGITAL_ASSETS, activity_id, organization_id, digital_asset_ids
    )


async def link_activity_to_purposes(
    session: AsyncSession, activity_id: str, organization_id: str, purpose_ids: Iterable[str]
) -> list[str]:
    return await link_relationships(session, ACTIVITY_PURPOSES, activity_id, organization_id, purpose_ids)


async def link_activity_to_data_categories(
    session: AsyncSession, activity_id: str, organization_id: str, data_category_ids: Iterable[str]
) -> list[str]:
    return await link_relationships(
        session, ACTIVITY_DATA_CATEGORIES, activity_id, organization_id, data_category_ids
    )


async def link_activity_to_data_subjects(
    session: AsyncSession, activity_id: str, organization_id: str, data_subject_ids: Iterable[str]
) -> list[str]:
    return await link_relationships(
        session, ACTIVITY_DATA_SUBJECTS, activity_id, organization_id, data_subject_ids
    )


async def link_activity_to_recipients(
    session: AsyncSession, activity_id: str, organization_id: str, recipient_ids: Iterable[str]
) -> list[str]:
    return await link_relationships(session, ACTIVITY_RECIPIENTS, activity_id, organization_id, recipient_ids)


async def link_activity_to_digital_assets(
    session: AsyncSession, activity_id: str, organization_id: str, digital_asset_ids: Iterable[str]
) -> list[str]:
    return await link_relationships(
        session, ACTIVITY_DIGITAL_ASSETS, activity_id, organization_id, digital_asset_ids
    )


async def unlink_activity_from_purpose(
    session: AsyncSession, activity_id: str, organization_id: str, purpose_id: str
) -> bool:
    return await unlink_relationship(session, ACTIVITY_PURPOSES, activity_id, organization_id, purpose_id)


async def unlink_activity_from_data_category(
    session: AsyncSession, activity_id: str, organization_id: str, data_category_id: str
) -> bool:
    return await unlink_relationship(
        session, ACTIVITY_DATA_CATEGORIES, activity_id, organization_id, data_category_id
    )


async def unlink_activity_from_data_subject(
    session: AsyncSession, activity_id: str, organization_id: str, data_subject_id: str
) -> bool:
    return await unlink_relationship(
        session, ACTIVITY_DATA_SUBJECTS, activity_id, organization_id, data_subject_id
    )


async def unlink_activity_from_recipient(
    session: AsyncSession, activity_id: str, organization_id: str, recipient_id: str
) -> bool:
    return await unlink_relationship(session, ACTIVITY_RECIPIENTS, activity_id, organization_id, recipient_id)


async def unlink_activity_from_digital_asset(
    session: AsyncSession, activity_id: str, organization_id: str, digital_asset_id: str
) -> bool:
    return await unlink_relationship(
        session, ACTIVITY_DIGITAL_ASSETS, activity_id, organization_id, digital_asset_id
    )


async def list_activity_related_ids(
    session: AsyncSession, spec: JunctionSpec, activity_id: str, organization_id: str
) -> list[str]:
    return await list_related_ids(session, spec, activity_id, organization_id)


async def _related(session: AsyncSession, spec: JunctionSpec, activity_id: str, organization_id: str) -> list:
    # Join through the junction and re-apply tenant scoping on the target side.
    target = spec.target_model
    predicate = (
        tenant_or_global_predicate(target, organization_id)
        if spec.allow_global_targets
        else tenant_predicate(target, organization_id)
    )
    result = await session.execute(
        select(target)
        .join(spec.junction, spec.target_attr() == target.id)
        .where(spec.anchor_attr() == activity_id, predicate)
        .order_by(target.name, target.id)
    )
    return list(result.scalars().all())


async def get_activity_with_components(
    session: AsyncSession, activity_id: str, organization_id: str
) -> ActivityWithComponents | None:
    activity = await get_owned(session, ProcessingActivity, activity_id, organization_id)
    if activity is None:
        return None
    return ActivityWithComponents(
        activity=activity,
        purposes=await _related(session, ACTIVITY_PURPOSES, activity.id, organization_id),
        data_categories=await _related(session, ACTIVITY_DATA_CATEGORIES, activity.id, organization_id),
        data_subjects=await _related(session, ACTIVITY_DATA_SUBJECTS, activity.id, organization_id),
        recipients=await _related(session, ACTIVITY_RECIPIENTS, activity.id, organization_id),
        digital_assets=await _related(session, ACTIVITY_DIGITAL_ASSETS, activity.id, organization_id),
    )
