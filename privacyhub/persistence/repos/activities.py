from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import ProcessingActivity
from privacyhub.domain.schemas import ProcessingActivityCreate, ProcessingActivityUpdate
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import get_owned, require_owned, tenant_predicate
from privacyhub.persistence.pagination import Page, paginate
from privacyhub.services.change_ledger import (
    ChangeContext,
    record_created,
    record_deleted,
    record_updated,
    snapshot,
)


COMPONENT_TYPE = "PROCESSING_ACTIVITY"


def _filters(
    organization_id: str,
    *,
    status: str | None,
    risk_level: str | None,
    requires_dpia: bool | None,
    is_active: bool | None,
    updated_since: datetime | None,
) -> list:
    # Named filters combine with AND.
    clauses = [tenant_predicate(ProcessingActivity, organization_id)]
    if status is not None:
        clauses.append(ProcessingActivity.status == status)
    if risk_level is not None:
        clauses.append(ProcessingActivity.risk_level == risk_level)
    if requires_dpia is not None:
        clauses.append(ProcessingActivity.requires_dpia.is_(requires_dpia))
    if is_active is not None:
        clauses.append(ProcessingActivity.is_active.is_(is_active))
    if updated_since is not None:
        clauses.append(ProcessingActivity.updated_at >= updated_since)
    return clauses


async def create_activity(
    session: AsyncSession,
    organization_id: str,
    data: ProcessingActivityCreate,
    context: ChangeContext | None = None,
) -> ProcessingActivity:
    async with atomic(session):
        activity = ProcessingActivity(organization_id=organization_id, **data.model_dump())
        session.add(activity)
        await session.flush()
        await record_created(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            row=activity,
            context=context,
        )
    return activity


async def get_activity(session: AsyncSession, activity_id: str, organization_id: str) -> ProcessingActivity | None:
    return await get_owned(session, ProcessingActivity, activity_id, organization_id)


async def list_activities(
    session: AsyncSession,
    organization_id: str,
    *,
    status: str | None = None,
    risk_level: str | None = None,
    requires_dpia: bool | None = None,
    is_active: bool | None = None,
    updated_since: datetime | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[ProcessingActivity]:
    stmt = select(ProcessingActivity).where(
        *_filters(
            organization_id,
            status=status,
            risk_level=risk_level,
            requires_dpia=requires_dpia,
            is_active=is_active,
            updated_since=updated_since,
        )
    )
    return await paginate(
        session,
        stmt,
        model=ProcessingActivity,
        scope="activities",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def count_activities(
    session: AsyncSession,
    organization_id: str,
    *,
    status: str | None = None,
    requires_dpia: bool | None = None,
) -> int:
    result = await session.execute(
        select(func.count(ProcessingActivity.id)).where(
            *_filters(
                organization_id,
                status=status,
                risk_level=None,
                requires_dpia=requires_dpia,
                is_active=None,
                updated_since=None,
            )
        )
    )
    return int(result.scalar_one())


async def update_activity(
    session: AsyncSession,
    activity_id: str,
    organization_id: str,
    data: ProcessingActivityUpdate,
    context: ChangeContext | None = None,
) -> ProcessingActivity:
    changes = data.changes()
    async with atomic(session):
        activity = await require_owned(session, ProcessingActivity, activity_id, organization_id)
        before = snapshot(COMPONENT_TYPE, activity)
        for name, value in changes.items():
            setattr(activity, name, value)
        await session.flush()
        await record_updated(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=activity.id,
            before=before,
            after=snapshot(COMPONENT_TYPE, activity),
            context=context,
        )
    return activity


async def delete_activity(
    session: AsyncSession, activity_id: str, organization_id: str, context: ChangeContext | None = None
) -> None:
    # Junction rows cascade; generated documents keep existing with a null activity link.
    async with atomic(session):
        activity = await require_owned(session, ProcessingActivity, activity_id, organization_id)
        before = snapshot(COMPONENT_TYPE, activity)
        await session.execute(
            delete(ProcessingActivity).where(
                ProcessingActivity.id == activity.id,
                tenant_predicate(ProcessingActivity, organization_id),
            )
        )
        await record_deleted(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=activity_id,
            before=before,
            context=context,
        )
