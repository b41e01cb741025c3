from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.components import model_for, require_component_type
from privacyhub.domain.models import ComponentChangeLog
from privacyhub.persistence.guards import get_owned, require_organization_id, tenant_predicate
from privacyhub.persistence.pagination import Page, paginate


# Read side of the change ledger; writes go through services.change_ledger.


async def get_change_log(
    session: AsyncSession, change_log_id: str, organization_id: str
) -> ComponentChangeLog | None:
    return await get_owned(session, ComponentChangeLog, change_log_id, organization_id)


async def get_component_change_history(
    session: AsyncSession, component_type: str, component_id: str, organization_id: str
) -> list[ComponentChangeLog]:
    # Oldest first so callers can replay the component's history.
    require_organization_id(organization_id)
    stmt = (
        select(ComponentChangeLog)
        .where(
            tenant_predicate(ComponentChangeLog, organization_id),
            ComponentChangeLog.component_type == require_component_type(component_type),
            ComponentChangeLog.component_id == component_id,
        )
        .order_by(ComponentChangeLog.changed_at, ComponentChangeLog.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_recent_changes(
    session: AsyncSession, organization_id: str, limit: int = 50
) -> list[ComponentChangeLog]:
    require_organization_id(organization_id)
    stmt = (
        select(ComponentChangeLog)
        .where(tenant_predicate(ComponentChangeLog, organization_id))
        .order_by(ComponentChangeLog.changed_at.desc(), ComponentChangeLog.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_changes_for_user(
    session: AsyncSession,
    user_id: str,
    organization_id: str,
    *,
    component_type: str | None = None,
    limit: int = 100,
) -> list[ComponentChangeLog]:
    require_organization_id(organization_id)
    stmt = select(ComponentChangeLog).where(
        tenant_predicate(ComponentChangeLog, organization_id),
        ComponentChangeLog.changed_by_user_id == user_id,
    )
    if component_type is not None:
        stmt = stmt.where(ComponentChangeLog.component_type == require_component_type(component_type))
    result = await session.execute(
        stmt.order_by(ComponentChangeLog.changed_at.desc(), ComponentChangeLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def get_changes_by_component_type(
    session: AsyncSession,
    component_type: str,
    organization_id: str,
    *,
    change_type: str | None = None,
    limit: int = 100,
) -> list[ComponentChangeLog]:
    require_organization_id(organization_id)
    stmt = select(ComponentChangeLog).where(
        tenant_predicate(ComponentChangeLog, organization_id),
        ComponentChangeLog.component_type == require_component_type(component_type),
    )
    if change_type is not None:
        stmt = stmt.where(ComponentChangeLog.change_type == change_type)
    result = await session.execute(
        stmt.order_by(ComponentChangeLog.changed_at.desc(), ComponentChangeLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def list_change_logs(
    session: AsyncSession,
    organization_id: str,
    *,
    component_type: str | None = None,
    change_type: str | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[ComponentChangeLog]:
    require_organization_id(organization_id)
    stmt = select(ComponentChangeLog).where(tenant_predicate(ComponentChangeLog, organization_id))
    if component_type is not None:
        stmt = stmt.where(ComponentChangeLog.component_type == require_component_type(component_type))
    if change_type is not None:
        stmt = stmt.where(ComponentChangeLog.change_type == change_type)
    return await paginate(
        session,
        stmt,
        model=ComponentChangeLog,
        scope="change_logs",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
        sort_attr="changed_at",
    )


async def get_change_stats_by_type(session: AsyncSession, organization_id: str) -> dict[str, int]:
    require_organization_id(organization_id)
    stmt = (
        select(ComponentChangeLog.component_type, func.count(ComponentChangeLog.id))
        .where(tenant_predicate(ComponentChangeLog, organization_id))
        .group_by(ComponentChangeLog.component_type)
    )
    result = await session.execute(stmt)
    return {component_type: int(count) for component_type, count in result.all()}


async def resolve_component(session: AsyncSession, entry: ComponentChangeLog):
    # Follow the loose reference; None once the component has been deleted.
    model = model_for(entry.component_type)
    return await get_owned(session, model, entry.component_id, entry.organization_id)
