from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import Agreement, ExternalOrganization
from privacyhub.domain.schemas import AgreementCreate, AgreementUpdate
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import get_owned, require_organization_id, require_owned, tenant_predicate
from privacyhub.persistence.pagination import Page, paginate
from privacyhub.services.change_ledger import (
    ChangeContext,
    record_created,
    record_deleted,
    record_updated,
    snapshot,
)


COMPONENT_TYPE = "AGREEMENT"
STATUS_ACTIVE = "ACTIVE"
DEFAULT_EXPIRY_WINDOW_DAYS = 30


async def create_agreement(
    session: AsyncSession,
    organization_id: str,
    data: AgreementCreate,
    context: ChangeContext | None = None,
) -> Agreement:
    async with atomic(session):
        # The counterparty must belong to the same tenant as the agreement.
        await require_owned(session, ExternalOrganization, data.external_organization_id, organization_id)
        row = Agreement(organization_id=organization_id, **data.model_dump())
        session.add(row)
        await session.flush()
        await record_created(
            session, organization_id=organization_id, component_type=COMPONENT_TYPE, row=row, context=context
        )
    return row


async def get_agreement(session: AsyncSession, agreement_id: str, organization_id: str) -> Agreement | None:
    return await get_owned(session, Agreement, agreement_id, organization_id)


async def list_agreements(
    session: AsyncSession,
    organization_id: str,
    *,
    type: str | None = None,
    status: str | None = None,
    external_organization_id: str | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[Agreement]:
    stmt = select(Agreement).where(tenant_predicate(Agreement, organization_id))
    if type is not None:
        stmt = stmt.where(Agreement.type == type)
    if status is not None:
        stmt = stmt.where(Agreement.status == status)
    if external_organization_id is not None:
        stmt = stmt.where(Agreement.external_organization_id == external_organization_id)
    return await paginate(
        session,
        stmt,
        model=Agreement,
        scope="agreements",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def get_agreements_by_external_organization(
    session: AsyncSession,
    external_organization_id: str,
    organization_id: str,
    *,
    type: str | None = None,
    status: str | None = None,
) -> list[Agreement]:
    stmt = select(Agreement).where(
        tenant_predicate(Agreement, organization_id),
        Agreement.external_organization_id == external_organization_id,
    )
    if type is not None:
        stmt = stmt.where(Agreement.type == type)
    if status is not None:
        stmt = stmt.where(Agreement.status == status)
    result = await session.execute(stmt.order_by(Agreement.created_at.desc(), Agreement.id.desc()))
    return list(result.scalars().all())


async def get_expiring_agreements(
    session: AsyncSession,
    organization_id: str,
    days_threshold: int = DEFAULT_EXPIRY_WINDOW_DAYS,
    *,
    now: datetime | None = None,
) -> list[Agreement]:
    """Return active agreements whose expiry falls within the next ``days_threshold`` days.

    Agreements that already expired are left out; soonest expiry first.
    """
    require_organization_id(organization_id)
    start = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    end = start + timedelta(days=days_threshold)
    stmt = (
        select(Agreement)
        .where(
            tenant_predicate(Agreement, organization_id),
            Agreement.status == STATUS_ACTIVE,
            Agreement.expiry_date.is_not(None),
            Agreement.expiry_date >= start,
            Agreement.expiry_date <= end,
        )
        .order_by(Agreement.expiry_date, Agreement.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_agreement(
    session: AsyncSession,
    agreement_id: str,
    organization_id: str,
    data: AgreementUpdate,
    context: ChangeContext | None = None,
) -> Agreement:
    changes = data.changes()
    async with atomic(session):
        row = await require_owned(session, Agreement, agreement_id, organization_id)
        before = snapshot(COMPONENT_TYPE, row)
        for name, value in changes.items():
            setattr(row, name, value)
        await session.flush()
        await record_updated(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=row.id,
            before=before,
            after=snapshot(COMPONENT_TYPE, row),
            context=context,
        )
    return row


async def delete_agreement(
    session: AsyncSession, agreement_id: str, organization_id: str, context: ChangeContext | None = None
) -> None:
    async with atomic(session):
        row = await require_owned(session, Agreement, agreement_id, organization_id)
        before = snapshot(COMPONENT_TYPE, row)
        await session.execute(
            delete(Agreement).where(Agreement.id == row.id, tenant_predicate(Agreement, organization_id))
        )
        await record_deleted(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=agreement_id,
            before=before,
            context=context,
        )
