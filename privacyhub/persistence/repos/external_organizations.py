from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.domain.models import Country, ExternalOrganization
from privacyhub.domain.schemas import ExternalOrganizationCreate, ExternalOrganizationUpdate
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


COMPONENT_TYPE = "EXTERNAL_ORGANIZATION"


async def _require_country(session: AsyncSession, country_id: str | None) -> None:
    if country_id and await session.get(Country, country_id) is None:
        raise NotFoundOrForbiddenError("Country", country_id)


async def create_external_organization(
    session: AsyncSession,
    organization_id: str,
    data: ExternalOrganizationCreate,
    context: ChangeContext | None = None,
) -> ExternalOrganization:
    async with atomic(session):
        await _require_country(session, data.headquarters_country_id)
        row = ExternalOrganization(organization_id=organization_id, **data.model_dump())
        session.add(row)
        await session.flush()
        await record_created(
            session, organization_id=organization_id, component_type=COMPONENT_TYPE, row=row, context=context
        )
    return row


async def get_external_organization(
    session: AsyncSession, external_organization_id: str, organization_id: str
) -> ExternalOrganization | None:
    return await get_owned(session, ExternalOrganization, external_organization_id, organization_id)


async def list_external_organizations(
    session: AsyncSession,
    organization_id: str,
    *,
    is_active: bool | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[ExternalOrganization]:
    stmt = select(ExternalOrganization).where(tenant_predicate(ExternalOrganization, organization_id))
    if is_active is not None:
        stmt = stmt.where(ExternalOrganization.is_active.is_(is_active))
    return await paginate(
        session,
        stmt,
        model=ExternalOrganization,
        scope="external_organizations",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def update_external_organization(
    session: AsyncSession,
    external_organization_id: str,
    organization_id: str,
    data: ExternalOrganizationUpdate,
    context: ChangeContext | None = None,
) -> ExternalOrganization:
    changes = data.changes()
    async with atomic(session):
        row = await require_owned(session, ExternalOrganization, external_organization_id, organization_id)
        await _require_country(session, changes.get("headquarters_country_id"))
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


async def delete_external_organization(
    session: AsyncSession,
    external_organization_id: str,
    organization_id: str,
    context: ChangeContext | None = None,
) -> None:
    # Recipients linked to it keep existing and become unlinked (SET NULL).
    async with atomic(session):
        row = await require_owned(session, ExternalOrganization, external_organization_id, organization_id)
        before = snapshot(COMPONENT_TYPE, row)
        await session.execute(
            delete(ExternalOrganization).where(
                ExternalOrganization.id == row.id,
                tenant_predicate(ExternalOrganization, organization_id),
            )
        )
        await record_deleted(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=external_organization_id,
            before=before,
            context=context,
        )
