from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.domain.models import Country, Organization
from privacyhub.domain.schemas import OrganizationCreate, OrganizationUpdate
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import require_organization_id
from privacyhub.persistence.pagination import Page, paginate


async def _require_country(session: AsyncSession, country_id: str | None) -> None:
    if country_id is None:
        return
    if await session.get(Country, country_id) is None:
        raise NotFoundOrForbiddenError("Country", country_id)


async def create_organization(session: AsyncSession, data: OrganizationCreate) -> Organization:
    # Slug uniqueness is enforced by the store and surfaces as a constraint violation.
    async with atomic(session):
        await _require_country(session, data.home_country_id)
        organization = Organization(**data.model_dump())
        session.add(organization)
    return organization


async def get_organization(
    session: AsyncSession, organization_id: str, *, include_deleted: bool = False
) -> Organization | None:
    require_organization_id(organization_id)
    stmt = select(Organization).where(Organization.id == organization_id)
    if not include_deleted:
        stmt = stmt.where(Organization.deleted_at.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_organization_by_slug(session: AsyncSession, slug: str) -> Organization | None:
    result = await session.execute(
        select(Organization).where(Organization.slug == slug, Organization.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def list_organizations(
    session: AsyncSession,
    *,
    status: str | None = None,
    include_deleted: bool = False,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[Organization]:
    # Operator listing across tenants; never exposed through tenant-scoped routes.
    stmt = select(Organization)
    if status is not None:
        stmt = stmt.where(Organization.status == status)
    if not include_deleted:
        stmt = stmt.where(Organization.deleted_at.is_(None))
    return await paginate(
        session,
        stmt,
        model=Organization,
        scope="organizations",
        organization_id="*",
        cursor=cursor,
        limit=limit,
    )


async def update_organization(
    session: AsyncSession, organization_id: str, data: OrganizationUpdate
) -> Organization:
    changes = data.changes()
    async with atomic(session):
        organization = await get_organization(session, organization_id)
        if organization is None:
            raise NotFoundOrForbiddenError("Organization", organization_id)
        if changes.get("home_country_id"):
            await _require_country(session, changes["home_country_id"])
        for name, value in changes.items():
            setattr(organization, name, value)
    return organization


async def soft_delete_organization(session: AsyncSession, organization_id: str) -> Organization:
    async with atomic(session):
        organization = await get_organization(session, organization_id)
        if organization is None:
            raise NotFoundOrForbiddenError("Organization", organization_id)
        organization.deleted_at = datetime.now(timezone.utc)
        organization.status = "deleted"
    return organization


async def restore_organization(session: AsyncSession, organization_id: str) -> Organization:
    async with atomic(session):
        organization = await get_organization(session, organization_id, include_deleted=True)
        if organization is None or organization.deleted_at is None:
            raise NotFoundOrForbiddenError("Organization", organization_id)
        organization.deleted_at = None
        organization.status = "active"
    return organization


async def delete_organization(session: AsyncSession, organization_id: str) -> None:
    # Hard delete; every owned row goes with it through ON DELETE CASCADE.
    require_organization_id(organization_id)
    async with atomic(session):
        result = await session.execute(delete(Organization).where(Organization.id == organization_id))
        if not result.rowcount:
            raise NotFoundOrForbiddenError("Organization", organization_id)
