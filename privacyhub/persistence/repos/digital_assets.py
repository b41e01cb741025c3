from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import DigitalAsset
from privacyhub.domain.schemas import DigitalAssetCreate, DigitalAssetUpdate
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import get_owned, require_owned, tenant_predicate
from privacyhub.persistence.pagination import Page, paginate
from privacyhub.persistence.repos.processing_locations import ASSET_LOCATIONS, create_location
from privacyhub.services.change_ledger import (
    ChangeContext,
    record_created,
    record_deleted,
    record_updated,
    snapshot,
)


COMPONENT_TYPE = "DIGITAL_ASSET"


async def create_digital_asset(
    session: AsyncSession,
    organization_id: str,
    data: DigitalAssetCreate,
    context: ChangeContext | None = None,
) -> DigitalAsset:
    # Asset and all of its locations are written together or not at all.
    async with atomic(session):
        asset = DigitalAsset(organization_id=organization_id, **data.model_dump(exclude={"locations"}))
        session.add(asset)
        await session.flush()
        await record_created(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            row=asset,
            context=context,
        )
        for location in data.locations:
            await create_location(
                session,
                ASSET_LOCATIONS,
                asset.id,
                organization_id,
                location,
                context,
                commit=False,
            )
    return asset


async def get_digital_asset(session: AsyncSession, digital_asset_id: str, organization_id: str) -> DigitalAsset | None:
    return await get_owned(session, DigitalAsset, digital_asset_id, organization_id)


async def list_digital_assets(
    session: AsyncSession,
    organization_id: str,
    *,
    type: str | None = None,
    is_active: bool | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[DigitalAsset]:
    stmt = select(DigitalAsset).where(tenant_predicate(DigitalAsset, organization_id))
    if type is not None:
        stmt = stmt.where(DigitalAsset.type == type)
    if is_active is not None:
        stmt = stmt.where(DigitalAsset.is_active.is_(is_active))
    return await paginate(
        session,
        stmt,
        model=DigitalAsset,
        scope="digital_assets",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def update_digital_asset(
    session: AsyncSession,
    digital_asset_id: str,
    organization_id: str,
    data: DigitalAssetUpdate,
    context: ChangeContext | None = None,
) -> DigitalAsset:
    changes = data.changes()
    async with atomic(session):
        asset = await require_owned(session, DigitalAsset, digital_asset_id, organization_id)
        before = snapshot(COMPONENT_TYPE, asset)
        for name, value in changes.items():
            setattr(asset, name, value)
        await session.flush()
        await record_updated(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=asset.id,
            before=before,
            after=snapshot(COMPONENT_TYPE, asset),
            context=context,
        )
    return asset


async def delete_digital_asset(
    session: AsyncSession, digital_asset_id: str, organization_id: str, context: ChangeContext | None = None
) -> None:
    # Locations and activity links cascade with the asset.
    async with atomic(session):
        asset = await require_owned(session, DigitalAsset, digital_asset_id, organization_id)
        before = snapshot(COMPONENT_TYPE, asset)
        await session.execute(
            delete(DigitalAsset).where(
                DigitalAsset.id == asset.id, tenant_predicate(DigitalAsset, organization_id)
            )
        )
        await record_deleted(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=digital_asset_id,
            before=before,
            context=context,
        )
