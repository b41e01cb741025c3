from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.domain.models import (
    AssetProcessingLocation,
    Country,
    DigitalAsset,
    Purpose,
    Recipient,
    RecipientProcessingLocation,
    TransferMechanism,
)
from privacyhub.domain.schemas import ProcessingLocationCreate, ProcessingLocationUpdate
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import get_owned, require_owned, tenant_predicate
from privacyhub.services.change_ledger import (
    ChangeContext,
    record_created,
    record_updated,
    snapshot,
)
from privacyhub.services.geography import get_home_country, validate_transfer_mechanism_requirement
from privacyhub.services.hierarchy import RECIPIENT_HIERARCHY, get_ancestor_chain


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationKind:
    # Asset and recipient locations share one lifecycle, keyed by their owner column.
    model: Any
    owner_model: Any
    owner_attr: str
    component_type: str
    label: str


ASSET_LOCATIONS = LocationKind(
    AssetProcessingLocation, DigitalAsset, "digital_asset_id", "ASSET_PROCESSING_LOCATION", "AssetProcessingLocation"
)
RECIPIENT_LOCATIONS = LocationKind(
    RecipientProcessingLocation,
    Recipient,
    "recipient_id",
    "RECIPIENT_PROCESSING_LOCATION",
    "RecipientProcessingLocation",
)


@dataclass(frozen=True)
class ChainLocations:
    recipient: Recipient
    # 0 = the requested recipient, 1 = its parent, ...
    depth: int
    locations: list[RecipientProcessingLocation]


async def _require_country(session: AsyncSession, country_id: str) -> Country:
    country = await session.get(Country, country_id)
    if country is None:
        raise NotFoundOrForbiddenError("Country", country_id)
    return country


async def _validate_references(
    session: AsyncSession,
    organization_id: str,
    *,
    country_id: str,
    transfer_mechanism_id: str | None,
    purpose_id: str | None,
) -> None:
    # Mechanism rule first, against the organization's home country.
    country = await _require_country(session, country_id)
    home = await get_home_country(session, organization_id)
    if home is not None:
        validate_transfer_mechanism_requirement(home, country, transfer_mechanism_id)
    if transfer_mechanism_id and await session.get(TransferMechanism, transfer_mechanism_id) is None:
        raise NotFoundOrForbiddenError("TransferMechanism", transfer_mechanism_id)
    if purpose_id:
        await require_owned(session, Purpose, purpose_id, organization_id, allow_global=True)


async def create_location(
    session: AsyncSession,
    kind: LocationKind,
    owner_id: str,
    organization_id: str,
    data: ProcessingLocationCreate,
    context: ChangeContext | None = None,
    *,
    commit: bool = True,
):
    async with atomic(session, commit=commit):
        await require_owned(session, kind.owner_model, owner_id, organization_id)
        await _validate_references(
            session,
            organization_id,
            country_id=data.country_id,
            transfer_mechanism_id=data.transfer_mechanism_id,
            purpose_id=data.purpose_id,
        )
        location = kind.model(organization_id=organization_id, **{kind.owner_attr: owner_id}, **data.model_dump())
        session.add(location)
        await session.flush()
        await record_created(
            session,
            organization_id=organization_id,
            component_type=kind.component_type,
            row=location,
            context=context,
        )
    return location


async def get_location(session: AsyncSession, kind: LocationKind, location_id: str, organization_id: str):
    return await get_owned(session, kind.model, location_id, organization_id)


async def list_locations(
    session: AsyncSession,
    kind: LocationKind,
    owner_id: str,
    organization_id: str,
    *,
    include_inactive: bool = False,
) -> list[Any]:
    model = kind.model
    stmt = select(model).where(
        getattr(model, kind.owner_attr) == owner_id,
        tenant_predicate(model, organization_id),
    )
    if not include_inactive:
        stmt = stmt.where(model.is_active.is_(True))
    result = await session.execute(stmt.order_by(model.created_at, model.id))
    return list(result.scalars().all())


async def update_location(
    session: AsyncSession,
    kind: LocationKind,
    location_id: str,
    organization_id: str,
    data: ProcessingLocationUpdate,
    context: ChangeContext | None = None,
):
    changes = data.changes()
    async with atomic(session):
        location = await require_owned(session, kind.model, location_id, organization_id, label=kind.label)
        # Re-check the mechanism rule whenever the geography or safeguard moves.
        if {"country_id", "transfer_mechanism_id", "purpose_id"} & changes.keys():
            await _validate_references(
                session,
                organization_id,
                country_id=changes.get("country_id", location.country_id),
                transfer_mechanism_id=changes.get("transfer_mechanism_id", location.transfer_mechanism_id),
                purpose_id=changes.get("purpose_id"),
            )
        before = snapshot(kind.component_type, location)
        for name, value in changes.items():
            setattr(location, name, value)
        await session.flush()
        await record_updated(
            session,
            organization_id=organization_id,
            component_type=kind.component_type,
            component_id=location.id,
            before=before,
            after=snapshot(kind.component_type, location),
            context=context,
        )
    return location


async def _deactivate(
    session: AsyncSession,
    kind: LocationKind,
    location,
    organization_id: str,
    context: ChangeContext | None,
) -> None:
    before = snapshot(kind.component_type, location)
    location.is_active = False
    await session.flush()
    await record_updated(
        session,
        organization_id=organization_id,
        component_type=kind.component_type,
        component_id=location.id,
        before=before,
        after=snapshot(kind.component_type, location),
        context=context,
    )


async def deactivate_location(
    session: AsyncSession,
    kind: LocationKind,
    location_id: str,
    organization_id: str,
    context: ChangeContext | None = None,
):
    # Soft deactivate; the row stays for history and drops out of transfer derivation.
    async with atomic(session):
        location = await require_owned(session, kind.model, location_id, organization_id, label=kind.label)
        if location.is_active:
            await _deactivate(session, kind, location, organization_id, context)
    return location


async def move_location(
    session: AsyncSession,
    kind: LocationKind,
    location_id: str,
    organization_id: str,
    *,
    country_id: str,
    transfer_mechanism_id: str | None = None,
    location_role: str | None = None,
    context: ChangeContext | None = None,
):
    """Move a location to another country as a single unit of work.

    A new location is created (with the mechanism rule checked against the
    new country) and the old one deactivated. Either both happen or neither.
    Returns ``(new_location, old_location)``.
    """
    async with atomic(session):
        old = await require_owned(
            session, kind.model, location_id, organization_id, label=kind.label, for_update=True
        )
        if not old.is_active:
            raise NotFoundOrForbiddenError(kind.label, location_id)
        data = ProcessingLocationCreate(
            service=old.service,
            country_id=country_id,
            location_role=location_role or old.location_role,
            purpose_id=old.purpose_id,
            purpose_text=old.purpose_text,
            transfer_mechanism_id=transfer_mechanism_id,
            metadata_json=old.metadata_json,
        )
        new = await create_location(
            session,
            kind,
            getattr(old, kind.owner_attr),
            organization_id,
            data,
            context,
            commit=False,
        )
        await _deactivate(session, kind, old, organization_id, context)
    logger.info(
        "processing_location_moved kind=%s old=%s new=%s country_id=%s",
        kind.component_type,
        old.id,
        new.id,
        country_id,
    )
    return new, old


async def get_locations_by_country(
    session: AsyncSession,
    kind: LocationKind,
    organization_id: str,
    country_id: str,
    *,
    include_inactive: bool = False,
) -> list[Any]:
    model = kind.model
    stmt = select(model).where(tenant_predicate(model, organization_id), model.country_id == country_id)
    if not include_inactive:
        stmt = stmt.where(model.is_active.is_(True))
    result = await session.execute(stmt.order_by(model.created_at, model.id))
    return list(result.scalars().all())


async def get_recipient_locations_with_parent_chain(
    session: AsyncSession, recipient_id: str, organization_id: str
) -> list[ChainLocations]:
    # The recipient's own active locations followed by each ancestor's.
    recipient = await require_owned(session, Recipient, recipient_id, organization_id)
    chain = [recipient, *await get_ancestor_chain(session, RECIPIENT_HIERARCHY, recipient.id, organization_id)]
    entries = []
    for depth, node in enumerate(chain):
        locations = await list_locations(session, RECIPIENT_LOCATIONS, node.id, organization_id)
        entries.append(ChainLocations(recipient=node, depth=depth, locations=locations))
    return entries


async def create_asset_location(
    session: AsyncSession,
    digital_asset_id: str,
    organization_id: str,
    data: ProcessingLocationCreate,
    context: ChangeContext | None = None,
) -> AssetProcessingLocation:
    return await create_location(session, ASSET_LOCATIONS, digital_asset_id, organization_id, data, context)


async def create_recipient_location(
    session: AsyncSession,
    recipient_id: str,
    organization_id: str,
    data: ProcessingLocationCreate,
    context: ChangeContext | None = None,
) -> RecipientProcessingLocation:
    return await create_location(session, RECIPIENT_LOCATIONS, recipient_id, organization_id, data, context)
