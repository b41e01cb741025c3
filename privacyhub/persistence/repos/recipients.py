from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import (
    Agreement,
    Country,
    ExternalOrganization,
    Recipient,
    RecipientProcessingLocation,
)
from privacyhub.domain.schemas import RecipientCreate, RecipientUpdate
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import get_owned, require_owned, tenant_predicate
from privacyhub.persistence.pagination import Page, paginate
from privacyhub.persistence.repos.agreements import STATUS_ACTIVE
from privacyhub.services import hierarchy
from privacyhub.services.change_ledger import (
    ChangeContext,
    record_created,
    record_deleted,
    record_updated,
    snapshot,
)
from privacyhub.services.geography import is_third_country


COMPONENT_TYPE = "RECIPIENT"
SPEC = hierarchy.RECIPIENT_HIERARCHY


@dataclass
class RecipientStatistics:
    total: int = 0
    active: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    with_parent: int = 0
    orphaned: int = 0
    unlinked: int = 0
    missing_agreements: int = 0


@dataclass(frozen=True)
class RecipientMissingAgreement:
    recipient: Recipient
    required_agreement_type: str


async def _require_external_organization(
    session: AsyncSession, external_organization_id: str | None, organization_id: str
) -> None:
    # Linked external organizations must belong to the same tenant.
    if external_organization_id:
        await require_owned(session, ExternalOrganization, external_organization_id, organization_id)


async def create_recipient(
    session: AsyncSession,
    organization_id: str,
    data: RecipientCreate,
    context: ChangeContext | None = None,
) -> Recipient:
    async with atomic(session):
        await _require_external_organization(session, data.external_organization_id, organization_id)
        # Parent rules are enforced before the row exists.
        await hierarchy.validate_parent_assignment(
            session,
            SPEC,
            node_type=data.type,
            parent_id=data.parent_recipient_id,
            organization_id=organization_id,
        )
        recipient = Recipient(
            organization_id=organization_id,
            hierarchy_type=hierarchy.hierarchy_type_for(SPEC, data.type),
            **data.model_dump(),
        )
        session.add(recipient)
        await session.flush()
        await record_created(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            row=recipient,
            context=context,
        )
    return recipient


async def get_recipient(session: AsyncSession, recipient_id: str, organization_id: str) -> Recipient | None:
    return await get_owned(session, Recipient, recipient_id, organization_id)


async def list_recipients(
    session: AsyncSession,
    organization_id: str,
    *,
    type: str | None = None,
    is_active: bool | None = None,
    parent_recipient_id: str | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[Recipient]:
    stmt = select(Recipient).where(tenant_predicate(Recipient, organization_id))
    if type is not None:
        stmt = stmt.where(Recipient.type == type)
    if is_active is not None:
        stmt = stmt.where(Recipient.is_active.is_(is_active))
    if parent_recipient_id is not None:
        stmt = stmt.where(Recipient.parent_recipient_id == parent_recipient_id)
    return await paginate(
        session,
        stmt,
        model=Recipient,
        scope="recipients",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def update_recipient(
    session: AsyncSession,
    recipient_id: str,
    organization_id: str,
    data: RecipientUpdate,
    context: ChangeContext | None = None,
) -> Recipient:
    changes = data.changes()
    async with atomic(session):
        recipient = await require_owned(session, Recipient, recipient_id, organization_id, for_update=True)
        if "external_organization_id" in changes:
            await _require_external_organization(
                session, changes["external_organization_id"], organization_id
            )
        node_type = changes.get("type", recipient.type)
        parent_id = changes.get("parent_recipient_id", recipient.parent_recipient_id)
        if "type" in changes or "parent_recipient_id" in changes:
            await hierarchy.validate_parent_assignment(
                session,
                SPEC,
                node_type=node_type,
                parent_id=parent_id,
                organization_id=organization_id,
                node_id=recipient.id,
            )
            changes["hierarchy_type"] = hierarchy.hierarchy_type_for(SPEC, node_type)
        before = snapshot(COMPONENT_TYPE, recipient)
        for name, value in changes.items():
            setattr(recipient, name, value)
        await session.flush()
        await record_updated(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=recipient.id,
            before=before,
            after=snapshot(COMPONENT_TYPE, recipient),
            context=context,
        )
    return recipient


async def deactivate_recipient(
    session: AsyncSession, recipient_id: str, organization_id: str, context: ChangeContext | None = None
) -> Recipient:
    return await update_recipient(
        session, recipient_id, organization_id, RecipientUpdate(is_active=False), context
    )


async def delete_recipient(
    session: AsyncSession, recipient_id: str, organization_id: str, context: ChangeContext | None = None
) -> None:
    # Children survive with a null parent and show up in orphan scans.
    async with atomic(session):
        recipient = await require_owned(session, Recipient, recipient_id, organization_id)
        before = snapshot(COMPONENT_TYPE, recipient)
        await session.execute(
            delete(Recipient).where(Recipient.id == recipient.id, tenant_predicate(Recipient, organization_id))
        )
        await record_deleted(
            session,
            organization_id=organization_id,
            component_type=COMPONENT_TYPE,
            component_id=recipient_id,
            before=before,
            context=context,
        )


async def get_direct_children(session: AsyncSession, recipient_id: str, organization_id: str) -> list[Recipient]:
    return await hierarchy.get_direct_children(session, SPEC, recipient_id, organization_id)


async def get_descendant_tree(
    session: AsyncSession, recipient_id: str, organization_id: str, max_depth: int | None = None
) -> list[hierarchy.HierarchyNode]:
    return await hierarchy.get_descendant_tree(session, SPEC, recipient_id, organization_id, max_depth)


async def get_ancestor_chain(session: AsyncSession, recipient_id: str, organization_id: str) -> list[Recipient]:
    return await hierarchy.get_ancestor_chain(session, SPEC, recipient_id, organization_id)


async def check_circular_reference(
    session: AsyncSession, recipient_id: str, candidate_parent_id: str, organization_id: str
) -> bool:
    return await hierarchy.check_circular_reference(
        session, SPEC, recipient_id, candidate_parent_id, organization_id
    )


async def calculate_hierarchy_depth(session: AsyncSession, recipient_id: str, organization_id: str) -> int:
    return await hierarchy.calculate_hierarchy_depth(session, SPEC, recipient_id, organization_id)


async def find_orphaned_recipients(session: AsyncSession, organization_id: str) -> list[Recipient]:
    return await hierarchy.find_orphaned_nodes(session, SPEC, organization_id)


async def find_unlinked_recipients(session: AsyncSession, organization_id: str) -> list[Recipient]:
    return await hierarchy.find_unlinked_nodes(session, SPEC, organization_id)


async def check_recipient_hierarchy_health(
    session: AsyncSession, organization_id: str
) -> hierarchy.HierarchyHealthReport:
    return await hierarchy.check_hierarchy_health(session, SPEC, organization_id)


async def get_third_country_recipients(session: AsyncSession, organization_id: str) -> list[Recipient]:
    # Recipients with at least one active location in a country outside EU/EEA and adequacy.
    result = await session.execute(
        select(Recipient, Country)
        .join(RecipientProcessingLocation, RecipientProcessingLocation.recipient_id == Recipient.id)
        .join(Country, Country.id == RecipientProcessingLocation.country_id)
        .where(
            tenant_predicate(Recipient, organization_id),
            tenant_predicate(RecipientProcessingLocation, organization_id),
            RecipientProcessingLocation.is_active.is_(True),
        )
        .order_by(Recipient.created_at, Recipient.id)
    )
    recipients: dict[str, Recipient] = {}
    for recipient, country in result.all():
        if is_third_country(country):
            recipients.setdefault(recipient.id, recipient)
    return list(recipients.values())


async def get_recipient_statistics(session: AsyncSession, organization_id: str) -> RecipientStatistics:
    stats = RecipientStatistics()
    result = await session.execute(
        select(Recipient.type, Recipient.is_active, func.count(Recipient.id))
        .where(tenant_predicate(Recipient, organization_id))
        .group_by(Recipient.type, Recipient.is_active)
    )
    for recipient_type, is_active, count in result.all():
        stats.total += count
        if is_active:
            stats.active += count
        stats.by_type[recipient_type] = stats.by_type.get(recipient_type, 0) + count
    with_parent = await session.execute(
        select(func.count(Recipient.id)).where(
            tenant_predicate(Recipient, organization_id),
            Recipient.parent_recipient_id.is_not(None),
        )
    )
    stats.with_parent = int(with_parent.scalar_one())
    stats.orphaned = len(await find_orphaned_recipients(session, organization_id))
    stats.unlinked = len(await find_unlinked_recipients(session, organization_id))
    stats.missing_agreements = len(await find_recipients_missing_agreements(session, organization_id))
    return stats


async def _active_agreement_types(
    session: AsyncSession, external_organization_ids: set[str], organization_id: str
) -> dict[str, set[str]]:
    # external_organization_id -> types of its ACTIVE agreements.
    if not external_organization_ids:
        return {}
    result = await session.execute(
        select(Agreement.external_organization_id, Agreement.type).where(
            tenant_predicate(Agreement, organization_id),
            Agreement.external_organization_id.in_(sorted(external_organization_ids)),
            Agreement.status == STATUS_ACTIVE,
        )
    )
    held: dict[str, set[str]] = {}
    for external_organization_id, agreement_type in result.all():
        held.setdefault(external_organization_id, set()).add(agreement_type)
    return held


async def find_recipients_missing_agreements(
    session: AsyncSession, organization_id: str
) -> list[RecipientMissingAgreement]:
    """List linked recipients lacking an active agreement their type requires.

    One entry is returned per missing agreement type. Recipients without an
    external organization cannot hold agreements and are reported by
    ``find_unlinked_recipients`` instead.
    """
    required = {name: rule.required_agreements for name, rule in SPEC.rules.items() if rule.required_agreements}
    result = await session.execute(
        select(Recipient)
        .where(
            tenant_predicate(Recipient, organization_id),
            Recipient.type.in_(sorted(required)),
            Recipient.external_organization_id.is_not(None),
        )
        .order_by(Recipient.created_at, Recipient.id)
    )
    candidates = list(result.scalars().all())
    held = await _active_agreement_types(
        session, {recipient.external_organization_id for recipient in candidates}, organization_id
    )
    missing: list[RecipientMissingAgreement] = []
    for recipient in candidates:
        present = held.get(recipient.external_organization_id, set())
        for agreement_type in required[recipient.type]:
            if agreement_type not in present:
                missing.append(RecipientMissingAgreement(recipient, agreement_type))
    return missing


async def validate_required_agreements(
    session: AsyncSession, recipient_id: str, organization_id: str
) -> list[str]:
    # Advisory warnings for one recipient; never blocks a write.
    recipient = await require_owned(session, Recipient, recipient_id, organization_id)
    required = SPEC.rule_for(recipient.type).required_agreements
    if not required or not recipient.external_organization_id:
        return []
    external = await require_owned(
        session, ExternalOrganization, recipient.external_organization_id, organization_id
    )
    held = await _active_agreement_types(session, {external.id}, organization_id)
    present = held.get(external.id, set())
    return [
        f"Recipient type {recipient.type} is missing required {agreement_type} agreement with {external.legal_name}"
        for agreement_type in required
        if agreement_type not in present
    ]
