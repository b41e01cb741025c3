from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.errors import DomainValidationError, TransferMechanismRequiredError
from privacyhub.domain.models import (
    ActivityRecipient,
    AssetProcessingLocation,
    Country,
    DigitalAsset,
    Organization,
    ProcessingActivity,
    Recipient,
    RecipientProcessingLocation,
    TransferMechanism,
)
from privacyhub.persistence.guards import get_owned, require_organization_id, require_owned, tenant_predicate
from privacyhub.services.hierarchy import RECIPIENT_HIERARCHY, get_ancestor_chain, get_descendant_tree


logger = logging.getLogger(__name__)


EU_EEA = frozenset({"EU", "EEA"})
ADEQUATE = "Adequate"
DEFAULT_REQUIRED_MECHANISM = "Standard Contractual Clauses or equivalent"

RISK_NONE = "NONE"
RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"
RISK_CRITICAL = "CRITICAL"
RISK_ORDER = (RISK_NONE, RISK_LOW, RISK_MEDIUM, RISK_HIGH, RISK_CRITICAL)

OWNER_ASSET = "DIGITAL_ASSET"
OWNER_RECIPIENT = "RECIPIENT"


@dataclass(frozen=True)
class TransferRisk:
    level: str
    reason: str
    mechanism_id: str | None = None
    required_mechanism: str | None = None


@dataclass(frozen=True)
class LocationRef:
    # One active processing location contributing to a transfer candidate.
    location_id: str
    owner_type: str
    owner_id: str
    # 0 = the assessed component itself, 1+ = descendants in a recipient chain.
    depth: int
    service: str
    location_role: str
    transfer_mechanism_id: str | None


@dataclass
class TransferCandidate:
    country: Country
    locations: list[LocationRef] = field(default_factory=list)
    mechanisms: list[TransferMechanism] = field(default_factory=list)
    risk: TransferRisk | None = None

    @property
    def missing_mechanism(self) -> bool:
        # Data-quality finding: at least one location records no safeguard.
        return any(ref.transfer_mechanism_id is None for ref in self.locations)


@dataclass(frozen=True)
class CrossBorderTransfer:
    owner_type: str
    owner_id: str
    owner_name: str
    owner_kind: str
    location: Any
    country: Country
    mechanism: TransferMechanism | None
    risk: TransferRisk
    depth: int


@dataclass
class ActivityTransferAnalysis:
    activity_id: str
    activity_name: str
    organization_country: Country
    transfers: list[CrossBorderTransfer]
    total_recipients: int
    recipients_with_transfers: int
    risk_distribution: dict[str, int]
    # (country, location_count) pairs in first-seen order.
    countries_involved: list[tuple[Country, int]]


def _status(country: Country) -> set[str]:
    return set(country.gdpr_status or [])


def is_same_jurisdiction(first: Country, second: Country) -> bool:
    # Both inside the EU/EEA, or both covered by an adequacy decision.
    first_status = _status(first)
    second_status = _status(second)
    if first_status & EU_EEA and second_status & EU_EEA:
        return True
    return ADEQUATE in first_status and ADEQUATE in second_status


def is_third_country(country: Country) -> bool:
    return not (_status(country) & (EU_EEA | {ADEQUATE}))


def requires_safeguards(origin: Country, destination: Country) -> bool:
    # Article 46 safeguards apply to EU/EEA exports into third countries.
    if not _status(origin) & EU_EEA:
        return False
    return is_third_country(destination)


def derive_transfer_risk(
    origin: Country, destination: Country, mechanism: TransferMechanism | None
) -> TransferRisk:
    if is_same_jurisdiction(origin, destination):
        return TransferRisk(level=RISK_NONE, reason="SAME_JURISDICTION")
    if ADEQUATE in _status(destination):
        return TransferRisk(level=RISK_LOW, reason="ADEQUACY_DECISION")
    if requires_safeguards(origin, destination):
        if mechanism is not None:
            return TransferRisk(level=RISK_MEDIUM, reason="SAFEGUARDS_IN_PLACE", mechanism_id=mechanism.id)
        return TransferRisk(level=RISK_CRITICAL, reason="THIRD_COUNTRY_NO_MECHANISM")
    if is_third_country(destination):
        if mechanism is not None:
            return TransferRisk(level=RISK_MEDIUM, reason="SAFEGUARDS_IN_PLACE", mechanism_id=mechanism.id)
        return TransferRisk(
            level=RISK_HIGH,
            reason="MISSING_SAFEGUARDS",
            required_mechanism=DEFAULT_REQUIRED_MECHANISM,
        )
    return TransferRisk(level=RISK_NONE, reason="SAME_JURISDICTION")


def validate_transfer_mechanism_requirement(
    origin: Country, destination: Country, transfer_mechanism_id: str | None
) -> bool:
    """Raise when a location needs a safeguard mechanism and has none.

    Returns whether a mechanism is required for the pair, so callers can
    surface the requirement even when one was supplied.
    """
    if is_same_jurisdiction(origin, destination):
        return False
    if requires_safeguards(origin, destination):
        if not transfer_mechanism_id:
            raise TransferMechanismRequiredError(
                f"Transfer mechanism required: {destination.name} is a third country without "
                "adequacy decision. Select an appropriate safeguard under GDPR Article 46 "
                "(e.g., Standard Contractual Clauses)."
            )
        return True
    return False


def _worst(first: TransferRisk | None, second: TransferRisk) -> TransferRisk:
    if first is None:
        return second
    if RISK_ORDER.index(second.level) > RISK_ORDER.index(first.level):
        return second
    return first


async def get_home_country(session: AsyncSession, organization_id: str) -> Country | None:
    # Home country of the organization; None (with a warning) when not configured.
    require_organization_id(organization_id)
    result = await session.execute(
        select(Country)
        .join(Organization, Organization.home_country_id == Country.id)
        .where(Organization.id == organization_id)
    )
    country = result.scalar_one_or_none()
    if country is None:
        logger.warning("transfer_detection_skipped organization_id=%s reason=no_home_country", organization_id)
    return country


async def _active_locations(
    session: AsyncSession,
    location_model,
    owner_attr: str,
    owner_ids: list[str],
    organization_id: str,
) -> list[tuple[Any, Country, TransferMechanism | None]]:
    if not owner_ids:
        return []
    owner_column = getattr(location_model, owner_attr)
    result = await session.execute(
        select(location_model, Country, TransferMechanism)
        .join(Country, Country.id == location_model.country_id)
        .outerjoin(TransferMechanism, TransferMechanism.id == location_model.transfer_mechanism_id)
        .where(
            owner_column.in_(owner_ids),
            tenant_predicate(location_model, organization_id),
            location_model.is_active.is_(True),
        )
        .order_by(location_model.created_at, location_model.id)
    )
    return [tuple(row) for row in result.all()]


async def assess_cross_border_transfers(
    session: AsyncSession,
    component_type: str,
    component_id: str,
    organization_id: str,
) -> list[TransferCandidate]:
    """Derive transfer candidates for a digital asset or a recipient chain.

    Every active processing location whose country differs from the
    organization's home country yields a candidate, grouped per distinct
    country. Recipients include their full descendant chain. Nothing is
    written; an unknown or foreign component yields an empty list, as does an
    organization without a home country.
    """
    if component_type == OWNER_ASSET:
        anchor = await get_owned(session, DigitalAsset, component_id, organization_id)
        location_model, owner_attr = AssetProcessingLocation, "digital_asset_id"
    elif component_type == OWNER_RECIPIENT:
        anchor = await get_owned(session, Recipient, component_id, organization_id)
        location_model, owner_attr = RecipientProcessingLocation, "recipient_id"
    else:
        raise DomainValidationError(f"Cross-border assessment not supported for {component_type}")
    if anchor is None:
        return []
    home = await get_home_country(session, organization_id)
    if home is None:
        return []

    depths = {anchor.id: 0}
    if component_type == OWNER_RECIPIENT:
        for entry in await get_descendant_tree(session, RECIPIENT_HIERARCHY, anchor.id, organization_id):
            depths.setdefault(entry.node.id, entry.depth)

    rows = await _active_locations(session, location_model, owner_attr, list(depths), organization_id)
    candidates: dict[str, TransferCandidate] = {}
    for location, country, mechanism in rows:
        if country.id == home.id:
            continue
        candidate = candidates.setdefault(country.id, TransferCandidate(country=country))
        owner_id = getattr(location, owner_attr)
        candidate.locations.append(
            LocationRef(
                location_id=location.id,
                owner_type=component_type,
                owner_id=owner_id,
                depth=depths.get(owner_id, 0),
                service=location.service,
                location_role=location.location_role,
                transfer_mechanism_id=location.transfer_mechanism_id,
            )
        )
        if mechanism is not None and all(m.id != mechanism.id for m in candidate.mechanisms):
            candidate.mechanisms.append(mechanism)
        candidate.risk = _worst(candidate.risk, derive_transfer_risk(home, country, mechanism))
    return list(candidates.values())


def _collect_transfers(
    home: Country,
    owner_type: str,
    owner,
    rows: list[tuple[Any, Country, TransferMechanism | None]],
    depth: int,
) -> list[CrossBorderTransfer]:
    transfers: list[CrossBorderTransfer] = []
    for location, country, mechanism in rows:
        risk = derive_transfer_risk(home, country, mechanism)
        if risk.level == RISK_NONE:
            continue
        transfers.append(
            CrossBorderTransfer(
                owner_type=owner_type,
                owner_id=owner.id,
                owner_name=owner.name,
                owner_kind=owner.type,
                location=location,
                country=country,
                mechanism=mechanism,
                risk=risk,
                depth=depth,
            )
        )
    return transfers


async def _recipient_transfers(
    session: AsyncSession, home: Country, recipient: Recipient, organization_id: str
) -> list[CrossBorderTransfer]:
    # Direct locations at depth 0, then each ancestor's locations at its distance.
    rows = await _active_locations(
        session, RecipientProcessingLocation, "recipient_id", [recipient.id], organization_id
    )
    transfers = _collect_transfers(home, OWNER_RECIPIENT, recipient, rows, 0)
    if recipient.parent_recipient_id:
        ancestors = await get_ancestor_chain(session, RECIPIENT_HIERARCHY, recipient.id, organization_id)
        for index, ancestor in enumerate(ancestors, start=1):
            ancestor_rows = await _active_locations(
                session, RecipientProcessingLocation, "recipient_id", [ancestor.id], organization_id
            )
            transfers.extend(_collect_transfers(home, OWNER_RECIPIENT, ancestor, ancestor_rows, index))
    return transfers


async def detect_cross_border_transfers(
    session: AsyncSession, organization_id: str
) -> list[CrossBorderTransfer]:
    # Organization-wide scan of active assets and recipients; NONE-risk locations are skipped.
    home = await get_home_country(session, organization_id)
    if home is None:
        return []
    transfers: list[CrossBorderTransfer] = []
    recipients = await session.execute(
        select(Recipient)
        .where(tenant_predicate(Recipient, organization_id), Recipient.is_active.is_(True))
        .order_by(Recipient.created_at, Recipient.id)
    )
    for recipient in recipients.scalars().all():
        transfers.extend(await _recipient_transfers(session, home, recipient, organization_id))
    assets = await session.execute(
        select(DigitalAsset)
        .where(tenant_predicate(DigitalAsset, organization_id), DigitalAsset.is_active.is_(True))
        .order_by(DigitalAsset.created_at, DigitalAsset.id)
    )
    for asset in assets.scalars().all():
        rows = await _active_locations(
            session, AssetProcessingLocation, "digital_asset_id", [asset.id], organization_id
        )
        transfers.extend(_collect_transfers(home, OWNER_ASSET, asset, rows, 0))
    return transfers


async def get_activity_transfer_analysis(
    session: AsyncSession, activity_id: str, organization_id: str
) -> ActivityTransferAnalysis:
    activity = await require_owned(session, ProcessingActivity, activity_id, organization_id)
    home = await get_home_country(session, organization_id)
    if home is None:
        raise DomainValidationError(
            f"Organization {organization_id} has no home country set; "
            "set it to enable cross-border transfer analysis"
        )
    result = await session.execute(
        select(Recipient)
        .join(ActivityRecipient, ActivityRecipient.recipient_id == Recipient.id)
        .where(
            ActivityRecipient.activity_id == activity.id,
            tenant_predicate(Recipient, organization_id),
        )
        .order_by(Recipient.created_at, Recipient.id)
    )
    recipients = list(result.scalars().all())
    transfers: list[CrossBorderTransfer] = []
    with_transfers: set[str] = set()
    distribution = {level.lower(): 0 for level in RISK_ORDER}
    countries: dict[str, list[Any]] = {}
    for recipient in recipients:
        found = await _recipient_transfers(session, home, recipient, organization_id)
        if found:
            with_transfers.add(recipient.id)
        for transfer in found:
            distribution[transfer.risk.level.lower()] += 1
            entry = countries.setdefault(transfer.country.id, [transfer.country, 0])
            entry[1] += 1
        transfers.extend(found)
    return ActivityTransferAnalysis(
        activity_id=activity.id,
        activity_name=activity.name,
        organization_country=home,
        transfers=transfers,
        total_recipients=len(recipients),
        recipients_with_transfers=len(with_transfers),
        risk_distribution=distribution,
        countries_involved=[(country, count) for country, count in countries.values()],
    )
