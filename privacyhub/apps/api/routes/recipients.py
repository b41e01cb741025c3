from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.apps.api.deps import get_db, get_organization_id
from privacyhub.apps.api.response import success_response
from privacyhub.domain.models import Recipient
from privacyhub.persistence.guards import require_owned
from privacyhub.persistence.repos import recipients as recipients_repo
from privacyhub.services.geography import OWNER_RECIPIENT, assess_cross_border_transfers


router = APIRouter(prefix="/organizations/{organization_id}/recipients", tags=["recipients"])


class RecipientResponse(BaseModel):
    id: str
    name: str
    type: str
    parent_recipient_id: str | None
    hierarchy_type: str | None
    is_active: bool
    depth: int | None = None


def _recipient(recipient: Recipient, depth: int | None = None) -> dict:
    return RecipientResponse(
        id=recipient.id,
        name=recipient.name,
        type=recipient.type,
        parent_recipient_id=recipient.parent_recipient_id,
        hierarchy_type=recipient.hierarchy_type,
        is_active=recipient.is_active,
        depth=depth,
    ).model_dump(exclude_none=True)


@router.get("")
async def list_recipients(
    request: Request,
    type: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page = await recipients_repo.list_recipients(
        db, organization_id, type=type, cursor=cursor, limit=limit
    )
    return success_response(
        request=request,
        data=[_recipient(item) for item in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/hierarchy-health")
async def hierarchy_health(
    request: Request,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    report = await recipients_repo.check_recipient_hierarchy_health(db, organization_id)
    data = {
        "orphaned": [_recipient(node) for node in report.orphaned],
        "unlinked": [_recipient(node) for node in report.unlinked],
        "depth_violations": [
            {
                "recipient": _recipient(violation.node),
                "current_depth": violation.current_depth,
                "max_allowed": violation.max_allowed,
            }
            for violation in report.depth_violations
        ],
        "cycles": report.cycles,
        "total_issues": report.total_issues,
    }
    return success_response(request=request, data=data)


@router.get("/missing-agreements")
async def missing_agreements(
    request: Request,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    items = await recipients_repo.find_recipients_missing_agreements(db, organization_id)
    data = [
        {**_recipient(item.recipient), "required_agreement_type": item.required_agreement_type}
        for item in items
    ]
    return success_response(request=request, data=data)


@router.get("/{recipient_id}/children")
async def list_children(
    request: Request,
    recipient_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await require_owned(db, Recipient, recipient_id, organization_id)
    children = await recipients_repo.get_direct_children(db, recipient_id, organization_id)
    return success_response(request=request, data=[_recipient(child) for child in children])


@router.get("/{recipient_id}/descendants")
async def list_descendants(
    request: Request,
    recipient_id: str,
    max_depth: int | None = Query(default=None, ge=1),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await require_owned(db, Recipient, recipient_id, organization_id)
    tree = await recipients_repo.get_descendant_tree(db, recipient_id, organization_id, max_depth)
    return success_response(request=request, data=[_recipient(entry.node, entry.depth) for entry in tree])


@router.get("/{recipient_id}/ancestors")
async def list_ancestors(
    request: Request,
    recipient_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await require_owned(db, Recipient, recipient_id, organization_id)
    chain = await recipients_repo.get_ancestor_chain(db, recipient_id, organization_id)
    return success_response(request=request, data=[_recipient(node) for node in chain])


@router.get("/{recipient_id}/transfers")
async def assess_transfers(
    request: Request,
    recipient_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await require_owned(db, Recipient, recipient_id, organization_id)
    candidates = await assess_cross_border_transfers(db, OWNER_RECIPIENT, recipient_id, organization_id)
    data = [
        {
            "country": candidate.country.iso_code,
            "risk_level": candidate.risk.level if candidate.risk else None,
            "missing_mechanism": candidate.missing_mechanism,
            "mechanisms": [mechanism.code for mechanism in candidate.mechanisms],
            "locations": [
                {
                    "location_id": ref.location_id,
                    "recipient_id": ref.owner_id,
                    "depth": ref.depth,
                    "service": ref.service,
                    "location_role": ref.location_role,
                }
                for ref in candidate.locations
            ],
        }
        for candidate in candidates
    ]
    return success_response(request=request, data=data)
