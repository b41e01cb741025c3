from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.apps.api.deps import get_db, get_organization_id
from privacyhub.apps.api.response import success_response
from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.persistence.repos import activities as activities_repo
from privacyhub.persistence.repos import activity_junctions
from privacyhub.services.geography import get_activity_transfer_analysis
from privacyhub.services.relationship_sync import (
    JunctionSpec,
    link_relationships,
    sync_relationships,
    unlink_relationship,
)


router = APIRouter(prefix="/organizations/{organization_id}/activities", tags=["activities"])


class RelationIdsRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)

    # Reject unknown fields so organization ids cannot be smuggled into payloads.
    model_config = {"extra": "forbid"}


class ComponentRef(BaseModel):
    id: str
    name: str


class ActivityResponse(BaseModel):
    id: str
    name: str
    status: str
    risk_level: str | None
    requires_dpia: bool
    created_at: str


def _activity(activity) -> ActivityResponse:
    return ActivityResponse(
        id=activity.id,
        name=activity.name,
        status=activity.status,
        risk_level=activity.risk_level,
        requires_dpia=activity.requires_dpia,
        created_at=activity.created_at.isoformat(),
    )


def _refs(rows) -> list[dict]:
    return [ComponentRef(id=row.id, name=row.name).model_dump() for row in rows]


def _junction(relation: str) -> JunctionSpec:
    spec = activity_junctions.JUNCTIONS.get(relation)
    if spec is None:
        raise NotFoundOrForbiddenError("Relation", relation)
    return spec


@router.get("")
async def list_activities(
    request: Request,
    status: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page = await activities_repo.list_activities(
        db, organization_id, status=status, cursor=cursor, limit=limit
    )
    return success_response(
        request=request,
        data=[_activity(item).model_dump() for item in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/{activity_id}")
async def get_activity(
    request: Request,
    activity_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    bundle = await activity_junctions.get_activity_with_components(db, activity_id, organization_id)
    if bundle is None:
        raise NotFoundOrForbiddenError("DataProcessingActivity", activity_id)
    data = _activity(bundle.activity).model_dump()
    data.update(
        purposes=_refs(bundle.purposes),
        data_categories=_refs(bundle.data_categories),
        data_subjects=_refs(bundle.data_subjects),
        recipients=_refs(bundle.recipients),
        digital_assets=_refs(bundle.digital_assets),
    )
    return success_response(request=request, data=data)


@router.get("/{activity_id}/transfers")
async def get_activity_transfers(
    request: Request,
    activity_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    analysis = await get_activity_transfer_analysis(db, activity_id, organization_id)
    data = {
        "activity_id": analysis.activity_id,
        "organization_country": analysis.organization_country.iso_code,
        "total_recipients": analysis.total_recipients,
        "recipients_with_transfers": analysis.recipients_with_transfers,
        "risk_distribution": analysis.risk_distribution,
        "countries_involved": [
            {"iso_code": country.iso_code, "location_count": count}
            for country, count in analysis.countries_involved
        ],
        "transfers": [
            {
                "recipient_id": transfer.owner_id,
                "recipient_name": transfer.owner_name,
                "country": transfer.country.iso_code,
                "location_id": transfer.location.id,
                "risk_level": transfer.risk.level,
                "risk_reason": transfer.risk.reason,
                "depth": transfer.depth,
            }
            for transfer in analysis.transfers
        ],
    }
    return success_response(request=request, data=data)


@router.get("/{activity_id}/{relation}")
async def list_relation(
    request: Request,
    activity_id: str,
    relation: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    spec = _junction(relation)
    ids = await activity_junctions.list_activity_related_ids(db, spec, activity_id, organization_id)
    return success_response(request=request, data=sorted(ids))


@router.put("/{activity_id}/{relation}")
async def sync_relation(
    request: Request,
    activity_id: str,
    relation: str,
    payload: RelationIdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Replace the whole set; only the difference is written.
    result = await sync_relationships(db, _junction(relation), activity_id, organization_id, payload.ids)
    return success_response(
        request=request,
        data={"added": list(result.added), "removed": list(result.removed)},
    )


@router.post("/{activity_id}/{relation}")
async def link_relation(
    request: Request,
    activity_id: str,
    relation: str,
    payload: RelationIdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    added = await link_relationships(db, _junction(relation), activity_id, organization_id, payload.ids)
    return success_response(request=request, data={"added": added})


@router.delete("/{activity_id}/{relation}/{target_id}")
async def unlink_relation(
    request: Request,
    activity_id: str,
    relation: str,
    target_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    removed = await unlink_relationship(db, _junction(relation), activity_id, organization_id, target_id)
    return success_response(request=request, data={"removed": removed})
