from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.apps.api.deps import get_db, get_organization_id
from privacyhub.apps.api.response import success_response
from privacyhub.domain.models import AffectedDocument, ComponentChangeLog, GeneratedDocument
from privacyhub.domain.schemas import ImpactType
from privacyhub.persistence.repos import change_logs as change_logs_repo
from privacyhub.persistence.repos import generated_documents as documents_repo


router = APIRouter(prefix="/organizations/{organization_id}", tags=["documents"])


class AffectedDocumentRequest(BaseModel):
    change_log_id: str
    impact_type: ImpactType
    impact_description: str

    model_config = {"extra": "forbid"}


class ReviewRequest(BaseModel):
    reviewed_by: str | None = None

    model_config = {"extra": "forbid"}


def _document(document: GeneratedDocument) -> dict:
    return {
        "id": document.id,
        "document_type": document.document_type,
        "version": document.version,
        "status": document.status,
        "processing_activity_id": document.processing_activity_id,
        "generated_at": document.generated_at.isoformat(),
    }


def _impact(link: AffectedDocument) -> dict:
    return {
        "id": link.id,
        "generated_document_id": link.generated_document_id,
        "change_log_id": link.change_log_id,
        "impact_type": link.impact_type,
        "impact_description": link.impact_description,
        "detected_at": link.detected_at.isoformat(),
        "reviewed_at": link.reviewed_at.isoformat() if link.reviewed_at else None,
        "reviewed_by": link.reviewed_by,
    }


def _change(entry: ComponentChangeLog) -> dict:
    return {
        "id": entry.id,
        "component_type": entry.component_type,
        "component_id": entry.component_id,
        "change_type": entry.change_type,
        "field_changed": entry.field_changed,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "changed_by_user_id": entry.changed_by_user_id,
        "change_reason": entry.change_reason,
        "changed_at": entry.changed_at.isoformat(),
    }


@router.get("/documents/needs-review")
async def documents_needing_review(
    request: Request,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    items = await documents_repo.list_documents_needing_review(db, organization_id)
    data = [{**_document(item.document), "pending_impacts": item.pending_impacts} for item in items]
    return success_response(request=request, data=data)


@router.get("/documents/{document_id}/impacts")
async def list_document_impacts(
    request: Request,
    document_id: str,
    pending_only: bool = Query(default=False),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    links = await documents_repo.list_affected_documents(
        db, organization_id, generated_document_id=document_id, pending_only=pending_only
    )
    return success_response(request=request, data=[_impact(link) for link in links])


@router.post("/documents/{document_id}/impacts")
async def link_document_impact(
    request: Request,
    document_id: str,
    payload: AffectedDocumentRequest,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    link = await documents_repo.link_affected_document(
        db,
        organization_id,
        generated_document_id=document_id,
        change_log_id=payload.change_log_id,
        impact_type=payload.impact_type,
        impact_description=payload.impact_description,
    )
    return success_response(request=request, data=_impact(link))


@router.post("/impacts/{affected_document_id}/review")
async def review_impact(
    request: Request,
    affected_document_id: str,
    payload: ReviewRequest,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    link = await documents_repo.mark_affected_document_reviewed(
        db, affected_document_id, organization_id, payload.reviewed_by
    )
    return success_response(request=request, data=_impact(link))


@router.get("/changes")
async def list_changes(
    request: Request,
    component_type: str | None = Query(default=None),
    change_type: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page = await change_logs_repo.list_change_logs(
        db,
        organization_id,
        component_type=component_type,
        change_type=change_type,
        cursor=cursor,
        limit=limit,
    )
    return success_response(
        request=request,
        data=[_change(entry) for entry in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/changes/{component_type}/{component_id}")
async def component_history(
    request: Request,
    component_type: str,
    component_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entries = await change_logs_repo.get_component_change_history(
        db, component_type, component_id, organization_id
    )
    return success_response(request=request, data=[_change(entry) for entry in entries])
