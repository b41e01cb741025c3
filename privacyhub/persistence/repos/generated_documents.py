from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import get_args

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.errors import DomainValidationError, InvalidDocumentTransitionError
from privacyhub.domain.models import (
    AffectedDocument,
    ComponentChangeLog,
    GeneratedDocument,
    ProcessingActivity,
)
from privacyhub.domain.schemas import DocumentStatus, GeneratedDocumentCreate, ImpactType
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import get_owned, require_owned, tenant_predicate
from privacyhub.persistence.pagination import Page, paginate


logger = logging.getLogger(__name__)

IMPACT_TYPES = frozenset(get_args(ImpactType))
DOCUMENT_STATUSES = frozenset(get_args(DocumentStatus))

# Allowed lifecycle moves; ARCHIVED is terminal.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "DRAFT": frozenset({"FINAL", "ARCHIVED"}),
    "FINAL": frozenset({"SUPERSEDED", "ARCHIVED"}),
    "SUPERSEDED": frozenset({"ARCHIVED"}),
    "ARCHIVED": frozenset(),
}


@dataclass(frozen=True)
class DocumentReviewItem:
    document: GeneratedDocument
    pending_impacts: int


async def create_generated_document(
    session: AsyncSession, organization_id: str, data: GeneratedDocumentCreate
) -> GeneratedDocument:
    async with atomic(session):
        if data.processing_activity_id:
            await require_owned(session, ProcessingActivity, data.processing_activity_id, organization_id)
        document = GeneratedDocument(organization_id=organization_id, status="DRAFT", **data.model_dump())
        session.add(document)
    return document


async def get_generated_document(
    session: AsyncSession, document_id: str, organization_id: str
) -> GeneratedDocument | None:
    return await get_owned(session, GeneratedDocument, document_id, organization_id)


async def list_generated_documents(
    session: AsyncSession,
    organization_id: str,
    *,
    document_type: str | None = None,
    status: str | None = None,
    processing_activity_id: str | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[GeneratedDocument]:
    stmt = select(GeneratedDocument).where(tenant_predicate(GeneratedDocument, organization_id))
    if document_type is not None:
        stmt = stmt.where(GeneratedDocument.document_type == document_type)
    if status is not None:
        stmt = stmt.where(GeneratedDocument.status == status)
    if processing_activity_id is not None:
        stmt = stmt.where(GeneratedDocument.processing_activity_id == processing_activity_id)
    return await paginate(
        session,
        stmt,
        model=GeneratedDocument,
        scope="generated_documents",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def transition_document_status(
    session: AsyncSession, document_id: str, organization_id: str, status: str
) -> GeneratedDocument:
    if status not in DOCUMENT_STATUSES:
        raise DomainValidationError(f"Unsupported document status: {status}")
    async with atomic(session):
        document = await require_owned(session, GeneratedDocument, document_id, organization_id, for_update=True)
        if status not in STATUS_TRANSITIONS[document.status]:
            raise InvalidDocumentTransitionError(
                f"Generated document cannot move from {document.status} to {status}"
            )
        document.status = status
    return document


async def link_affected_document(
    session: AsyncSession,
    organization_id: str,
    *,
    generated_document_id: str,
    change_log_id: str,
    impact_type: str,
    impact_description: str,
) -> AffectedDocument:
    """Record that a logged change may have made a document stale.

    A second link for the same (document, change) pair raises
    ``ConstraintViolationError``; the existing link is left untouched.
    """
    if impact_type not in IMPACT_TYPES:
        raise DomainValidationError(f"Unsupported impact type: {impact_type}")
    async with atomic(session):
        await require_owned(session, GeneratedDocument, generated_document_id, organization_id)
        await require_owned(session, ComponentChangeLog, change_log_id, organization_id)
        link = AffectedDocument(
            organization_id=organization_id,
            generated_document_id=generated_document_id,
            change_log_id=change_log_id,
            impact_type=impact_type,
            impact_description=impact_description,
        )
        session.add(link)
    logger.info(
        "affected_document_linked document_id=%s change_log_id=%s impact_type=%s",
        generated_document_id,
        change_log_id,
        impact_type,
    )
    return link


async def list_affected_documents(
    session: AsyncSession,
    organization_id: str,
    *,
    generated_document_id: str | None = None,
    change_log_id: str | None = None,
    pending_only: bool = False,
) -> list[AffectedDocument]:
    stmt = select(AffectedDocument).where(tenant_predicate(AffectedDocument, organization_id))
    if generated_document_id is not None:
        stmt = stmt.where(AffectedDocument.generated_document_id == generated_document_id)
    if change_log_id is not None:
        stmt = stmt.where(AffectedDocument.change_log_id == change_log_id)
    if pending_only:
        stmt = stmt.where(AffectedDocument.reviewed_at.is_(None))
    result = await session.execute(stmt.order_by(AffectedDocument.detected_at, AffectedDocument.id))
    return list(result.scalars().all())


async def list_documents_needing_review(
    session: AsyncSession, organization_id: str
) -> list[DocumentReviewItem]:
    # Live documents (draft or final) with at least one unreviewed impact.
    result = await session.execute(
        select(GeneratedDocument, func.count(AffectedDocument.id))
        .join(AffectedDocument, AffectedDocument.generated_document_id == GeneratedDocument.id)
        .where(
            tenant_predicate(GeneratedDocument, organization_id),
            tenant_predicate(AffectedDocument, organization_id),
            AffectedDocument.reviewed_at.is_(None),
            GeneratedDocument.status.in_(("DRAFT", "FINAL")),
        )
        .group_by(GeneratedDocument.id)
        .order_by(GeneratedDocument.generated_at.desc(), GeneratedDocument.id)
    )
    return [DocumentReviewItem(document=document, pending_impacts=int(count)) for document, count in result.all()]


async def mark_affected_document_reviewed(
    session: AsyncSession, affected_document_id: str, organization_id: str, reviewed_by: str | None
) -> AffectedDocument:
    async with atomic(session):
        link = await require_owned(session, AffectedDocument, affected_document_id, organization_id)
        if link.reviewed_at is None:
            link.reviewed_at = datetime.now(timezone.utc)
            link.reviewed_by = reviewed_by
    return link
