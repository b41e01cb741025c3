from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import DataCategory, DataSubjectCategory, Purpose
from privacyhub.domain.schemas import (
    DataCategoryCreate,
    DataCategoryUpdate,
    DataSubjectCategoryCreate,
    DataSubjectCategoryUpdate,
    PartialUpdate,
    PurposeCreate,
    PurposeUpdate,
)
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import (
    get_owned,
    require_owned,
    tenant_or_global_predicate,
    tenant_predicate,
)
from privacyhub.persistence.pagination import Page, paginate
from privacyhub.services.change_ledger import (
    ChangeContext,
    record_created,
    record_deleted,
    record_updated,
    snapshot,
)


@dataclass(frozen=True)
class CatalogKind:
    # Purposes, data categories and data subject categories share one lifecycle.
    model: Any
    component_type: str
    label: str
    scope: str


PURPOSES = CatalogKind(Purpose, "PURPOSE", "Purpose", "purposes")
DATA_CATEGORIES = CatalogKind(DataCategory, "DATA_CATEGORY", "DataCategory", "data_categories")
DATA_SUBJECT_CATEGORIES = CatalogKind(
    DataSubjectCategory, "DATA_SUBJECT_CATEGORY", "DataSubjectCategory", "data_subject_categories"
)


async def _create(
    session: AsyncSession,
    kind: CatalogKind,
    organization_id: str,
    values: dict[str, Any],
    context: ChangeContext | None,
):
    async with atomic(session):
        row = kind.model(organization_id=organization_id, is_system=False, **values)
        session.add(row)
        await session.flush()
        await record_created(
            session,
            organization_id=organization_id,
            component_type=kind.component_type,
            row=row,
            context=context,
        )
    return row


async def create_system_entry(session: AsyncSession, kind: CatalogKind, **values: Any):
    # System-defined rows have no organization and are visible to every tenant read-only.
    async with atomic(session):
        row = kind.model(organization_id=None, is_system=True, **values)
        session.add(row)
    return row


async def _get(session: AsyncSession, kind: CatalogKind, entity_id: str, organization_id: str):
    return await get_owned(session, kind.model, entity_id, organization_id, allow_global=True)


async def _list(
    session: AsyncSession,
    kind: CatalogKind,
    organization_id: str,
    *,
    filters: list[Any],
    is_active: bool | None,
    include_system: bool,
    cursor: str | None,
    limit: int | None,
) -> Page:
    model = kind.model
    predicate = (
        tenant_or_global_predicate(model, organization_id)
        if include_system
        else tenant_predicate(model, organization_id)
    )
    stmt = select(model).where(predicate, *filters)
    if is_active is not None:
        stmt = stmt.where(model.is_active.is_(is_active))
    return await paginate(
        session,
        stmt,
        model=model,
        scope=f"{kind.scope}:{int(include_system)}",
        organization_id=organization_id,
        cursor=cursor,
        limit=limit,
    )


async def _update(
    session: AsyncSession,
    kind: CatalogKind,
    entity_id: str,
    organization_id: str,
    data: PartialUpdate,
    context: ChangeContext | None,
):
    changes = data.changes()
    async with atomic(session):
        # System rows are excluded: tenants cannot edit shared templates.
        row = await require_owned(session, kind.model, entity_id, organization_id, label=kind.label)
        before = snapshot(kind.component_type, row)
        for name, value in changes.items():
            setattr(row, name, value)
        await session.flush()
        await record_updated(
            session,
            organization_id=organization_id,
            component_type=kind.component_type,
            component_id=row.id,
            before=before,
            after=snapshot(kind.component_type, row),
            context=context,
        )
    return row


async def _delete(
    session: AsyncSession,
    kind: CatalogKind,
    entity_id: str,
    organization_id: str,
    context: ChangeContext | None,
) -> None:
    # Hard delete; junction rows referencing the entry cascade away.
    async with atomic(session):
        row = await require_owned(session, kind.model, entity_id, organization_id, label=kind.label)
        before = snapshot(kind.component_type, row)
        await session.execute(
            delete(kind.model).where(kind.model.id == row.id, tenant_predicate(kind.model, organization_id))
        )
        await record_deleted(
            session,
            organization_id=organization_id,
            component_type=kind.component_type,
            component_id=entity_id,
            before=before,
            context=context,
        )


async def create_purpose(
    session: AsyncSession, organization_id: str, data: PurposeCreate, context: ChangeContext | None = None
) -> Purpose:
    return await _create(session, PURPOSES, organization_id, data.model_dump(), context)


async def get_purpose(session: AsyncSession, purpose_id: str, organization_id: str) -> Purpose | None:
    return await _get(session, PURPOSES, purpose_id, organization_id)


async def list_purposes(
    session: AsyncSession,
    organization_id: str,
    *,
    category: str | None = None,
    is_active: bool | None = None,
    include_system: bool = True,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[Purpose]:
    filters = [Purpose.category == category] if category is not None else []
    return await _list(
        session,
        PURPOSES,
        organization_id,
        filters=filters,
        is_active=is_active,
        include_system=include_system,
        cursor=cursor,
        limit=limit,
    )


async def update_purpose(
    session: AsyncSession,
    purpose_id: str,
    organization_id: str,
    data: PurposeUpdate,
    context: ChangeContext | None = None,
) -> Purpose:
    return await _update(session, PURPOSES, purpose_id, organization_id, data, context)


async def delete_purpose(
    session: AsyncSession, purpose_id: str, organization_id: str, context: ChangeContext | None = None
) -> None:
    await _delete(session, PURPOSES, purpose_id, organization_id, context)


async def create_data_category(
    session: AsyncSession,
    organization_id: str,
    data: DataCategoryCreate,
    context: ChangeContext | None = None,
) -> DataCategory:
    return await _create(session, DATA_CATEGORIES, organization_id, data.model_dump(), context)


async def get_data_category(
    session: AsyncSession, data_category_id: str, organization_id: str
) -> DataCategory | None:
    return await _get(session, DATA_CATEGORIES, data_category_id, organization_id)


async def list_data_categories(
    session: AsyncSession,
    organization_id: str,
    *,
    sensitivity: str | None = None,
    is_special_category: bool | None = None,
    is_active: bool | None = None,
    include_system: bool = True,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[DataCategory]:
    filters = []
    if sensitivity is not None:
        filters.append(DataCategory.sensitivity == sensitivity)
    if is_special_category is not None:
        filters.append(DataCategory.is_special_category.is_(is_special_category))
    return await _list(
        session,
        DATA_CATEGORIES,
        organization_id,
        filters=filters,
        is_active=is_active,
        include_system=include_system,
        cursor=cursor,
        limit=limit,
    )


async def update_data_category(
    session: AsyncSession,
    data_category_id: str,
    organization_id: str,
    data: DataCategoryUpdate,
    context: ChangeContext | None = None,
) -> DataCategory:
    return await _update(session, DATA_CATEGORIES, data_category_id, organization_id, data, context)


async def delete_data_category(
    session: AsyncSession,
    data_category_id: str,
    organization_id: str,
    context: ChangeContext | None = None,
) -> None:
    await _delete(session, DATA_CATEGORIES, data_category_id, organization_id, context)


async def create_data_subject_category(
    session: AsyncSession,
    organization_id: str,
    data: DataSubjectCategoryCreate,
    context: ChangeContext | None = None,
) -> DataSubjectCategory:
    return await _create(session, DATA_SUBJECT_CATEGORIES, organization_id, data.model_dump(), context)


async def get_data_subject_category(
    session: AsyncSession, data_subject_category_id: str, organization_id: str
) -> DataSubjectCategory | None:
    return await _get(session, DATA_SUBJECT_CATEGORIES, data_subject_category_id, organization_id)


async def list_data_subject_categories(
    session: AsyncSession,
    organization_id: str,
    *,
    is_vulnerable: bool | None = None,
    is_active: bool | None = None,
    include_system: bool = True,
    cursor: str | None = None,
    limit: int | None = None,
) -> Page[DataSubjectCategory]:
    filters = []
    if is_vulnerable is not None:
        filters.append(DataSubjectCategory.is_vulnerable.is_(is_vulnerable))
    return await _list(
        session,
        DATA_SUBJECT_CATEGORIES,
        organization_id,
        filters=filters,
        is_active=is_active,
        include_system=include_system,
        cursor=cursor,
        limit=limit,
    )


async def update_data_subject_category(
    session: AsyncSession,
    data_subject_category_id: str,
    organization_id: str,
    data: DataSubjectCategoryUpdate,
    context: ChangeContext | None = None,
) -> DataSubjectCategory:
    return await _update(
        session, DATA_SUBJECT_CATEGORIES, data_subject_category_id, organization_id, data, context
    )


async def delete_data_subject_category(
    session: AsyncSession,
    data_subject_category_id: str,
    organization_id: str,
    context: ChangeContext | None = None,
) -> None:
    await _delete(session, DATA_SUBJECT_CATEGORIES, data_subject_category_id, organization_id, context)
