from __future__ import annotations

from typing import Iterable, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.config import get_settings
from privacyhub.core.errors import NotFoundOrForbiddenError


ModelT = TypeVar("ModelT")


class TenantPredicateError(RuntimeError):
    # Surface missing organization predicates when guard enforcement is enabled.
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def require_organization_id(organization_id: str | None) -> None:
    # Enforce non-empty organization identifiers when guard checks are enabled.
    settings = get_settings()
    if not settings.require_tenant_predicate:
        return
    if not organization_id:
        raise TenantPredicateError("Tenant predicate required but organization_id is missing")


def tenant_predicate(model, organization_id: str) -> object:
    # Build organization predicates through a single helper to guarantee guard coverage.
    require_organization_id(organization_id)
    return model.organization_id == organization_id


def tenant_or_global_predicate(model, organization_id: str) -> object:
    # Include system-defined rows (null organization) alongside the tenant's own rows.
    require_organization_id(organization_id)
    return or_(model.organization_id == organization_id, model.organization_id.is_(None))


def _entity_label(model) -> str:
    return getattr(model, "__entity_label__", model.__name__)


async def get_owned(
    session: AsyncSession,
    model: type[ModelT],
    entity_id: str,
    organization_id: str,
    *,
    allow_global: bool = False,
) -> ModelT | None:
    # Existence and ownership are checked in one query; callers cannot tell them apart.
    predicate = (
        tenant_or_global_predicate(model, organization_id)
        if allow_global
        else tenant_predicate(model, organization_id)
    )
    if not entity_id:
        return None
    result = await session.execute(select(model).where(model.id == entity_id, predicate))
    return result.scalar_one_or_none()


async def require_owned(
    session: AsyncSession,
    model: type[ModelT],
    entity_id: str,
    organization_id: str,
    *,
    label: str | None = None,
    for_update: bool = False,
    allow_global: bool = False,
) -> ModelT:
    """Return the row for ``entity_id`` or raise ``NotFoundOrForbiddenError``.

    ``for_update`` takes a row lock on the returned row so concurrent writers
    targeting the same anchor serialize on the store's row lock.
    """
    predicate = (
        tenant_or_global_predicate(model, organization_id)
        if allow_global
        else tenant_predicate(model, organization_id)
    )
    entity_label = label or _entity_label(model)
    if not entity_id:
        raise NotFoundOrForbiddenError(entity_label, entity_id)
    stmt = select(model).where(model.id == entity_id, predicate)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundOrForbiddenError(entity_label, entity_id)
    return row


async def require_all_owned(
    session: AsyncSession,
    model,
    entity_ids: Iterable[str],
    organization_id: str,
    *,
    label: str | None = None,
    allow_global: bool = False,
) -> set[str]:
    # Validate every referenced id in one query; the first unknown id is reported.
    wanted = list(dict.fromkeys(entity_ids))
    predicate = (
        tenant_or_global_predicate(model, organization_id)
        if allow_global
        else tenant_predicate(model, organization_id)
    )
    if not wanted:
        return set()
    result = await session.execute(select(model.id).where(model.id.in_(wanted), predicate))
    found = set(result.scalars().all())
    for entity_id in wanted:
        if entity_id not in found:
            raise NotFoundOrForbiddenError(label or _entity_label(model), entity_id)
    return found
