from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.config import get_settings
from privacyhub.core.errors import ChangeValueError, DomainValidationError
from privacyhub.domain.components import (
    CHANGE_CREATED,
    CHANGE_DELETED,
    CHANGE_TYPES,
    CHANGE_UPDATED,
    TRACKED_FIELDS,
    require_component_type,
)
from privacyhub.domain.models import ComponentChangeLog
from privacyhub.persistence.db import atomic
from privacyhub.persistence.guards import require_organization_id


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeContext:
    # Who made a change and why; both optional for system-initiated writes.
    actor_id: str | None = None
    reason: str | None = None


def normalize_change_value(value: Any) -> Any:
    """Return ``value`` in a JSON-storable form or raise ``ChangeValueError``.

    Datetimes and dates become ISO strings and decimals become strings, so
    old/new values compare consistently after a round trip through the store.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(key): normalize_change_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_change_value(item) for item in value]
    try:
        json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise ChangeValueError(
            f"Change value of type {type(value).__name__} is not JSON serializable"
        ) from exc
    return value


def snapshot(component_type: str, row: Any) -> dict[str, Any]:
    # Capture only tracked fields so diffs stay stable as models grow.
    fields = TRACKED_FIELDS[require_component_type(component_type)]
    return {name: normalize_change_value(getattr(row, name, None)) for name in fields}


def diff_snapshots(
    before: dict[str, Any], after: dict[str, Any]
) -> list[tuple[str, Any, Any]]:
    changes = []
    for name in after:
        if before.get(name) != after.get(name):
            changes.append((name, before.get(name), after.get(name)))
    return changes


async def record_change(
    session: AsyncSession,
    *,
    organization_id: str,
    component_type: str,
    component_id: str,
    change_type: str,
    field_changed: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
    context: ChangeContext | None = None,
    commit: bool = False,
) -> ComponentChangeLog | None:
    """Append one entry to the change log.

    By default the entry joins the caller's open transaction so a tracked
    mutation and its log entry commit together. Returns None when change
    tracking is disabled in settings.
    """
    require_organization_id(organization_id)
    require_component_type(component_type)
    if change_type not in CHANGE_TYPES:
        raise DomainValidationError(f"Unsupported change type: {change_type}")
    old_normalized = normalize_change_value(old_value)
    new_normalized = normalize_change_value(new_value)
    if not get_settings().change_tracking_enabled:
        return None
    context = context or ChangeContext()
    entry = ComponentChangeLog(
        organization_id=organization_id,
        component_type=component_type,
        component_id=component_id,
        change_type=change_type,
        field_changed=field_changed,
        old_value=old_normalized,
        new_value=new_normalized,
        changed_by_user_id=context.actor_id,
        change_reason=context.reason,
    )
    async with atomic(session, commit=commit):
        session.add(entry)
    logger.debug(
        "change_recorded component_type=%s component_id=%s change_type=%s field=%s",
        component_type,
        component_id,
        change_type,
        field_changed,
    )
    return entry


async def record_created(
    session: AsyncSession,
    *,
    organization_id: str,
    component_type: str,
    row: Any,
    context: ChangeContext | None = None,
) -> ComponentChangeLog | None:
    return await record_change(
        session,
        organization_id=organization_id,
        component_type=component_type,
        component_id=row.id,
        change_type=CHANGE_CREATED,
        new_value=snapshot(component_type, row),
        context=context,
    )


async def record_updated(
    session: AsyncSession,
    *,
    organization_id: str,
    component_type: str,
    component_id: str,
    before: dict[str, Any],
    after: dict[str, Any],
    context: ChangeContext | None = None,
) -> list[ComponentChangeLog]:
    # One entry per tracked field whose value actually changed.
    entries = []
    for name, old, new in diff_snapshots(before, after):
        entry = await record_change(
            session,
            organization_id=organization_id,
            component_type=component_type,
            component_id=component_id,
            change_type=CHANGE_UPDATED,
            field_changed=name,
            old_value=old,
            new_value=new,
            context=context,
        )
        if entry is not None:
            entries.append(entry)
    return entries


async def record_deleted(
    session: AsyncSession,
    *,
    organization_id: str,
    component_type: str,
    component_id: str,
    before: dict[str, Any],
    context: ChangeContext | None = None,
) -> ComponentChangeLog | None:
    return await record_change(
        session,
        organization_id=organization_id,
        component_type=component_type,
        component_id=component_id,
        change_type=CHANGE_DELETED,
        old_value=before,
        context=context,
    )
