from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.persistence.db import atomic, dialect_name
from privacyhub.persistence.guards import require_all_owned, require_owned


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JunctionSpec:
    # Describe one many-to-many relation: which anchor owns it and what it points at.
    name: str
    junction: Any
    anchor_model: Any
    anchor_column: str
    target_model: Any
    target_column: str
    # Allow system-defined targets (null organization) alongside tenant rows.
    allow_global_targets: bool = False

    def anchor_attr(self):
        return getattr(self.junction, self.anchor_column)

    def target_attr(self):
        return getattr(self.junction, self.target_column)


@dataclass(frozen=True)
class SyncResult:
    added: tuple[str, ...]
    removed: tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _dedupe(ids: Iterable[str]) -> list[str]:
    # Preserve caller order while dropping duplicates and empty ids.
    return [value for value in dict.fromkeys(ids) if value]


async def _current_ids(session: AsyncSession, spec: JunctionSpec, anchor_id: str) -> list[str]:
    result = await session.execute(
        select(spec.target_attr()).where(spec.anchor_attr() == anchor_id)
    )
    return list(result.scalars().all())


async def _validate_targets(
    session: AsyncSession, spec: JunctionSpec, organization_id: str, target_ids: list[str]
) -> None:
    # Reject right-hand ids owned by another organization, not just unknown ones.
    await require_all_owned(
        session,
        spec.target_model,
        target_ids,
        organization_id,
        allow_global=spec.allow_global_targets,
    )


async def _insert_ignoring_existing(
    session: AsyncSession, spec: JunctionSpec, anchor_id: str, target_ids: list[str]
) -> None:
    rows = [{spec.anchor_column: anchor_id, spec.target_column: target} for target in target_ids]
    dialect = dialect_name(session)
    if dialect == "postgresql":
        stmt = postgresql.insert(spec.junction).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite.insert(spec.junction).values(rows)
    else:
        # Other engines fall back to the pre-filtered plain insert under the anchor lock.
        await session.execute(insert(spec.junction).values(rows))
        return
    # Race-safe: a concurrent link of the same pair resolves to a single row.
    stmt = stmt.on_conflict_do_nothing(index_elements=[spec.anchor_column, spec.target_column])
    await session.execute(stmt)


async def list_related_ids(
    session: AsyncSession, spec: JunctionSpec, anchor_id: str, organization_id: str
) -> list[str]:
    # Anchor ownership first so foreign anchors read as not found.
    await require_owned(session, spec.anchor_model, anchor_id, organization_id)
    return await _current_ids(session, spec, anchor_id)


async def sync_relationships(
    session: AsyncSession,
    spec: JunctionSpec,
    anchor_id: str,
    organization_id: str,
    desired_ids: Iterable[str],
    *,
    commit: bool = True,
) -> SyncResult:
    """Replace the anchor's relationship set with ``desired_ids``.

    Only the set difference is written: rows that are no longer desired are
    deleted and missing rows are inserted, both in one transaction. An
    unknown or foreign id anywhere in ``desired_ids`` aborts the call before
    any junction row is touched, leaving the existing set intact. An empty
    ``desired_ids`` clears the set.
    """
    desired = _dedupe(desired_ids)
    async with atomic(session, commit=commit):
        # Lock the anchor row so concurrent syncs on the same anchor serialize.
        await require_owned(session, spec.anchor_model, anchor_id, organization_id, for_update=True)
        await _validate_targets(session, spec, organization_id, desired)
        current = set(await _current_ids(session, spec, anchor_id))
        desired_set = set(desired)
        to_remove = sorted(current - desired_set)
        to_add = [target for target in desired if target not in current]
        if to_remove:
            await session.execute(
                delete(spec.junction).where(
                    spec.anchor_attr() == anchor_id,
                    spec.target_attr().in_(to_remove),
                )
            )
        if to_add:
            await _insert_ignoring_existing(session, spec, anchor_id, to_add)
    logger.info(
        "relationship_sync junction=%s anchor=%s added=%s removed=%s",
        spec.name,
        anchor_id,
        len(to_add),
        len(to_remove),
    )
    return SyncResult(added=tuple(to_add), removed=tuple(to_remove))


async def link_relationships(
    session: AsyncSession,
    spec: JunctionSpec,
    anchor_id: str,
    organization_id: str,
    target_ids: Iterable[str],
    *,
    commit: bool = True,
) -> list[str]:
    # Additive and idempotent: existing pairs are skipped, never duplicated.
    targets = _dedupe(target_ids)
    async with atomic(session, commit=commit):
        await require_owned(session, spec.anchor_model, anchor_id, organization_id, for_update=True)
        await _validate_targets(session, spec, organization_id, targets)
        current = set(await _current_ids(session, spec, anchor_id))
        to_add = [target for target in targets if target not in current]
        if to_add:
            await _insert_ignoring_existing(session, spec, anchor_id, to_add)
    logger.info("relationship_link junction=%s anchor=%s added=%s", spec.name, anchor_id, len(to_add))
    return to_add


async def unlink_relationship(
    session: AsyncSession,
    spec: JunctionSpec,
    anchor_id: str,
    organization_id: str,
    target_id: str,
    *,
    commit: bool = True,
) -> bool:
    # Removing a pair that does not exist is a silent no-op.
    async with atomic(session, commit=commit):
        await require_owned(session, spec.anchor_model, anchor_id, organization_id, for_update=True)
        result = await session.execute(
            delete(spec.junction).where(
                spec.anchor_attr() == anchor_id,
                spec.target_attr() == target_id,
            )
        )
    removed = bool(result.rowcount)
    logger.info("relationship_unlink junction=%s anchor=%s removed=%s", spec.name, anchor_id, removed)
    return removed
