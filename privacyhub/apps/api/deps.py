from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.errors import NotFoundOrForbiddenError
from privacyhub.persistence.db import get_session
from privacyhub.persistence.repos import organizations as organizations_repo


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


async def get_organization_id(
    organization_id: str = Path(min_length=1),
    db: AsyncSession = Depends(get_db),
) -> str:
    # Soft-deleted and unknown organizations both resolve to not found.
    organization = await organizations_repo.get_organization(db, organization_id)
    if organization is None:
        raise NotFoundOrForbiddenError("Organization", organization_id)
    return organization.id
