from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.apps.api.deps import get_db
from privacyhub.apps.api.response import success_response

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    database: str


@router.get("/health")
async def health(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    # A round trip to the store is the only dependency worth probing.
    await db.execute(text("SELECT 1"))
    payload = HealthResponse(status="ok", database=db.get_bind().dialect.name)
    return success_response(request=request, data=payload.model_dump())
