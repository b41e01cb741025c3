from __future__ import annotations

from typing import Any
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel


API_VERSION = "v1"


class ResponseMeta(BaseModel):
    # Request and tenant identifiers let clients correlate responses with server logs.
    request_id: str
    api_version: str = API_VERSION
    organization_id: str | None = None
    # Opaque keyset token; absent on the last page.
    next_cursor: str | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


def _request_id(request: Request) -> str:
    # The request middleware normally assigns one; handlers outside it fall back here.
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    if not request_id:
        request_id = str(uuid4())
    request.state.request_id = request_id
    return request_id


def _meta(request: Request, next_cursor: str | None = None) -> dict[str, Any]:
    meta = ResponseMeta(
        request_id=_request_id(request),
        organization_id=request.path_params.get("organization_id"),
        next_cursor=next_cursor,
    )
    return meta.model_dump(exclude_none=True)


def success_response(*, request: Request, data: Any, next_cursor: str | None = None) -> dict[str, Any]:
    # List payloads stay plain arrays; paging state rides in meta.
    return {"data": data, "meta": _meta(request, next_cursor)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details)
    return {"error": error.model_dump(exclude_none=True), "meta": _meta(request)}
