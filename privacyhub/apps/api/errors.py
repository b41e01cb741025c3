from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from privacyhub.apps.api.response import error_response
from privacyhub.core.errors import (
    ConstraintViolationError,
    DomainValidationError,
    NotFoundOrForbiddenError,
    TransactionFailedError,
)
from privacyhub.persistence.guards import TenantPredicateError
from privacyhub.persistence.pagination import CursorError


logger = logging.getLogger(__name__)


_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _default_code(status_code: int) -> str:
    # Map status codes to fallback error codes when none are provided.
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Surface request validation errors with structured details for clients.
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": exc.errors()},
    )
    return JSONResponse(content=payload, status_code=422)


async def not_found_exception_handler(request: Request, exc: NotFoundOrForbiddenError) -> JSONResponse:
    # Absence and cross-tenant access render identically.
    payload = error_response(request=request, code="NOT_FOUND", message=str(exc))
    return JSONResponse(content=payload, status_code=404)


async def domain_validation_exception_handler(request: Request, exc: DomainValidationError) -> JSONResponse:
    payload = error_response(
        request=request,
        code="VALIDATION_ERROR",
        message=str(exc),
        details={"errors": exc.errors, "rule": type(exc).__name__},
    )
    return JSONResponse(content=payload, status_code=422)


async def constraint_exception_handler(request: Request, exc: ConstraintViolationError) -> JSONResponse:
    payload = error_response(request=request, code="CONFLICT", message="Constraint violation")
    return JSONResponse(content=payload, status_code=409)


async def cursor_exception_handler(request: Request, exc: CursorError) -> JSONResponse:
    payload = error_response(request=request, code="INVALID_CURSOR", message=str(exc))
    return JSONResponse(content=payload, status_code=400)


async def tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError) -> JSONResponse:
    payload = error_response(request=request, code="TENANT_PREDICATE_REQUIRED", message=exc.message)
    return JSONResponse(content=payload, status_code=400)


async def transaction_exception_handler(request: Request, exc: TransactionFailedError) -> JSONResponse:
    logger.error("transaction_failed path=%s", request.url.path, exc_info=exc)
    payload = error_response(request=request, code="SERVICE_UNAVAILABLE", message="Transaction failed")
    return JSONResponse(content=payload, status_code=503)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.error("unhandled_exception path=%s", request.url.path, exc_info=exc)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
