from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from privacyhub.apps.api.errors import (
    constraint_exception_handler,
    cursor_exception_handler,
    domain_validation_exception_handler,
    http_exception_handler,
    not_found_exception_handler,
    tenant_predicate_exception_handler,
    transaction_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from privacyhub.apps.api.response import API_VERSION
from privacyhub.apps.api.routes.activities import router as activities_router
from privacyhub.apps.api.routes.documents import router as documents_router
from privacyhub.apps.api.routes.health import router as health_router
from privacyhub.apps.api.routes.recipients import router as recipients_router
from privacyhub.core.config import get_settings
from privacyhub.core.errors import (
    ConstraintViolationError,
    DomainValidationError,
    NotFoundOrForbiddenError,
    TransactionFailedError,
)
from privacyhub.core.logging import configure_logging
from privacyhub.persistence.guards import TenantPredicateError
from privacyhub.persistence.pagination import CursorError


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=get_settings().app_name)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request path=%s status=%s latency_ms=%.1f request_id=%s",
            request.url.path,
            response.status_code,
            latency_ms,
            request_id,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(NotFoundOrForbiddenError, not_found_exception_handler)
    app.add_exception_handler(DomainValidationError, domain_validation_exception_handler)
    app.add_exception_handler(ConstraintViolationError, constraint_exception_handler)
    app.add_exception_handler(CursorError, cursor_exception_handler)
    app.add_exception_handler(TenantPredicateError, tenant_predicate_exception_handler)
    app.add_exception_handler(TransactionFailedError, transaction_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # All routes are versioned; there are no legacy aliases.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(activities_router, prefix=f"/{API_VERSION}")
    app.include_router(recipients_router, prefix=f"/{API_VERSION}")
    app.include_router(documents_router, prefix=f"/{API_VERSION}")
    return app


app = create_app()
