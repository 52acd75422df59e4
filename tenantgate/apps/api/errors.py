from __future__ import annotations

from http import HTTPStatus
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantgate.apps.api.response import error_response
from tenantgate.core.errors import (
    ContextNotConfigured,
    DatabaseError,
    Forbidden,
    LimitExceeded,
    NotFound,
    PreconditionFailed,
    TenantGateError,
    Unauthorized,
    UnknownFlag,
)
from tenantgate.persistence.guards import TenantPredicateError


logger = logging.getLogger(__name__)

# Ordered most specific first; FeatureNotEnabled is matched through Forbidden.
_ERROR_STATUS: tuple[tuple[type[TenantGateError], int], ...] = (
    (Unauthorized, 401),
    (Forbidden, 403),
    (NotFound, 404),
    (UnknownFlag, 404),
    (LimitExceeded, 402),
    (PreconditionFailed, 409),
    (ContextNotConfigured, 409),
    (DatabaseError, 503),
)

# Codes for framework-raised HTTP errors that carry no code of their own.
_STATUS_CODES: dict[int, str] = {
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _envelope(
    request: Request,
    status_code: int,
    *,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def _on_tenantgate_error(request: Request, exc: TenantGateError) -> JSONResponse:
    status_code = next(
        (status for error_type, status in _ERROR_STATUS if isinstance(exc, error_type)), 500
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return _envelope(
        request, status_code, code=exc.code, message=exc.message, details=exc.details, headers=headers
    )


async def _on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Routes may raise with a dict detail carrying its own code and extra fields.
    detail = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
    extra = {key: value for key, value in detail.items() if key not in ("code", "message")}
    try:
        phrase = HTTPStatus(exc.status_code).phrase
    except ValueError:
        phrase = "Request failed"
    return _envelope(
        request,
        exc.status_code,
        code=str(detail.get("code") or _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")),
        message=str(detail.get("message") or phrase),
        details=extra,
        headers=exc.headers,
    )


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(
        request,
        422,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": exc.errors()},
    )


async def _on_missing_tenant_predicate(request: Request, exc: TenantPredicateError) -> JSONResponse:
    # A tenant-scoped query without a tenant id is a server bug, never a client error.
    logger.error("tenant_predicate_missing path=%s message=%s", request.url.path, exc.message)
    return _envelope(
        request,
        500,
        code="TENANT_PREDICATE_REQUIRED",
        message="Tenant scope is required for this operation",
    )


async def _on_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.warning("database_error path=%s", request.url.path, exc_info=exc)
    return _envelope(request, 503, code="DATABASE_ERROR", message="Database unavailable")


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception path=%s", request.url.path, exc_info=exc)
    return _envelope(request, 500, code="INTERNAL_ERROR", message="Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    # Starlette walks the exception MRO, so the most specific handler wins.
    # fastapi.HTTPException subclasses the starlette one and lands in _on_http_error.
    handlers = (
        (TenantGateError, _on_tenantgate_error),
        (TenantPredicateError, _on_missing_tenant_predicate),
        (SQLAlchemyError, _on_database_error),
        (StarletteHTTPException, _on_http_error),
        (RequestValidationError, _on_validation_error),
        (Exception, _on_unhandled),
    )
    for exc_type, handler in handlers:
        app.add_exception_handler(exc_type, handler)  # type: ignore[arg-type]
