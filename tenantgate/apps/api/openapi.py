from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from tenantgate.apps.api.response import API_VERSION, ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": API_VERSION},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: _response(
        "Unauthorized",
        _error_example(code="AUTH_UNAUTHORIZED", message="Invalid session credential"),
    ),
    403: _response(
        "Forbidden",
        _error_example(code="AUTH_FORBIDDEN", message="Only platform operators can switch context"),
    ),
    404: _response(
        "Not found",
        _error_example(code="NOT_FOUND", message="Tenant not found", details={"tenant_id": "t_missing"}),
    ),
    409: _response(
        "Precondition failed",
        _error_example(
            code="PRECONDITION_FAILED",
            message="Already impersonating; stop the current session first",
        ),
    ),
    422: _response(
        "Validation error",
        _error_example(code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    ),
    500: _response(
        "Internal server error",
        _error_example(code="INTERNAL_ERROR", message="Internal server error"),
    ),
    503: _response(
        "Store unavailable",
        _error_example(code="DATABASE_ERROR", message="Database unavailable"),
    ),
}

PLAN_LIMIT_RESPONSE: dict[int | str, dict[str, Any]] = {
    402: _response(
        "Plan limit reached",
        _error_example(
            code="PLAN_LIMIT_REACHED",
            message="Plan limit reached for clients. Upgrade the plan to add more.",
            details={"resource_type": "clients", "current": 5, "limit": 5},
        ),
    ),
}


def install_security_schemes(app: FastAPI, *, session_cookie_name: str) -> None:
    # Every route accepts either a bearer credential or the session cookie.
    def openapi() -> dict[str, Any]:
        if app.openapi_schema is None:
            schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
            schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
            schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
            schemes["SessionCookie"] = {"type": "apiKey", "in": "cookie", "name": session_cookie_name}
            for path_item in schema.get("paths", {}).values():
                for operation in path_item.values():
                    operation.setdefault("security", [{"BearerAuth": []}, {"SessionCookie": []}])
            app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = openapi  # type: ignore[method-assign]
