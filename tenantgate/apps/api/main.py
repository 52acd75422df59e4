from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response

from tenantgate.apps.api.errors import register_exception_handlers
from tenantgate.apps.api.openapi import install_security_schemes
from tenantgate.apps.api.response import API_VERSION, REQUEST_ID_HEADER
from tenantgate.apps.api.routes.audit import router as audit_router
from tenantgate.apps.api.routes.context import router as context_router
from tenantgate.apps.api.routes.flags import router as flags_router
from tenantgate.apps.api.routes.impersonation import router as impersonation_router
from tenantgate.apps.api.routes.limits import router as limits_router
from tenantgate.core.config import get_settings
from tenantgate.core.logging import configure_logging


logger = logging.getLogger(__name__)

_ROUTERS = (
    context_router,
    impersonation_router,
    flags_router,
    limits_router,
    # Operator-only trail for investigations.
    audit_router,
)


async def _tag_request(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    # Every audit record and error envelope for this request shares one id.
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
    request.state.request_id = request_id
    started = time.monotonic()
    response = await call_next(request)
    logger.debug(
        "request_completed method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        (time.monotonic() - started) * 1000.0,
        request_id,
    )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="TenantGate API", version=API_VERSION)
    app.middleware("http")(_tag_request)
    register_exception_handlers(app)
    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    install_security_schemes(app, session_cookie_name=settings.session_cookie_name)
    return app


app = create_app()
