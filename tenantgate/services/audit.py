from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantgate.domain.models import AuditEvent
from tenantgate.persistence.db import SessionLocal


logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
# Any details key containing one of these fragments is masked before it is stored.
_CREDENTIAL_FRAGMENTS = ("token", "secret", "password", "credential", "authorization", "cookie")


@dataclass(frozen=True)
class RequestOrigin:
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Request | None) -> RequestOrigin:
        if request is None:
            return cls()
        forwarded = request.headers.get("x-forwarded-for", "")
        # First hop of X-Forwarded-For is the original client.
        ip_address = forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
        return cls(
            request_id=getattr(request.state, "request_id", None) or request.headers.get("x-request-id"),
            ip_address=ip_address,
            user_agent=request.headers.get("user-agent"),
        )


def _is_credential_key(key: object) -> bool:
    lowered = str(key).lower()
    return any(fragment in lowered for fragment in _CREDENTIAL_FRAGMENTS)


def redact_details(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(key): REDACTED if _is_credential_key(key) else redact_details(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_details(item) for item in value]
    return value


async def _write(session: AsyncSession, event: AuditEvent, *, action: str) -> None:
    try:
        session.add(event)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("audit_write_failed action=%s", action, exc_info=exc)


async def record_event(
    *,
    action: str,
    actor_id: str | None,
    session: AsyncSession | None = None,
    actor_role: str | None = None,
    tenant_id: str | None = None,
    outcome: str = "success",
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
    occurred_at: datetime | None = None,
) -> None:
    """Append one audit record without ever failing the caller.

    Callers commit their own mutation first; a failed audit insert is rolled
    back and logged so the operation it describes stays in place.
    """
    origin = RequestOrigin.from_request(request)
    event = AuditEvent(
        occurred_at=occurred_at or datetime.now(timezone.utc),
        tenant_id=tenant_id,
        actor_id=actor_id,
        actor_role=actor_role,
        action=action,
        outcome=outcome,
        resource_type=resource_type,
        resource_id=resource_id,
        request_id=origin.request_id,
        ip_address=origin.ip_address,
        user_agent=origin.user_agent,
        metadata_json=redact_details(details or {}),
    )
    if session is not None:
        await _write(session, event, action=action)
        return
    async with SessionLocal() as own_session:
        await _write(own_session, event, action=action)
