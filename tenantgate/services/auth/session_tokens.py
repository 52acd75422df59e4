from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any
from uuid import uuid4

import jwt

from tenantgate.core.config import get_settings
from tenantgate.core.errors import Unauthorized


logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_ISSUER = "tenantgate"
_REQUIRED_CLAIMS = ["sub", "role", "iat", "exp", "iss"]


@dataclass(frozen=True)
class SessionClaims:
    # Acting identity carried by a session credential.
    account_id: str
    role: str
    tenant_id: str | None
    customer_id: str | None
    impersonating: bool
    original_account_id: str | None
    issued_at: datetime
    expires_at: datetime
    token_id: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def issue_session_token(
    *,
    account_id: str,
    role: str,
    ttl: timedelta,
    tenant_id: str | None = None,
    customer_id: str | None = None,
    impersonating: bool = False,
    original_account_id: str | None = None,
    now: datetime | None = None,
) -> tuple[str, SessionClaims]:
    # Mint an HS256 credential; expiry is absolute and checked on every use.
    issued_at = (now or _utc_now()).replace(microsecond=0)
    expires_at = issued_at + ttl
    claims = SessionClaims(
        account_id=account_id,
        role=role,
        tenant_id=tenant_id,
        customer_id=customer_id,
        impersonating=impersonating,
        original_account_id=original_account_id,
        issued_at=issued_at,
        expires_at=expires_at,
        token_id=uuid4().hex,
    )
    payload: dict[str, Any] = {
        "iss": _ISSUER,
        "sub": account_id,
        "role": role,
        "tid": tenant_id,
        "cid": customer_id,
        "imp": impersonating,
        "oid": original_account_id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": claims.token_id,
    }
    token = jwt.encode(payload, get_settings().session_secret, algorithm=_ALGORITHM)
    return token, claims


def verify_session_token(raw_token: str | None, *, now: datetime | None = None) -> SessionClaims:
    """Validate signature and expiry of a session credential.

    Expiry is compared against ``now`` here rather than inside PyJWT so the
    clock can be injected; the configured skew applies to both checks.
    """
    if not raw_token:
        raise Unauthorized("Missing session credential")
    settings = get_settings()
    try:
        payload = jwt.decode(
            raw_token,
            settings.session_secret,
            algorithms=[_ALGORITHM],
            issuer=_ISSUER,
            options={"require": _REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidTokenError as exc:
        logger.info("session_token_rejected reason=%s", type(exc).__name__)
        raise Unauthorized("Invalid session credential") from exc

    current = now or _utc_now()
    expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    skew = timedelta(seconds=settings.session_clock_skew_seconds)
    if expires_at + skew <= current:
        raise Unauthorized("Session credential expired")

    return SessionClaims(
        account_id=str(payload["sub"]),
        role=str(payload["role"]),
        tenant_id=payload.get("tid"),
        customer_id=payload.get("cid"),
        impersonating=bool(payload.get("imp", False)),
        original_account_id=payload.get("oid"),
        issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
        expires_at=expires_at,
        token_id=str(payload.get("jti") or ""),
    )
