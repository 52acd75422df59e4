from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantgate.core.config import get_settings
from tenantgate.core.errors import Forbidden, TenantGateError, Unauthorized
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.audit import record_event
from tenantgate.services.auth.credentials import CredentialJar
from tenantgate.services.auth.session_tokens import SessionClaims, issue_session_token
from tenantgate.services.context.bootstrap import derive_binding, ensure_fixed_context


logger = logging.getLogger(__name__)

ACCOUNT_STATUS_ACTIVE = "active"


async def sign_in(
    session: AsyncSession,
    *,
    account_id: str,
    jar: CredentialJar,
    request: Request | None = None,
    now: datetime | None = None,
) -> SessionClaims:
    """Issue a regular session credential after the caller has authenticated.

    The fixed-context bootstrap runs here; its failures are logged and never
    block the sign-in itself.
    """
    account = await tenants_repo.get_account(session, account_id)
    if account is None:
        raise Unauthorized("Unknown account")
    if account.status != ACCOUNT_STATUS_ACTIVE:
        raise Forbidden("Account is not active", details={"status": account.status})

    role = account.role
    tenant_id: str | None = None
    customer_id: str | None = None
    try:
        tenant_id, customer_id = await derive_binding(session, account_id=account_id, role=role)
        await ensure_fixed_context(
            session,
            account_id=account_id,
            role=role,
            tenant_id=tenant_id,
            customer_id=customer_id,
        )
    except (TenantGateError, SQLAlchemyError) as exc:
        await session.rollback()
        logger.warning("sign_in_context_bootstrap_failed account_id=%s", account_id, exc_info=exc)
        # The rollback expired the loaded account; read it again.
        account = await tenants_repo.get_account(session, account_id)
        if account is None:
            raise Unauthorized("Unknown account")

    current = now or datetime.now(timezone.utc)
    settings = get_settings()
    ttl = timedelta(days=settings.session_ttl_days)
    token, claims = issue_session_token(
        account_id=account.id,
        role=account.role,
        ttl=ttl,
        tenant_id=tenant_id,
        customer_id=customer_id,
        now=current,
    )

    account.last_login_at = current
    await session.commit()

    jar.set_session(token, max_age=int(ttl.total_seconds()))
    if jar.impersonation_backup:
        jar.clear_backup()

    await record_event(
        session=session,
        actor_id=account.id,
        actor_role=account.role,
        tenant_id=tenant_id,
        action="auth.login",
        resource_type="account",
        resource_id=account.id,
        request=request,
    )
    return claims
