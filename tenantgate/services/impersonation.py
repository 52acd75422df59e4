from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantgate.core.config import get_settings
from tenantgate.core.errors import Forbidden, NotFound, PreconditionFailed, Unauthorized
from tenantgate.persistence.repos import contexts as contexts_repo
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.audit import record_event
from tenantgate.services.auth.credentials import CredentialJar, open_backup, seal_credential
from tenantgate.services.auth.roles import is_customer_role, is_platform_operator, is_tenant_role
from tenantgate.services.auth.session_tokens import (
    SessionClaims,
    issue_session_token,
    verify_session_token,
)
from tenantgate.services.context.switcher import apply_context
from tenantgate.services.context.types import SCOPE_CUSTOMER, ResolvedContext


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImpersonationGrant:
    token: str
    expires_at: datetime
    target_account_id: str
    role: str
    tenant_id: str | None
    customer_id: str | None
    redirect_to: str


@dataclass(frozen=True)
class StopResult:
    restored: bool
    account_id: str | None
    redirect_to: str


async def _derive_target_binding(
    session: AsyncSession, *, account_id: str, role: str
) -> tuple[str, str | None]:
    # Bind to the target's own tenant; never to whatever the operator is currently viewing.
    if is_tenant_role(role):
        membership = await tenants_repo.get_membership_for_account(session, account_id)
        if membership is None or not await tenants_repo.tenant_exists(session, membership.tenant_id):
            raise PreconditionFailed(
                "Target account has no tenant membership",
                details={"account_id": account_id},
            )
        return membership.tenant_id, None
    if is_customer_role(role):
        linked = await tenants_repo.get_customer_for_account(session, account_id)
        customer = await tenants_repo.get_existing_customer(session, linked.id) if linked else None
        if customer is None:
            raise PreconditionFailed(
                "Target account has no customer record",
                details={"account_id": account_id},
            )
        return customer.tenant_id, customer.id
    raise PreconditionFailed("Target account role cannot be impersonated", details={"role": role})


async def _operator_context(session: AsyncSession, account_id: str) -> ResolvedContext:
    row = await contexts_repo.get_active_context(session, account_id)
    if row is None:
        return ResolvedContext.platform()
    try:
        return ResolvedContext.build(row.scope, tenant_id=row.tenant_id, customer_id=row.customer_id)
    except ValueError:
        return ResolvedContext.platform()


def _restorable(payload: dict) -> ResolvedContext:
    try:
        return ResolvedContext.build(
            str(payload.get("scope")),
            tenant_id=payload.get("tenant_id"),
            customer_id=payload.get("customer_id"),
        )
    except ValueError:
        return ResolvedContext.platform()


async def impersonate(
    session: AsyncSession,
    *,
    operator_account_id: str,
    target_account_id: str,
    jar: CredentialJar,
    request: Request | None = None,
    now: datetime | None = None,
) -> ImpersonationGrant:
    """Swap the operator's session for a short-lived credential acting as the target.

    Every precondition is checked before anything is written. Store writes
    happen before the jar is touched, so a failure never leaves a half swap.
    """
    current = now or datetime.now(timezone.utc)
    claims = verify_session_token(jar.session_token, now=current)
    # An active impersonation session still belongs to the operator who started it.
    owner_id = claims.original_account_id if claims.impersonating else claims.account_id
    if owner_id != operator_account_id:
        raise Unauthorized("Session does not belong to the operator")
    if claims.impersonating:
        raise PreconditionFailed("Already impersonating; stop the current session first")
    # The swapped credential is only handed back as a cookie, which a bearer client never sends.
    if jar.from_bearer:
        raise PreconditionFailed("Impersonation requires a cookie session")

    operator = await tenants_repo.get_account(session, operator_account_id)
    if operator is None or not is_platform_operator(operator.role):
        raise Forbidden("Only platform operators can impersonate")

    target = await tenants_repo.get_account(session, target_account_id)
    if target is None:
        raise NotFound("Account not found", details={"account_id": target_account_id})
    if is_platform_operator(target.role):
        raise Forbidden("Platform operators cannot be impersonated")

    tenant_id, customer_id = await _derive_target_binding(
        session, account_id=target.id, role=target.role
    )

    settings = get_settings()
    ttl = timedelta(minutes=settings.impersonation_ttl_minutes)
    token, grant_claims = issue_session_token(
        account_id=target.id,
        role=target.role,
        ttl=ttl,
        tenant_id=None if customer_id else tenant_id,
        customer_id=customer_id,
        impersonating=True,
        original_account_id=operator.id,
        now=current,
    )
    restore_context = None
    if customer_id:
        restore_context = (await _operator_context(session, operator.id)).as_dict()
    sealed = seal_credential(
        jar.session_token or "",
        expires_at=grant_claims.expires_at,
        restore_context=restore_context,
    )

    if customer_id:
        await apply_context(
            session,
            account_id=operator.id,
            context=ResolvedContext.build(SCOPE_CUSTOMER, customer_id=customer_id),
        )

    max_age = int(ttl.total_seconds())
    jar.set_backup(sealed, max_age=max_age)
    jar.set_session(token, max_age=max_age)

    redirect_to = (
        settings.impersonation_customer_landing
        if customer_id
        else settings.impersonation_tenant_landing
    )
    logger.info(
        "impersonation_started operator_id=%s target_id=%s tenant_id=%s customer_id=%s",
        operator.id,
        target.id,
        tenant_id,
        customer_id,
    )
    await record_event(
        session=session,
        actor_id=operator.id,
        actor_role=operator.role,
        tenant_id=tenant_id,
        action="user.impersonated",
        resource_type="account",
        resource_id=target.id,
        details={
            "target_account_id": target.id,
            "target_email": target.email,
            "target_role": target.role,
            "tenant_id": tenant_id,
            "customer_id": customer_id,
            "operator_account_id": operator.id,
            "expires_at": grant_claims.expires_at.isoformat(),
        },
        request=request,
    )
    return ImpersonationGrant(
        token=token,
        expires_at=grant_claims.expires_at,
        target_account_id=target.id,
        role=target.role,
        tenant_id=tenant_id,
        customer_id=customer_id,
        redirect_to=redirect_to,
    )


def _peek_claims(raw_token: str | None, now: datetime) -> SessionClaims | None:
    # The impersonation credential may already be expired when the operator stops.
    try:
        return verify_session_token(raw_token, now=now)
    except Unauthorized:
        return None


async def stop_impersonation(
    session: AsyncSession,
    *,
    jar: CredentialJar,
    request: Request | None = None,
    now: datetime | None = None,
) -> StopResult:
    # Restore the backed-up credential; missing or unusable backups just get discarded.
    current = now or datetime.now(timezone.utc)
    exit_landing = get_settings().impersonation_exit_landing

    backup = open_backup(jar.impersonation_backup, now=current)
    original = _peek_claims(backup.token, current) if backup else None
    if backup is None or original is None:
        jar.clear_backup()
        return StopResult(restored=False, account_id=None, redirect_to=exit_landing)

    impersonated = _peek_claims(jar.session_token, current)

    # Only a customer swap pinned the operator's context; put back what it replaced.
    if backup.restore_context is not None:
        await apply_context(
            session,
            account_id=original.account_id,
            context=_restorable(backup.restore_context),
        )

    remaining = max(0, int((original.expires_at - current).total_seconds()))
    jar.set_session(backup.token, max_age=remaining)
    jar.clear_backup()

    target_id = impersonated.account_id if impersonated and impersonated.impersonating else None
    logger.info("impersonation_stopped operator_id=%s target_id=%s", original.account_id, target_id)
    await record_event(
        session=session,
        actor_id=original.account_id,
        actor_role=original.role,
        action="auth.impersonation_end",
        resource_type="account",
        resource_id=target_id,
        details={"target_account_id": target_id},
        request=request,
    )
    return StopResult(restored=True, account_id=original.account_id, redirect_to=exit_landing)
