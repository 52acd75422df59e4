from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantgate.core.errors import DatabaseError, Forbidden, NotFound, Unauthorized
from tenantgate.persistence.repos import contexts as contexts_repo
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.audit import record_event
from tenantgate.services.auth.roles import is_platform_operator
from tenantgate.services.context.cache import invalidate_context, remember_context
from tenantgate.services.context.types import (
    SCOPE_CUSTOMER,
    SCOPE_PLATFORM,
    SCOPE_TENANT,
    SCOPES,
    ResolvedContext,
)


logger = logging.getLogger(__name__)


async def apply_context(
    session: AsyncSession,
    *,
    account_id: str,
    context: ResolvedContext,
) -> None:
    # Single writer for active_contexts: upsert, commit, then mirror into the local cache.
    try:
        await contexts_repo.upsert_active_context(
            session,
            account_id=account_id,
            scope=context.scope,
            tenant_id=context.tenant_id,
            customer_id=context.customer_id,
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        invalidate_context(account_id)
        raise DatabaseError("Failed to persist active context") from exc
    remember_context(account_id, context)


async def _stored_context(session: AsyncSession, account_id: str) -> ResolvedContext:
    row = await contexts_repo.get_active_context(session, account_id)
    if row is None:
        return ResolvedContext.platform()
    try:
        return ResolvedContext.build(row.scope, tenant_id=row.tenant_id, customer_id=row.customer_id)
    except ValueError:
        return ResolvedContext.platform()


async def switch_context(
    session: AsyncSession,
    *,
    account_id: str,
    target_scope: str,
    target_tenant_id: str | None = None,
    target_customer_id: str | None = None,
    request: Request | None = None,
) -> ResolvedContext:
    """Move a platform operator into the platform, a tenant or a customer scope.

    Targets are validated against the store before anything is written, so a
    rejected switch leaves the previous context untouched.
    """
    if target_scope not in SCOPES:
        raise ValueError(f"Unsupported context scope: {target_scope}")

    account = await tenants_repo.get_account(session, account_id)
    if account is None:
        raise Unauthorized("Unknown account")
    if not is_platform_operator(account.role):
        raise Forbidden("Only platform operators can switch context")

    if target_scope == SCOPE_TENANT:
        if not target_tenant_id or await tenants_repo.get_existing_tenant(session, target_tenant_id) is None:
            raise NotFound("Tenant not found", details={"tenant_id": target_tenant_id})
        target = ResolvedContext.build(SCOPE_TENANT, tenant_id=target_tenant_id)
        audit_tenant_id = target_tenant_id
    elif target_scope == SCOPE_CUSTOMER:
        customer = (
            await tenants_repo.get_existing_customer(session, target_customer_id)
            if target_customer_id
            else None
        )
        if customer is None:
            raise NotFound("Customer not found", details={"customer_id": target_customer_id})
        target = ResolvedContext.build(SCOPE_CUSTOMER, customer_id=customer.id)
        audit_tenant_id = customer.tenant_id
    else:
        target = ResolvedContext.build(SCOPE_PLATFORM)
        audit_tenant_id = None

    before = await _stored_context(session, account_id)
    await apply_context(session, account_id=account_id, context=target)
    logger.info(
        "context_switched account_id=%s scope=%s tenant_id=%s customer_id=%s",
        account_id,
        target.scope,
        target.tenant_id,
        target.customer_id,
    )
    await record_event(
        session=session,
        actor_id=account_id,
        actor_role=account.role,
        tenant_id=audit_tenant_id,
        action="context.switched",
        resource_type="active_context",
        resource_id=account_id,
        details={"before": before.as_dict(), "after": target.as_dict()},
        request=request,
    )
    return target
