from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.errors import ContextNotConfigured, DatabaseError, Unauthorized
from tenantgate.domain.models import ActiveContext
from tenantgate.persistence.repos import contexts as contexts_repo
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.auth.roles import is_customer_role, is_platform_operator, is_tenant_role
from tenantgate.services.context.cache import cached_context, invalidate_context, remember_context
from tenantgate.services.context.switcher import apply_context
from tenantgate.services.context.types import (
    SCOPE_CUSTOMER,
    SCOPE_TENANT,
    ResolvedContext,
)


logger = logging.getLogger(__name__)


def _from_row(row: ActiveContext) -> ResolvedContext | None:
    try:
        return ResolvedContext.build(row.scope, tenant_id=row.tenant_id, customer_id=row.customer_id)
    except ValueError:
        return None


async def _heal_to_platform(
    session: AsyncSession, *, account_id: str, row: ActiveContext
) -> ResolvedContext:
    # Dangling bindings are repaired silently; a failed repair still answers platform.
    logger.warning(
        "context_self_heal account_id=%s scope=%s tenant_id=%s customer_id=%s",
        account_id,
        row.scope,
        row.tenant_id,
        row.customer_id,
    )
    platform = ResolvedContext.platform()
    try:
        await apply_context(session, account_id=account_id, context=platform)
    except DatabaseError as exc:
        logger.warning("context_self_heal_failed account_id=%s", account_id, exc_info=exc)
        invalidate_context(account_id)
    return platform


async def _binding_exists(session: AsyncSession, context: ResolvedContext) -> bool:
    if context.scope == SCOPE_TENANT:
        return await tenants_repo.tenant_exists(session, context.tenant_id or "")
    if context.scope == SCOPE_CUSTOMER:
        customer = await tenants_repo.get_existing_customer(session, context.customer_id or "")
        return customer is not None
    return True


async def _resolve_operator(session: AsyncSession, account_id: str) -> ResolvedContext:
    try:
        row = await contexts_repo.get_active_context(session, account_id)
        if row is None:
            context = ResolvedContext.platform()
            remember_context(account_id, context)
            return context
        context = _from_row(row)
        valid = context is not None and await _binding_exists(session, context)
    except SQLAlchemyError as exc:
        await session.rollback()
        fallback = cached_context(account_id)
        logger.warning(
            "context_store_unavailable account_id=%s cached=%s",
            account_id,
            fallback is not None,
            exc_info=exc,
        )
        return fallback or ResolvedContext.platform()

    if not valid or context is None:
        return await _heal_to_platform(session, account_id=account_id, row=row)
    remember_context(account_id, context)
    return context


async def _resolve_fixed(session: AsyncSession, account_id: str, role: str) -> ResolvedContext:
    row = await contexts_repo.get_active_context(session, account_id)
    if row is not None:
        context = _from_row(row)
        if context is not None:
            return context

    # No bootstrapped row yet: fall back to the account's owning relation.
    if is_tenant_role(role):
        membership = await tenants_repo.get_membership_for_account(session, account_id)
        if membership is not None:
            return ResolvedContext.build(SCOPE_TENANT, tenant_id=membership.tenant_id)
    elif is_customer_role(role):
        customer = await tenants_repo.get_customer_for_account(session, account_id)
        if customer is not None:
            return ResolvedContext.build(SCOPE_CUSTOMER, customer_id=customer.id)
    raise ContextNotConfigured(
        "Account has no tenant or customer binding",
        details={"account_id": account_id},
    )


async def resolve_context(
    session: AsyncSession,
    *,
    account_id: str,
    role: str | None = None,
) -> ResolvedContext:
    """Return the acting scope for an account.

    Platform operators read their switchable context from the store and never
    receive a binding to a tenant or customer that no longer exists. Everyone
    else gets the fixed binding established at sign-in.
    """
    if role is None:
        account = await tenants_repo.get_account(session, account_id)
        if account is None:
            raise Unauthorized("Unknown account")
        role = account.role
    if is_platform_operator(role):
        return await _resolve_operator(session, account_id)
    return await _resolve_fixed(session, account_id, role)


async def require_active_tenant_id(
    session: AsyncSession,
    *,
    account_id: str,
    role: str | None = None,
) -> str:
    # Tenant-area handlers need a concrete tenant; customer scope maps to the customer's tenant.
    context = await resolve_context(session, account_id=account_id, role=role)
    if context.scope == SCOPE_TENANT and context.tenant_id:
        return context.tenant_id
    if context.scope == SCOPE_CUSTOMER and context.customer_id:
        customer = await tenants_repo.get_existing_customer(session, context.customer_id)
        if customer is not None:
            return customer.tenant_id
    raise ContextNotConfigured(
        "No tenant selected for the current context",
        details={"scope": context.scope},
    )
