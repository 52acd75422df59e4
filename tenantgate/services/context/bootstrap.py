from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.persistence.repos import contexts as contexts_repo
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.auth.roles import is_customer_role, is_platform_operator, is_tenant_role
from tenantgate.services.context.switcher import apply_context
from tenantgate.services.context.types import SCOPE_CUSTOMER, SCOPE_TENANT, ResolvedContext


logger = logging.getLogger(__name__)


async def ensure_fixed_context(
    session: AsyncSession,
    *,
    account_id: str,
    role: str,
    tenant_id: str | None = None,
    customer_id: str | None = None,
) -> ResolvedContext | None:
    # Pin non-operators to their own binding; operators choose scope through the switcher.
    if is_platform_operator(role):
        return None
    if is_tenant_role(role):
        if not tenant_id:
            return None
        target = ResolvedContext.build(SCOPE_TENANT, tenant_id=tenant_id)
    elif is_customer_role(role):
        if not customer_id:
            return None
        target = ResolvedContext.build(SCOPE_CUSTOMER, customer_id=customer_id)
    else:
        logger.warning("context_bootstrap_unknown_role account_id=%s role=%s", account_id, role)
        return None

    existing = await contexts_repo.get_active_context(session, account_id)
    if (
        existing is not None
        and existing.scope == target.scope
        and existing.tenant_id == target.tenant_id
        and existing.customer_id == target.customer_id
    ):
        return target
    await apply_context(session, account_id=account_id, context=target)
    logger.info(
        "context_bootstrapped account_id=%s scope=%s tenant_id=%s customer_id=%s",
        account_id,
        target.scope,
        target.tenant_id,
        target.customer_id,
    )
    return target


async def derive_binding(
    session: AsyncSession, *, account_id: str, role: str
) -> tuple[str | None, str | None]:
    # Read the account's own association: membership for tenant roles, linked record for customers.
    if is_tenant_role(role):
        membership = await tenants_repo.get_membership_for_account(session, account_id)
        return (membership.tenant_id if membership else None), None
    if is_customer_role(role):
        customer = await tenants_repo.get_customer_for_account(session, account_id)
        return None, (customer.id if customer else None)
    return None, None
