from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantgate.core.errors import LimitExceeded, NotFound
from tenantgate.domain.models import Tenant
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.audit import record_event


logger = logging.getLogger(__name__)

RESOURCE_USERS = "users"
RESOURCE_CLIENTS = "clients"
RESOURCE_DEALS = "deals"
RESOURCE_TICKETS = "tickets"
RESOURCE_TYPES = (RESOURCE_USERS, RESOURCE_CLIENTS, RESOURCE_DEALS, RESOURCE_TICKETS)

# Older plan payloads spell limits as maxUsers, maxClients and so on.
_LEGACY_LIMIT_KEYS = {
    RESOURCE_USERS: "maxUsers",
    RESOURCE_CLIENTS: "maxClients",
    RESOURCE_DEALS: "maxDeals",
    RESOURCE_TICKETS: "maxTickets",
}

LIMIT_REACHED_REASON = "plan limit reached"


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    resource_type: str
    current: int | None
    limit: int | None
    reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "resource_type": self.resource_type,
            "current": self.current,
            "limit": self.limit,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ResourceUsage:
    resource_type: str
    current: int
    limit: int | None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - self.current)


def _require_resource_type(resource_type: str) -> None:
    if resource_type not in RESOURCE_TYPES:
        raise ValueError(f"Unsupported resource type: {resource_type}")


def resolve_limit(limits: dict[str, Any], resource_type: str) -> int | None:
    """Read one limit from a limits payload; None means unlimited.

    The plain key wins over the legacy spelling. Missing, null, non-numeric,
    zero and negative values are all treated as unlimited.
    """
    if resource_type in limits:
        raw = limits[resource_type]
    else:
        raw = limits.get(_LEGACY_LIMIT_KEYS[resource_type])
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value) or value <= 0:
        return None
    # Usage is integral, so a fractional limit behaves like the next whole number.
    return int(math.ceil(value))


async def _plan_limits_for(session: AsyncSession, tenant: Tenant) -> dict[str, Any] | None:
    if not tenant.plan_id:
        return None
    plan = await tenants_repo.get_plan(session, tenant.plan_id)
    if plan is None or not isinstance(plan.limits_json, dict) or not plan.limits_json:
        return None
    return dict(plan.limits_json)


async def _effective_limits(session: AsyncSession, tenant: Tenant) -> dict[str, Any]:
    limits = await _plan_limits_for(session, tenant)
    if limits is not None:
        return limits
    # Without plan limits only the tenant's own scalar caps apply.
    return {
        _LEGACY_LIMIT_KEYS[RESOURCE_USERS]: tenant.max_members,
        _LEGACY_LIMIT_KEYS[RESOURCE_CLIENTS]: tenant.max_clients,
    }


async def get_plan_limits(session: AsyncSession, tenant_id: str) -> dict[str, Any] | None:
    tenant = await tenants_repo.get_existing_tenant(session, tenant_id)
    if tenant is None:
        return None
    return await _plan_limits_for(session, tenant)


async def check_plan_limit(
    session: AsyncSession,
    *,
    tenant_id: str,
    resource_type: str,
    actor_account_id: str | None = None,
    context: str | None = None,
    lock_tenant: bool = False,
    request: Request | None = None,
) -> LimitDecision:
    """Decide whether the tenant may create one more row of ``resource_type``.

    Usage is counted live. With ``lock_tenant`` the tenant row is locked for
    the rest of the caller's transaction so concurrent creators queue up
    behind it; the caller then inserts and commits in that same transaction.
    """
    _require_resource_type(resource_type)
    tenant = await tenants_repo.get_existing_tenant(session, tenant_id, for_update=lock_tenant)
    if tenant is None:
        raise NotFound("Tenant not found", details={"tenant_id": tenant_id})

    limit = resolve_limit(await _effective_limits(session, tenant), resource_type)
    if limit is None:
        return LimitDecision(allowed=True, resource_type=resource_type, current=None, limit=None)

    current = await tenants_repo.count_tenant_rows(session, tenant_id, resource_type)
    if current < limit:
        return LimitDecision(allowed=True, resource_type=resource_type, current=current, limit=limit)

    logger.info(
        "plan_limit_blocked tenant_id=%s resource_type=%s current=%s limit=%s",
        tenant_id,
        resource_type,
        current,
        limit,
    )
    await record_event(
        session=session,
        actor_id=actor_account_id,
        tenant_id=tenant_id,
        action="limit_blocked",
        outcome="failure",
        resource_type=resource_type,
        details={
            "resource_type": resource_type,
            "current": current,
            "limit": limit,
            "context": context,
        },
        request=request,
    )
    return LimitDecision(
        allowed=False,
        resource_type=resource_type,
        current=current,
        limit=limit,
        reason=LIMIT_REACHED_REASON,
    )


async def enforce_plan_limit(
    session: AsyncSession,
    *,
    tenant_id: str,
    resource_type: str,
    actor_account_id: str | None = None,
    context: str | None = None,
    lock_tenant: bool = False,
    request: Request | None = None,
) -> LimitDecision:
    decision = await check_plan_limit(
        session,
        tenant_id=tenant_id,
        resource_type=resource_type,
        actor_account_id=actor_account_id,
        context=context,
        lock_tenant=lock_tenant,
        request=request,
    )
    if not decision.allowed:
        raise LimitExceeded(
            resource_type=resource_type,
            current=int(decision.current or 0),
            limit=int(decision.limit or 0),
        )
    return decision


async def get_usage_summary(session: AsyncSession, tenant_id: str) -> list[ResourceUsage]:
    # Usage panel: live count and effective limit per bounded resource type.
    tenant = await tenants_repo.get_existing_tenant(session, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", details={"tenant_id": tenant_id})
    limits = await _effective_limits(session, tenant)
    usage: list[ResourceUsage] = []
    for resource_type in RESOURCE_TYPES:
        current = await tenants_repo.count_tenant_rows(session, tenant_id, resource_type)
        usage.append(
            ResourceUsage(
                resource_type=resource_type,
                current=current,
                limit=resolve_limit(limits, resource_type),
            )
        )
    return usage
