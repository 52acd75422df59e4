from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantgate.core.errors import FeatureNotEnabled, Forbidden, NotFound, UnknownFlag
from tenantgate.domain.models import FeatureFlag
from tenantgate.persistence.repos import flags as flags_repo
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.audit import record_event
from tenantgate.services.auth.roles import is_platform_operator


logger = logging.getLogger(__name__)

FLAG_TICKETS = "tickets_enabled"
FLAG_DEALS = "deals_enabled"
FLAG_CLIENTS = "clients_enabled"
FLAG_BILLING = "billing_enabled"


@dataclass(frozen=True)
class FlagDefinition:
    name: str
    description: str
    default_enabled: bool


# Flags known to the code even before an operator has touched them in the store.
FLAG_REGISTRY: dict[str, FlagDefinition] = {
    FLAG_TICKETS: FlagDefinition("Tickets", "Support ticket workspace", True),
    FLAG_DEALS: FlagDefinition("Deals", "Sales pipeline and deal tracking", True),
    FLAG_CLIENTS: FlagDefinition("Clients", "Customer records management", True),
    FLAG_BILLING: FlagDefinition("Billing", "Invoices and subscription billing", False),
}


@dataclass(frozen=True)
class ResolvedFlag:
    key: str
    name: str
    description: str | None
    global_enabled: bool
    override: bool | None
    effective_enabled: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "global_enabled": self.global_enabled,
            "override": self.override,
            "effective_enabled": self.effective_enabled,
        }


def _describe(key: str, flag: FeatureFlag | None) -> tuple[str, str | None]:
    if flag is not None:
        return flag.name, flag.description
    definition = FLAG_REGISTRY.get(key)
    if definition is not None:
        return definition.name, definition.description
    return key, None


def _effective(override: bool | None, global_enabled: bool) -> bool:
    return global_enabled if override is None else override


def _global_state(key: str, flag: FeatureFlag | None) -> bool:
    # Stored global row first, then the registry default, then off.
    if flag is not None:
        return bool(flag.enabled)
    definition = FLAG_REGISTRY.get(key)
    return definition.default_enabled if definition else False


async def is_enabled(session: AsyncSession, tenant_id: str, flag_key: str) -> bool:
    # Precedence: tenant override, global row, registry default, False.
    flag = await flags_repo.get_flag_by_key(session, flag_key)
    if flag is not None:
        override = await flags_repo.get_override(session, tenant_id=tenant_id, flag_id=flag.id)
        if override is not None:
            return bool(override.enabled)
    return _global_state(flag_key, flag)


async def resolve_all(session: AsyncSession, tenant_id: str) -> list[ResolvedFlag]:
    flags = {flag.key: flag for flag in await flags_repo.list_flags(session)}
    overrides = {
        row.flag_id: bool(row.enabled)
        for row in await flags_repo.list_overrides_for_tenant(session, tenant_id)
    }

    resolved: list[ResolvedFlag] = []
    for key in sorted(set(FLAG_REGISTRY) | set(flags)):
        flag = flags.get(key)
        name, description = _describe(key, flag)
        global_enabled = _global_state(key, flag)
        override = overrides.get(flag.id) if flag is not None else None
        resolved.append(
            ResolvedFlag(
                key=key,
                name=name,
                description=description,
                global_enabled=global_enabled,
                override=override,
                effective_enabled=_effective(override, global_enabled),
            )
        )
    return resolved


async def require_feature(session: AsyncSession, *, tenant_id: str, flag_key: str) -> None:
    if not await is_enabled(session, tenant_id, flag_key):
        raise FeatureNotEnabled(
            "Feature not enabled for tenant",
            details={"flag_key": flag_key, "tenant_id": tenant_id},
        )


async def _require_operator(session: AsyncSession, actor_account_id: str) -> str:
    actor = await tenants_repo.get_account(session, actor_account_id)
    if actor is None or not is_platform_operator(actor.role):
        raise Forbidden("Only platform operators can manage feature flags")
    return actor.role


async def _get_or_create_flag(
    session: AsyncSession, *, flag_key: str, actor_account_id: str
) -> FeatureFlag:
    # Registry flags get their global row on first write.
    flag = await flags_repo.get_flag_by_key(session, flag_key)
    if flag is not None:
        return flag
    definition = FLAG_REGISTRY.get(flag_key)
    if definition is None:
        raise UnknownFlag("Unknown feature flag", details={"flag_key": flag_key})
    return await flags_repo.create_flag(
        session,
        key=flag_key,
        name=definition.name,
        description=definition.description,
        enabled=definition.default_enabled,
        updated_by=actor_account_id,
    )


async def set_override(
    session: AsyncSession,
    *,
    actor_account_id: str,
    tenant_id: str,
    flag_key: str,
    enabled: bool,
    request: Request | None = None,
) -> ResolvedFlag:
    actor_role = await _require_operator(session, actor_account_id)
    if await tenants_repo.get_existing_tenant(session, tenant_id) is None:
        raise NotFound("Tenant not found", details={"tenant_id": tenant_id})
    flag = await _get_or_create_flag(session, flag_key=flag_key, actor_account_id=actor_account_id)
    existing = await flags_repo.get_override(session, tenant_id=tenant_id, flag_id=flag.id)
    override_before = bool(existing.enabled) if existing is not None else None
    global_enabled = bool(flag.enabled)

    await flags_repo.upsert_override(
        session,
        tenant_id=tenant_id,
        flag_id=flag.id,
        enabled=enabled,
        updated_by=actor_account_id,
    )
    await session.commit()
    logger.info(
        "feature_flag_override_set tenant_id=%s flag_key=%s enabled=%s",
        tenant_id,
        flag_key,
        enabled,
    )
    await record_event(
        session=session,
        actor_id=actor_account_id,
        actor_role=actor_role,
        tenant_id=tenant_id,
        action="feature_flag.override_set",
        resource_type="feature_flag",
        resource_id=flag_key,
        details={
            "flag_key": flag_key,
            "before": _effective(override_before, global_enabled),
            "after": enabled,
            "override_before": override_before,
            "override_after": enabled,
        },
        request=request,
    )
    return ResolvedFlag(
        key=flag.key,
        name=flag.name,
        description=flag.description,
        global_enabled=global_enabled,
        override=enabled,
        effective_enabled=enabled,
    )


async def clear_override(
    session: AsyncSession,
    *,
    actor_account_id: str,
    tenant_id: str,
    flag_key: str,
    request: Request | None = None,
) -> ResolvedFlag:
    # Removing an override reverts the tenant to the global state; absent rows are a no-op.
    actor_role = await _require_operator(session, actor_account_id)
    if await tenants_repo.get_existing_tenant(session, tenant_id) is None:
        raise NotFound("Tenant not found", details={"tenant_id": tenant_id})
    flag = await flags_repo.get_flag_by_key(session, flag_key)
    if flag is None and flag_key not in FLAG_REGISTRY:
        raise UnknownFlag("Unknown feature flag", details={"flag_key": flag_key})

    global_enabled = _global_state(flag_key, flag)
    name, description = _describe(flag_key, flag)
    existing = (
        await flags_repo.get_override(session, tenant_id=tenant_id, flag_id=flag.id)
        if flag is not None
        else None
    )
    if existing is not None and flag is not None:
        override_before = bool(existing.enabled)
        await flags_repo.delete_override(session, tenant_id=tenant_id, flag_id=flag.id)
        await session.commit()
        logger.info("feature_flag_override_cleared tenant_id=%s flag_key=%s", tenant_id, flag_key)
        await record_event(
            session=session,
            actor_id=actor_account_id,
            actor_role=actor_role,
            tenant_id=tenant_id,
            action="feature_flag.override_cleared",
            resource_type="feature_flag",
            resource_id=flag_key,
            details={
                "flag_key": flag_key,
                "before": override_before,
                "after": global_enabled,
                "override_before": override_before,
                "override_after": None,
            },
            request=request,
        )
    return ResolvedFlag(
        key=flag_key,
        name=name,
        description=description,
        global_enabled=global_enabled,
        override=None,
        effective_enabled=global_enabled,
    )


async def set_global_flag(
    session: AsyncSession,
    *,
    actor_account_id: str,
    flag_key: str,
    enabled: bool,
    request: Request | None = None,
) -> FeatureFlag:
    actor_role = await _require_operator(session, actor_account_id)
    flag = await _get_or_create_flag(session, flag_key=flag_key, actor_account_id=actor_account_id)
    before = bool(flag.enabled)
    flag.enabled = enabled
    flag.updated_by = actor_account_id
    await session.commit()
    logger.info("feature_flag_updated flag_key=%s enabled=%s", flag_key, enabled)
    await record_event(
        session=session,
        actor_id=actor_account_id,
        actor_role=actor_role,
        action="feature_flag.updated",
        resource_type="feature_flag",
        resource_id=flag_key,
        details={"flag_key": flag_key, "before": before, "after": enabled},
        request=request,
    )
    return flag
