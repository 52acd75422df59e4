from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from tenantgate.core.config import get_settings
from tenantgate.core.errors import ContextNotConfigured, Forbidden, NotFound, Unauthorized
from tenantgate.persistence.db import SessionLocal
from tenantgate.persistence.repos import contexts as contexts_repo
from tenantgate.services.auth.roles import (
    ROLE_CUSTOMER_USER,
    ROLE_PLATFORM_OPERATOR,
    ROLE_TENANT_ADMIN,
    ROLE_TENANT_MEMBER,
)
from tenantgate.services.context.bootstrap import ensure_fixed_context
from tenantgate.services.context.cache import (
    cached_context,
    invalidate_context,
    remember_context,
    reset_context_cache,
)
from tenantgate.services.context.resolver import require_active_tenant_id, resolve_context
from tenantgate.services.context.switcher import switch_context
from tenantgate.services.context.types import ResolvedContext
from tenantgate.tests.utils.seed import (
    add_member,
    audit_events,
    create_account,
    create_customer,
    create_tenant,
    hard_delete_tenant,
    soft_delete_tenant,
    stored_context,
)


async def _switch(account_id: str, scope: str, **kwargs) -> ResolvedContext:
    async with SessionLocal() as session:
        return await switch_context(session, account_id=account_id, target_scope=scope, **kwargs)


async def _resolve(account_id: str, role: str | None = None) -> ResolvedContext:
    async with SessionLocal() as session:
        return await resolve_context(session, account_id=account_id, role=role)


async def test_operator_without_row_resolves_to_platform() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    context = await _resolve(operator_id)
    assert context == ResolvedContext.platform()
    assert context.tenant_id is None and context.customer_id is None


async def test_switch_to_tenant_then_resolve_returns_tenant() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()

    switched = await _switch(operator_id, "tenant", target_tenant_id=tenant_id)
    assert switched == ResolvedContext(scope="tenant", tenant_id=tenant_id)

    resolved = await _resolve(operator_id)
    assert resolved.scope == "tenant"
    assert resolved.tenant_id == tenant_id
    assert resolved.customer_id is None


async def test_switching_twice_keeps_only_the_latest_tenant() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_a = await create_tenant()
    tenant_b = await create_tenant()

    await _switch(operator_id, "tenant", target_tenant_id=tenant_a)
    await _switch(operator_id, "tenant", target_tenant_id=tenant_b)

    resolved = await _resolve(operator_id)
    assert resolved == ResolvedContext(scope="tenant", tenant_id=tenant_b)


async def test_switch_to_missing_tenant_leaves_prior_context() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    await _switch(operator_id, "tenant", target_tenant_id=tenant_id)

    with pytest.raises(NotFound):
        await _switch(operator_id, "tenant", target_tenant_id="tenant-missing")

    resolved = await _resolve(operator_id)
    assert resolved == ResolvedContext(scope="tenant", tenant_id=tenant_id)
    assert len(await audit_events("context.switched")) == 1


async def test_switch_to_soft_deleted_tenant_is_not_found() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    await soft_delete_tenant(tenant_id)
    with pytest.raises(NotFound):
        await _switch(operator_id, "tenant", target_tenant_id=tenant_id)
    assert await stored_context(operator_id) is None


async def test_switch_to_customer_and_back_to_platform() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    customer_id = await create_customer(tenant_id=tenant_id)

    customer_ctx = await _switch(operator_id, "customer", target_customer_id=customer_id)
    assert customer_ctx == ResolvedContext(scope="customer", customer_id=customer_id)
    assert (await _resolve(operator_id)).customer_id == customer_id

    platform_ctx = await _switch(operator_id, "platform")
    assert platform_ctx == ResolvedContext.platform()
    row = await stored_context(operator_id)
    assert row is not None
    assert (row.scope, row.tenant_id, row.customer_id) == ("platform", None, None)


async def test_switch_records_before_and_after_in_audit() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    await _switch(operator_id, "tenant", target_tenant_id=tenant_id)

    events = await audit_events("context.switched")
    assert len(events) == 1
    event = events[0]
    assert event.actor_id == operator_id
    assert event.tenant_id == tenant_id
    assert event.metadata_json["before"]["scope"] == "platform"
    assert event.metadata_json["after"] == {"scope": "tenant", "tenant_id": tenant_id, "customer_id": None}


async def test_switch_rejects_non_operator_and_unknown_account() -> None:
    member_id = await create_account(role=ROLE_TENANT_ADMIN)
    tenant_id = await create_tenant()
    with pytest.raises(Forbidden):
        await _switch(member_id, "tenant", target_tenant_id=tenant_id)
    with pytest.raises(Unauthorized):
        await _switch("acct-missing", "platform")


async def test_switch_rejects_unknown_scope() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    with pytest.raises(ValueError):
        await _switch(operator_id, "galaxy")


async def test_dangling_tenant_binding_self_heals_to_platform() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    await _switch(operator_id, "tenant", target_tenant_id=tenant_id)
    await soft_delete_tenant(tenant_id)

    resolved = await _resolve(operator_id)
    assert resolved == ResolvedContext.platform()

    row = await stored_context(operator_id)
    assert row is not None
    assert (row.scope, row.tenant_id, row.customer_id) == ("platform", None, None)
    # Repairs are silent: only the original switch is audited.
    actions = [event.action for event in await audit_events()]
    assert actions == ["context.switched"]


async def test_hard_deleted_tenant_also_self_heals() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    await _switch(operator_id, "tenant", target_tenant_id=tenant_id)
    await hard_delete_tenant(tenant_id)

    assert await _resolve(operator_id) == ResolvedContext.platform()


async def test_customer_binding_heals_when_its_tenant_is_deleted() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    customer_id = await create_customer(tenant_id=tenant_id)
    await _switch(operator_id, "customer", target_customer_id=customer_id)
    await soft_delete_tenant(tenant_id)

    assert await _resolve(operator_id) == ResolvedContext.platform()
    row = await stored_context(operator_id)
    assert row is not None and row.scope == "platform"


async def test_store_failure_falls_back_to_cached_context(monkeypatch) -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    await _switch(operator_id, "tenant", target_tenant_id=tenant_id)

    async def _unavailable(session, account_id):
        raise OperationalError("SELECT active_contexts", {}, Exception("store down"))

    monkeypatch.setattr(contexts_repo, "get_active_context", _unavailable)
    assert await _resolve(operator_id) == ResolvedContext(scope="tenant", tenant_id=tenant_id)

    reset_context_cache()
    assert await _resolve(operator_id) == ResolvedContext.platform()


def test_context_cache_remembers_until_invalidated() -> None:
    context = ResolvedContext.build("tenant", tenant_id="tenant-1")
    remember_context("acct-cache", context)
    assert cached_context("acct-cache") == context
    invalidate_context("acct-cache")
    assert cached_context("acct-cache") is None


def test_context_cache_entry_expires_with_zero_ttl(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "context_cache_ttl_s", 0)
    remember_context("acct-cache", ResolvedContext.platform())
    assert cached_context("acct-cache") is None


async def test_non_operator_returns_bootstrapped_row_idempotently() -> None:
    account_id = await create_account(role=ROLE_TENANT_ADMIN)
    tenant_id = await create_tenant()
    await add_member(tenant_id=tenant_id, account_id=account_id, role=ROLE_TENANT_ADMIN)
    async with SessionLocal() as session:
        await ensure_fixed_context(
            session, account_id=account_id, role=ROLE_TENANT_ADMIN, tenant_id=tenant_id
        )

    first = await _resolve(account_id)
    second = await _resolve(account_id)
    assert first == second == ResolvedContext(scope="tenant", tenant_id=tenant_id)


async def test_non_operator_without_row_derives_from_membership() -> None:
    account_id = await create_account(role=ROLE_TENANT_MEMBER)
    tenant_id = await create_tenant()
    await add_member(tenant_id=tenant_id, account_id=account_id)

    assert await _resolve(account_id) == ResolvedContext(scope="tenant", tenant_id=tenant_id)
    # Derivation never writes a row.
    assert await stored_context(account_id) is None


async def test_customer_user_derives_from_linked_record() -> None:
    account_id = await create_account(role=ROLE_CUSTOMER_USER)
    tenant_id = await create_tenant()
    customer_id = await create_customer(tenant_id=tenant_id, account_id=account_id)

    assert await _resolve(account_id) == ResolvedContext(scope="customer", customer_id=customer_id)


async def test_non_operator_without_binding_is_not_configured() -> None:
    account_id = await create_account(role=ROLE_TENANT_MEMBER)
    with pytest.raises(ContextNotConfigured):
        await _resolve(account_id)


async def test_resolve_unknown_account_is_unauthorized() -> None:
    with pytest.raises(Unauthorized):
        await _resolve("acct-missing")


async def test_require_active_tenant_id_maps_scopes() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    customer_id = await create_customer(tenant_id=tenant_id)

    async with SessionLocal() as session:
        with pytest.raises(ContextNotConfigured):
            await require_active_tenant_id(session, account_id=operator_id)

    await _switch(operator_id, "customer", target_customer_id=customer_id)
    async with SessionLocal() as session:
        assert await require_active_tenant_id(session, account_id=operator_id) == tenant_id

    await _switch(operator_id, "tenant", target_tenant_id=tenant_id)
    async with SessionLocal() as session:
        assert await require_active_tenant_id(session, account_id=operator_id) == tenant_id


def test_resolved_context_build_enforces_binding_shape() -> None:
    assert ResolvedContext.build("platform", tenant_id="ignored") == ResolvedContext.platform()
    assert ResolvedContext.build("tenant", tenant_id="t1", customer_id="c1").customer_id is None
    assert ResolvedContext.build("customer", tenant_id="t1", customer_id="c1").tenant_id is None
    with pytest.raises(ValueError):
        ResolvedContext.build("tenant")
    with pytest.raises(ValueError):
        ResolvedContext.build("customer")
