from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import select

from tenantgate.domain.models import (
    Account,
    ActiveContext,
    AuditEvent,
    CustomerRecord,
    Deal,
    Plan,
    Tenant,
    TenantMembership,
    Ticket,
)
from tenantgate.persistence.db import SessionLocal
from tenantgate.services.auth.roles import ROLE_TENANT_MEMBER


def _suffix() -> str:
    return uuid4().hex[:10]


async def create_account(*, role: str, status: str = "active") -> str:
    account_id = f"acct-{_suffix()}"
    async with SessionLocal() as session:
        session.add(
            Account(
                id=account_id,
                email=f"{account_id}@example.com",
                name=f"Account {account_id}",
                role=role,
                status=status,
            )
        )
        await session.commit()
    return account_id


async def create_tenant(
    *,
    plan_limits: dict[str, Any] | None = None,
    max_members: int | None = None,
    max_clients: int | None = None,
    status: str = "active",
) -> str:
    tenant_id = f"tenant-{_suffix()}"
    async with SessionLocal() as session:
        plan_id = None
        if plan_limits is not None:
            plan_id = f"plan-{_suffix()}"
            session.add(Plan(id=plan_id, name="Test plan", limits_json=plan_limits))
            await session.flush()
        session.add(
            Tenant(
                id=tenant_id,
                name=f"Tenant {tenant_id}",
                slug=tenant_id,
                status=status,
                plan_id=plan_id,
                max_members=max_members,
                max_clients=max_clients,
            )
        )
        await session.commit()
    return tenant_id


async def add_member(*, tenant_id: str, account_id: str, role: str = ROLE_TENANT_MEMBER) -> None:
    async with SessionLocal() as session:
        session.add(TenantMembership(tenant_id=tenant_id, account_id=account_id, role=role))
        await session.commit()


async def add_members(*, tenant_id: str, count: int, role: str) -> None:
    for _ in range(count):
        account_id = await create_account(role=role)
        await add_member(tenant_id=tenant_id, account_id=account_id, role=role)


async def create_customer(*, tenant_id: str, account_id: str | None = None) -> str:
    customer_id = f"customer-{_suffix()}"
    async with SessionLocal() as session:
        session.add(
            CustomerRecord(
                id=customer_id,
                tenant_id=tenant_id,
                account_id=account_id,
                name=f"Customer {customer_id}",
            )
        )
        await session.commit()
    return customer_id


async def add_deals(*, tenant_id: str, count: int) -> None:
    async with SessionLocal() as session:
        for index in range(count):
            session.add(Deal(tenant_id=tenant_id, title=f"Deal {index}"))
        await session.commit()


async def add_tickets(*, tenant_id: str, count: int) -> None:
    async with SessionLocal() as session:
        for index in range(count):
            session.add(Ticket(tenant_id=tenant_id, subject=f"Ticket {index}"))
        await session.commit()


async def soft_delete_tenant(tenant_id: str) -> None:
    async with SessionLocal() as session:
        tenant = await session.get(Tenant, tenant_id)
        assert tenant is not None
        tenant.status = "deleted"
        tenant.deleted_at = datetime.now(timezone.utc)
        await session.commit()


async def hard_delete_tenant(tenant_id: str) -> None:
    async with SessionLocal() as session:
        tenant = await session.get(Tenant, tenant_id)
        assert tenant is not None
        await session.delete(tenant)
        await session.commit()


async def stored_context(account_id: str) -> ActiveContext | None:
    async with SessionLocal() as session:
        return await session.get(ActiveContext, account_id)


async def audit_events(action: str | None = None) -> list[AuditEvent]:
    async with SessionLocal() as session:
        stmt = select(AuditEvent).order_by(AuditEvent.id)
        if action is not None:
            stmt = stmt.where(AuditEvent.action == action)
        result = await session.execute(stmt)
        return list(result.scalars().all())
