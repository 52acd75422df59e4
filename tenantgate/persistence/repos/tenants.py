from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import (
    Account,
    CustomerRecord,
    Deal,
    Plan,
    Tenant,
    TenantMembership,
    Ticket,
)
from tenantgate.persistence.guards import tenant_predicate


TENANT_STATUS_DELETED = "deleted"


def _existing_tenant_clause():
    return (Tenant.deleted_at.is_(None)) & (Tenant.status != TENANT_STATUS_DELETED)


async def get_account(session: AsyncSession, account_id: str) -> Account | None:
    result = await session.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def get_existing_tenant(
    session: AsyncSession, tenant_id: str, *, for_update: bool = False
) -> Tenant | None:
    stmt = select(Tenant).where(Tenant.id == tenant_id, _existing_tenant_clause())
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def tenant_exists(session: AsyncSession, tenant_id: str) -> bool:
    result = await session.execute(
        select(Tenant.id).where(Tenant.id == tenant_id, _existing_tenant_clause())
    )
    return result.scalar_one_or_none() is not None


async def get_existing_customer(session: AsyncSession, customer_id: str) -> CustomerRecord | None:
    # A customer only exists while its owning tenant exists.
    result = await session.execute(
        select(CustomerRecord)
        .join(Tenant, Tenant.id == CustomerRecord.tenant_id)
        .where(CustomerRecord.id == customer_id, _existing_tenant_clause())
    )
    return result.scalar_one_or_none()


async def get_membership_for_account(
    session: AsyncSession, account_id: str
) -> TenantMembership | None:
    result = await session.execute(
        select(TenantMembership)
        .where(TenantMembership.account_id == account_id)
        .order_by(TenantMembership.created_at, TenantMembership.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_customer_for_account(
    session: AsyncSession, account_id: str
) -> CustomerRecord | None:
    result = await session.execute(
        select(CustomerRecord)
        .where(CustomerRecord.account_id == account_id)
        .order_by(CustomerRecord.created_at, CustomerRecord.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_plan(session: AsyncSession, plan_id: str) -> Plan | None:
    result = await session.execute(select(Plan).where(Plan.id == plan_id))
    return result.scalar_one_or_none()


_USAGE_MODELS = {
    "users": TenantMembership,
    "clients": CustomerRecord,
    "deals": Deal,
    "tickets": Ticket,
}


async def count_tenant_rows(session: AsyncSession, tenant_id: str, resource_type: str) -> int:
    # Count live rows for the resource type; there is no cached counter.
    model = _USAGE_MODELS[resource_type]
    result = await session.execute(
        select(func.count()).select_from(model).where(tenant_predicate(model, tenant_id))
    )
    return int(result.scalar_one() or 0)
