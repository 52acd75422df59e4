from __future__ import annotations

import asyncio

from sqlalchemy import select

from tenantgate.core.logging import configure_logging
from tenantgate.domain.models import (
    Account,
    CustomerRecord,
    Deal,
    Plan,
    Tenant,
    TenantMembership,
    Ticket,
)
from tenantgate.persistence.db import SessionLocal, engine
from tenantgate.services.auth.roles import (
    ROLE_CUSTOMER_USER,
    ROLE_PLATFORM_OPERATOR,
    ROLE_TENANT_ADMIN,
)


DEMO_PLAN_ID = "plan-starter"
DEMO_TENANT_ID = "tenant-demo"
DEMO_OPERATOR_ID = "acct-operator"
DEMO_ADMIN_ID = "acct-tenant-admin"
DEMO_CUSTOMER_ACCOUNT_ID = "acct-customer"
DEMO_CUSTOMER_ID = "customer-demo"


async def _seed() -> bool:
    # Idempotent: rows are only inserted when the demo tenant is missing.
    async with SessionLocal() as session:
        existing = await session.execute(select(Tenant.id).where(Tenant.id == DEMO_TENANT_ID))
        if existing.scalar_one_or_none() is not None:
            return False

        session.add(
            Plan(
                id=DEMO_PLAN_ID,
                name="Starter",
                slug="starter",
                limits_json={"users": 5, "clients": 100, "deals": 500, "tickets": 0},
            )
        )
        session.add_all(
            [
                Account(id=DEMO_OPERATOR_ID, email="operator@example.com", name="Operator", role=ROLE_PLATFORM_OPERATOR),
                Account(id=DEMO_ADMIN_ID, email="admin@demo.example.com", name="Tenant Admin", role=ROLE_TENANT_ADMIN),
                Account(
                    id=DEMO_CUSTOMER_ACCOUNT_ID,
                    email="buyer@customer.example.com",
                    name="Customer Buyer",
                    role=ROLE_CUSTOMER_USER,
                ),
            ]
        )
        await session.flush()
        session.add(
            Tenant(
                id=DEMO_TENANT_ID,
                name="Demo Agency",
                slug="demo-agency",
                status="active",
                plan_id=DEMO_PLAN_ID,
                max_members=10,
                max_clients=100,
            )
        )
        await session.flush()
        session.add(TenantMembership(tenant_id=DEMO_TENANT_ID, account_id=DEMO_ADMIN_ID, role=ROLE_TENANT_ADMIN))
        session.add(
            CustomerRecord(
                id=DEMO_CUSTOMER_ID,
                tenant_id=DEMO_TENANT_ID,
                account_id=DEMO_CUSTOMER_ACCOUNT_ID,
                name="Customer Co",
                email="buyer@customer.example.com",
            )
        )
        await session.flush()
        session.add(Deal(tenant_id=DEMO_TENANT_ID, customer_id=DEMO_CUSTOMER_ID, title="Website redesign"))
        session.add(Ticket(tenant_id=DEMO_TENANT_ID, subject="Login issue"))
        await session.commit()
    return True


async def seed_demo() -> None:
    try:
        seeded = await _seed()
    finally:
        await engine.dispose()
    if seeded:
        print(f"seed_demo=ok tenant_id={DEMO_TENANT_ID} operator_id={DEMO_OPERATOR_ID}")
    else:
        print("seed_demo=skipped reason=already_seeded")


def main() -> None:
    configure_logging()
    asyncio.run(seed_demo())


if __name__ == "__main__":
    main()
