from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import ActiveContext
from tenantgate.persistence.guards import upsert_insert


async def get_active_context(session: AsyncSession, account_id: str) -> ActiveContext | None:
    # Always reload column values; upserts bypass the session identity map.
    result = await session.execute(
        select(ActiveContext)
        .where(ActiveContext.account_id == account_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_active_context(
    session: AsyncSession,
    *,
    account_id: str,
    scope: str,
    tenant_id: str | None,
    customer_id: str | None,
) -> None:
    # Insert-or-update keyed by account id; concurrent writers resolve as last write wins.
    values = {
        "scope": scope,
        "tenant_id": tenant_id,
        "customer_id": customer_id,
        "updated_at": datetime.now(timezone.utc),
    }
    stmt = upsert_insert(session, ActiveContext).values(account_id=account_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=[ActiveContext.account_id], set_=values)
    await session.execute(stmt)
