from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import FeatureFlag, TenantFeatureFlag
from tenantgate.persistence.guards import tenant_predicate, upsert_insert


async def get_flag_by_key(session: AsyncSession, key: str) -> FeatureFlag | None:
    result = await session.execute(
        select(FeatureFlag)
        .where(FeatureFlag.key == key)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_flags(session: AsyncSession) -> list[FeatureFlag]:
    result = await session.execute(select(FeatureFlag).order_by(FeatureFlag.key))
    return list(result.scalars().all())


async def create_flag(
    session: AsyncSession,
    *,
    key: str,
    name: str,
    description: str | None,
    enabled: bool,
    updated_by: str | None,
) -> FeatureFlag:
    # Unique key guards against duplicate lazy creation; the loser re-reads.
    stmt = upsert_insert(session, FeatureFlag).values(
        key=key,
        name=name,
        description=description,
        enabled=enabled,
        updated_by=updated_by,
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=[FeatureFlag.key])
    await session.execute(stmt)
    flag = await get_flag_by_key(session, key)
    if flag is None:
        raise RuntimeError(f"feature flag insert failed for key {key}")
    return flag


async def get_override(
    session: AsyncSession, *, tenant_id: str, flag_id: str
) -> TenantFeatureFlag | None:
    result = await session.execute(
        select(TenantFeatureFlag)
        .where(tenant_predicate(TenantFeatureFlag, tenant_id), TenantFeatureFlag.flag_id == flag_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_overrides_for_tenant(
    session: AsyncSession, tenant_id: str
) -> list[TenantFeatureFlag]:
    result = await session.execute(
        select(TenantFeatureFlag).where(tenant_predicate(TenantFeatureFlag, tenant_id))
    )
    return list(result.scalars().all())


async def upsert_override(
    session: AsyncSession,
    *,
    tenant_id: str,
    flag_id: str,
    enabled: bool,
    updated_by: str | None,
) -> None:
    now = datetime.now(timezone.utc)
    stmt = upsert_insert(session, TenantFeatureFlag).values(
        tenant_id=tenant_id,
        flag_id=flag_id,
        enabled=enabled,
        updated_by=updated_by,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[TenantFeatureFlag.tenant_id, TenantFeatureFlag.flag_id],
        set_={"enabled": enabled, "updated_by": updated_by, "updated_at": now},
    )
    await session.execute(stmt)


async def delete_override(session: AsyncSession, *, tenant_id: str, flag_id: str) -> None:
    await session.execute(
        delete(TenantFeatureFlag).where(
            tenant_predicate(TenantFeatureFlag, tenant_id),
            TenantFeatureFlag.flag_id == flag_id,
        )
    )
