from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.domain.models import AuditEvent


# Columns an operator may filter on by exact match.
FILTERABLE_COLUMNS = ("tenant_id", "actor_id", "action", "resource_type", "resource_id")


async def list_events(
    session: AsyncSession,
    *,
    filters: dict[str, str | None] | None = None,
    occurred_from: datetime | None = None,
    occurred_to: datetime | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditEvent]:
    """Newest-first page of audit events across all tenants.

    Unknown filter names raise ``ValueError``; empty values are ignored.
    """
    stmt = select(AuditEvent)
    for name, value in (filters or {}).items():
        if name not in FILTERABLE_COLUMNS:
            raise ValueError(f"Unsupported audit filter: {name}")
        if value:
            stmt = stmt.where(getattr(AuditEvent, name) == value)
    if occurred_from is not None:
        stmt = stmt.where(AuditEvent.occurred_at >= occurred_from)
    if occurred_to is not None:
        stmt = stmt.where(AuditEvent.occurred_at <= occurred_to)
    stmt = stmt.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
