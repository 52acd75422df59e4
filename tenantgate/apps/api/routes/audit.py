from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import Identity, get_db, require_platform_operator
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.persistence.repos import audit as audit_repo


router = APIRouter(prefix="/audit", tags=["audit"], responses=DEFAULT_ERROR_RESPONSES)


class AuditEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    occurred_at: datetime
    tenant_id: str | None
    actor_id: str | None
    actor_role: str | None
    action: str
    outcome: str
    resource_type: str | None
    resource_id: str | None
    request_id: str | None
    ip_address: str | None
    user_agent: str | None
    metadata_json: dict[str, Any] | None


class AuditEventsPage(BaseModel):
    items: list[AuditEventOut]
    next_offset: int | None


def _filters(
    tenant_id: str | None = None,
    actor_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
) -> dict[str, str | None]:
    return {
        "tenant_id": tenant_id,
        "actor_id": actor_id,
        "action": action,
        "resource_type": resource_type,
        "resource_id": resource_id,
    }


@router.get("", response_model=SuccessEnvelope[AuditEventsPage])
async def list_audit_events(
    request: Request,
    filters: dict[str, str | None] = Depends(_filters),
    occurred_from: datetime | None = Query(default=None, alias="from"),
    occurred_to: datetime | None = Query(default=None, alias="to"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    _operator: Identity = Depends(require_platform_operator),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # One extra row tells us whether a further page exists.
    rows = await audit_repo.list_events(
        db,
        filters=filters,
        occurred_from=occurred_from,
        occurred_to=occurred_to,
        offset=offset,
        limit=limit + 1,
    )
    has_more = len(rows) > limit
    page = AuditEventsPage(
        items=[AuditEventOut.model_validate(row) for row in rows[:limit]],
        next_offset=offset + limit if has_more else None,
    )
    return success_response(request=request, data=page.model_dump(mode="json"))
