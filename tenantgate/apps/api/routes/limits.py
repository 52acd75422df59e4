from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import Identity, get_db, get_identity, require_tenant_access
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES, PLAN_LIMIT_RESPONSE
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.services.plan_limits import (
    RESOURCE_TYPES,
    check_plan_limit,
    enforce_plan_limit,
    get_usage_summary,
)


router = APIRouter(
    prefix="/tenants/{tenant_id}",
    tags=["plan-limits"],
    responses={**DEFAULT_ERROR_RESPONSES, **PLAN_LIMIT_RESPONSE},
)


class LimitCheckRequest(BaseModel):
    context: str | None = Field(default=None, max_length=256)
    # Raise 402 instead of returning a denied decision.
    enforce: bool = False


class LimitDecisionResponse(BaseModel):
    allowed: bool
    resource_type: str
    current: int | None
    limit: int | None
    reason: str | None


class ResourceUsageResponse(BaseModel):
    resource_type: str
    current: int
    limit: int | None
    remaining: int | None


@router.get("/usage", response_model=SuccessEnvelope[list[ResourceUsageResponse]])
async def get_tenant_usage(
    tenant_id: str,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await require_tenant_access(db, identity, tenant_id)
    usage = await get_usage_summary(db, tenant_id)
    data = [
        ResourceUsageResponse(
            resource_type=item.resource_type,
            current=item.current,
            limit=item.limit,
            remaining=item.remaining,
        ).model_dump()
        for item in usage
    ]
    return success_response(request=request, data=data)


@router.post(
    "/limits/{resource_type}/check",
    response_model=SuccessEnvelope[LimitDecisionResponse],
)
async def check_tenant_limit(
    tenant_id: str,
    resource_type: str,
    request: Request,
    payload: LimitCheckRequest | None = None,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if resource_type not in RESOURCE_TYPES:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "UNSUPPORTED_RESOURCE_TYPE",
                "message": f"Unsupported resource type: {resource_type}",
                "allowed": list(RESOURCE_TYPES),
            },
        )
    await require_tenant_access(db, identity, tenant_id)
    body = payload or LimitCheckRequest()
    check = enforce_plan_limit if body.enforce else check_plan_limit
    decision = await check(
        db,
        tenant_id=tenant_id,
        resource_type=resource_type,
        actor_account_id=identity.account_id,
        context=body.context,
        request=request,
    )
    return success_response(request=request, data=decision.as_dict())
