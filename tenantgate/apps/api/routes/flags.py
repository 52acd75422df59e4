from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import (
    Identity,
    get_db,
    get_identity,
    require_platform_operator,
    require_tenant_access,
)
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.services.feature_flags import (
    clear_override,
    resolve_all,
    set_global_flag,
    set_override,
)


router = APIRouter(tags=["feature-flags"], responses=DEFAULT_ERROR_RESPONSES)


class FlagToggleRequest(BaseModel):
    enabled: bool


class ResolvedFlagResponse(BaseModel):
    key: str
    name: str
    description: str | None
    global_enabled: bool
    override: bool | None
    effective_enabled: bool


class GlobalFlagResponse(BaseModel):
    key: str
    name: str
    description: str | None
    enabled: bool
    updated_by: str | None


@router.get("/tenants/{tenant_id}/flags", response_model=SuccessEnvelope[list[ResolvedFlagResponse]])
async def list_tenant_flags(
    tenant_id: str,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await require_tenant_access(db, identity, tenant_id)
    flags = await resolve_all(db, tenant_id)
    return success_response(request=request, data=[flag.as_dict() for flag in flags])


@router.put(
    "/tenants/{tenant_id}/flags/{flag_key}",
    response_model=SuccessEnvelope[ResolvedFlagResponse],
)
async def put_tenant_flag_override(
    tenant_id: str,
    flag_key: str,
    payload: FlagToggleRequest,
    request: Request,
    identity: Identity = Depends(require_platform_operator),
    db: AsyncSession = Depends(get_db),
) -> dict:
    flag = await set_override(
        db,
        actor_account_id=identity.account_id,
        tenant_id=tenant_id,
        flag_key=flag_key,
        enabled=payload.enabled,
        request=request,
    )
    return success_response(request=request, data=flag.as_dict())


@router.delete(
    "/tenants/{tenant_id}/flags/{flag_key}",
    response_model=SuccessEnvelope[ResolvedFlagResponse],
)
async def delete_tenant_flag_override(
    tenant_id: str,
    flag_key: str,
    request: Request,
    identity: Identity = Depends(require_platform_operator),
    db: AsyncSession = Depends(get_db),
) -> dict:
    flag = await clear_override(
        db,
        actor_account_id=identity.account_id,
        tenant_id=tenant_id,
        flag_key=flag_key,
        request=request,
    )
    return success_response(request=request, data=flag.as_dict())


@router.put("/flags/{flag_key}", response_model=SuccessEnvelope[GlobalFlagResponse])
async def put_global_flag(
    flag_key: str,
    payload: FlagToggleRequest,
    request: Request,
    identity: Identity = Depends(require_platform_operator),
    db: AsyncSession = Depends(get_db),
) -> dict:
    flag = await set_global_flag(
        db,
        actor_account_id=identity.account_id,
        flag_key=flag_key,
        enabled=payload.enabled,
        request=request,
    )
    data = GlobalFlagResponse(
        key=flag.key,
        name=flag.name,
        description=flag.description,
        enabled=flag.enabled,
        updated_by=flag.updated_by,
    )
    return success_response(request=request, data=data.model_dump())
