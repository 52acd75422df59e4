from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import Identity, get_db, get_identity
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.services.context.resolver import resolve_context
from tenantgate.services.context.switcher import switch_context
from tenantgate.services.context.types import ResolvedContext


router = APIRouter(prefix="/context", tags=["context"], responses=DEFAULT_ERROR_RESPONSES)


class ContextSwitchRequest(BaseModel):
    scope: Literal["platform", "tenant", "customer"]
    tenant_id: str | None = None
    customer_id: str | None = None


class ContextResponse(BaseModel):
    scope: str
    tenant_id: str | None
    customer_id: str | None
    impersonating: bool = False


def _to_response(context: ResolvedContext, identity: Identity) -> ContextResponse:
    return ContextResponse(
        scope=context.scope,
        tenant_id=context.tenant_id,
        customer_id=context.customer_id,
        impersonating=identity.impersonating,
    )


@router.get("", response_model=SuccessEnvelope[ContextResponse])
async def get_current_context(
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    context = await resolve_context(db, account_id=identity.account_id, role=identity.role)
    return success_response(request=request, data=_to_response(context, identity).model_dump())


@router.post("/switch", response_model=SuccessEnvelope[ContextResponse])
async def switch_current_context(
    payload: ContextSwitchRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> dict:
    context = await switch_context(
        db,
        account_id=identity.account_id,
        target_scope=payload.scope,
        target_tenant_id=payload.tenant_id,
        target_customer_id=payload.customer_id,
        request=request,
    )
    return success_response(request=request, data=_to_response(context, identity).model_dump())
