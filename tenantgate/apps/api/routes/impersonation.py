from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.apps.api.deps import (
    Identity,
    get_credential_jar,
    get_db,
    get_identity,
    write_credential_cookies,
)
from tenantgate.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantgate.apps.api.response import SuccessEnvelope, success_response
from tenantgate.services.auth.credentials import CredentialJar
from tenantgate.services.impersonation import impersonate, stop_impersonation


router = APIRouter(prefix="/impersonation", tags=["impersonation"], responses=DEFAULT_ERROR_RESPONSES)


class ImpersonationRequest(BaseModel):
    target_account_id: str = Field(min_length=1)


class ImpersonationResponse(BaseModel):
    target_account_id: str
    role: str
    tenant_id: str | None
    customer_id: str | None
    expires_at: str
    redirect_to: str


class ImpersonationStopResponse(BaseModel):
    restored: bool
    account_id: str | None
    redirect_to: str


@router.post("", response_model=SuccessEnvelope[ImpersonationResponse])
async def start_impersonation(
    payload: ImpersonationRequest,
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),
    jar: CredentialJar = Depends(get_credential_jar),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # The new credential only travels back as a cookie; the body carries no secrets.
    operator_account_id = identity.original_account_id if identity.impersonating else identity.account_id
    grant = await impersonate(
        db,
        operator_account_id=operator_account_id or identity.account_id,
        target_account_id=payload.target_account_id,
        jar=jar,
        request=request,
    )
    write_credential_cookies(response, jar)
    data = ImpersonationResponse(
        target_account_id=grant.target_account_id,
        role=grant.role,
        tenant_id=grant.tenant_id,
        customer_id=grant.customer_id,
        expires_at=grant.expires_at.isoformat(),
        redirect_to=grant.redirect_to,
    )
    return success_response(request=request, data=data.model_dump())


@router.post("/stop", response_model=SuccessEnvelope[ImpersonationStopResponse])
async def stop_current_impersonation(
    request: Request,
    response: Response,
    jar: CredentialJar = Depends(get_credential_jar),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # No identity dependency: an expired impersonation credential must still be able to stop.
    result = await stop_impersonation(db, jar=jar, request=request)
    write_credential_cookies(response, jar)
    data = ImpersonationStopResponse(
        restored=result.restored,
        account_id=result.account_id,
        redirect_to=result.redirect_to,
    )
    return success_response(request=request, data=data.model_dump())
