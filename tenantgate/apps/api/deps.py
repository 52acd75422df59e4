from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Request, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.config import get_settings
from tenantgate.core.errors import Forbidden, NotFound, Unauthorized
from tenantgate.persistence.db import get_session
from tenantgate.persistence.repos import tenants as tenants_repo
from tenantgate.services.auth.credentials import CredentialJar
from tenantgate.services.auth.roles import is_platform_operator
from tenantgate.services.auth.session_tokens import verify_session_token
from tenantgate.services.context.resolver import require_active_tenant_id


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Identity(BaseModel):
    # Acting identity for this request; impersonation sessions act as the target.
    account_id: str
    role: str
    tenant_id: str | None = None
    customer_id: str | None = None
    impersonating: bool = False
    original_account_id: str | None = None


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Missing or invalid bearer token")
    return parts[1]


def get_credential_jar(request: Request) -> CredentialJar:
    # A bearer header wins over the session cookie; the backup only travels as a cookie.
    settings = get_settings()
    bearer = _parse_bearer_token(request.headers.get(settings.auth_header))
    return CredentialJar(
        session_token=bearer or request.cookies.get(settings.session_cookie_name),
        impersonation_backup=request.cookies.get(settings.impersonation_cookie_name),
        from_bearer=bearer is not None,
    )


def write_credential_cookies(response: Response, jar: CredentialJar) -> None:
    # Emit only the slots a service changed during this request.
    settings = get_settings()
    if "session" in jar.changed and jar.session_token:
        response.set_cookie(
            settings.session_cookie_name,
            jar.session_token,
            max_age=jar.session_max_age,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
            path="/",
        )
    if "backup" in jar.changed:
        if jar.impersonation_backup:
            response.set_cookie(
                settings.impersonation_cookie_name,
                jar.impersonation_backup,
                max_age=jar.backup_max_age,
                httponly=True,
                secure=settings.cookie_secure,
                samesite="lax",
                path="/",
            )
        else:
            response.delete_cookie(
                settings.impersonation_cookie_name,
                path="/",
                secure=settings.cookie_secure,
                httponly=True,
                samesite="lax",
            )


async def get_identity(
    jar: CredentialJar = Depends(get_credential_jar),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    claims = verify_session_token(jar.session_token)
    account = await tenants_repo.get_account(db, claims.account_id)
    if account is None or account.status != "active":
        raise Unauthorized("Account is not active")
    return Identity(
        account_id=account.id,
        role=account.role,
        tenant_id=claims.tenant_id,
        customer_id=claims.customer_id,
        impersonating=claims.impersonating,
        original_account_id=claims.original_account_id,
    )


async def require_platform_operator(identity: Identity = Depends(get_identity)) -> Identity:
    if not is_platform_operator(identity.role):
        raise Forbidden("Platform operator role required")
    return identity


async def require_tenant_access(db: AsyncSession, identity: Identity, tenant_id: str) -> None:
    # Operators may inspect any existing tenant; everyone else only their acting tenant.
    if is_platform_operator(identity.role):
        if not await tenants_repo.tenant_exists(db, tenant_id):
            raise NotFound("Tenant not found", details={"tenant_id": tenant_id})
        return
    acting_tenant_id = await require_active_tenant_id(
        db, account_id=identity.account_id, role=identity.role
    )
    if acting_tenant_id != tenant_id:
        raise Forbidden("Tenant scope does not match the current context")
