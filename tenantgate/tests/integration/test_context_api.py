from __future__ import annotations

from tenantgate.core.config import get_settings
from tenantgate.domain.models import Account
from tenantgate.persistence.db import SessionLocal
from tenantgate.services.auth.roles import ROLE_PLATFORM_OPERATOR, ROLE_TENANT_ADMIN
from tenantgate.tests.utils.auth import bearer, cookie_header, session_token_for
from tenantgate.tests.utils.client import api_request
from tenantgate.tests.utils.seed import add_member, audit_events, create_account, create_tenant


async def test_operator_switches_context_over_http() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    tenant_id = await create_tenant()
    headers = bearer(await session_token_for(operator_id))

    initial = await api_request("GET", "/v1/context", headers=headers)
    assert initial.status_code == 200
    assert initial.json()["data"] == {
        "scope": "platform",
        "tenant_id": None,
        "customer_id": None,
        "impersonating": False,
    }

    switched = await api_request(
        "POST",
        "/v1/context/switch",
        headers={**headers, "X-Request-Id": "req-switch"},
        json={"scope": "tenant", "tenant_id": tenant_id},
    )
    assert switched.status_code == 200
    body = switched.json()
    assert body["data"]["scope"] == "tenant"
    assert body["data"]["tenant_id"] == tenant_id
    assert body["meta"] == {"request_id": "req-switch", "api_version": "v1"}
    assert switched.headers["X-Request-Id"] == "req-switch"

    current = await api_request("GET", "/v1/context", headers=headers)
    assert current.json()["data"]["tenant_id"] == tenant_id

    events = await audit_events("context.switched")
    assert len(events) == 1
    assert events[0].request_id == "req-switch"


async def test_session_cookie_authenticates_when_no_bearer_is_sent() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    token = await session_token_for(operator_id)
    cookies = cookie_header({get_settings().session_cookie_name: token})

    response = await api_request("GET", "/v1/context", headers=cookies)
    assert response.status_code == 200
    assert response.json()["data"]["scope"] == "platform"


async def test_switch_to_missing_tenant_returns_not_found_envelope() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    headers = bearer(await session_token_for(operator_id))

    response = await api_request(
        "POST",
        "/v1/context/switch",
        headers=headers,
        json={"scope": "tenant", "tenant_id": "tenant-missing"},
    )
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["details"] == {"tenant_id": "tenant-missing"}
    assert body["meta"]["api_version"] == "v1"


async def test_tenant_admin_cannot_switch() -> None:
    tenant_id = await create_tenant()
    admin_id = await create_account(role=ROLE_TENANT_ADMIN)
    await add_member(tenant_id=tenant_id, account_id=admin_id, role=ROLE_TENANT_ADMIN)
    headers = bearer(await session_token_for(admin_id))

    current = await api_request("GET", "/v1/context", headers=headers)
    assert current.json()["data"]["tenant_id"] == tenant_id

    response = await api_request("POST", "/v1/context/switch", headers=headers, json={"scope": "platform"})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


async def test_unknown_scope_is_a_validation_error() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    headers = bearer(await session_token_for(operator_id))
    response = await api_request("POST", "/v1/context/switch", headers=headers, json={"scope": "galaxy"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"


async def test_missing_or_malformed_credentials_are_unauthorized() -> None:
    missing = await api_request("GET", "/v1/context")
    assert missing.status_code == 401
    assert missing.headers["WWW-Authenticate"] == "Bearer"
    assert missing.json()["error"]["code"] == "AUTH_UNAUTHORIZED"

    malformed = await api_request("GET", "/v1/context", headers={"Authorization": "Token abc"})
    assert malformed.status_code == 401

    garbage = await api_request("GET", "/v1/context", headers=bearer("not-a-token"))
    assert garbage.status_code == 401


async def test_suspended_account_token_is_rejected() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    token = await session_token_for(operator_id)
    async with SessionLocal() as session:
        account = await session.get(Account, operator_id)
        assert account is not None
        account.status = "suspended"
        await session.commit()

    response = await api_request("GET", "/v1/context", headers=bearer(token))
    assert response.status_code == 401
