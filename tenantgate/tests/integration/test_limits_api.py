from __future__ import annotations

from tenantgate.services.auth.roles import ROLE_PLATFORM_OPERATOR, ROLE_TENANT_ADMIN
from tenantgate.tests.utils.auth import bearer, session_token_for
from tenantgate.tests.utils.client import api_request
from tenantgate.tests.utils.seed import (
    add_deals,
    add_member,
    audit_events,
    create_account,
    create_customer,
    create_tenant,
)


async def test_usage_panel_lists_every_resource_type() -> None:
    tenant_id = await create_tenant(plan_limits={"clients": 3})
    admin_id = await create_account(role=ROLE_TENANT_ADMIN)
    await add_member(tenant_id=tenant_id, account_id=admin_id, role=ROLE_TENANT_ADMIN)
    await create_customer(tenant_id=tenant_id)
    headers = bearer(await session_token_for(admin_id))

    response = await api_request("GET", f"/v1/tenants/{tenant_id}/usage", headers=headers)
    assert response.status_code == 200
    usage = {item["resource_type"]: item for item in response.json()["data"]}
    assert usage["clients"] == {"resource_type": "clients", "current": 1, "limit": 3, "remaining": 2}
    assert usage["users"]["current"] == 1
    assert usage["users"]["limit"] is None


async def test_limit_check_returns_decision_and_enforce_returns_402() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    headers = bearer(await session_token_for(operator_id))
    tenant_id = await create_tenant(plan_limits={"deals": 2})
    await add_deals(tenant_id=tenant_id, count=2)

    check = await api_request(
        "POST",
        f"/v1/tenants/{tenant_id}/limits/deals/check",
        headers=headers,
        json={"context": "deal.create"},
    )
    assert check.status_code == 200
    assert check.json()["data"] == {
        "allowed": False,
        "resource_type": "deals",
        "current": 2,
        "limit": 2,
        "reason": "plan limit reached",
    }

    enforced = await api_request(
        "POST",
        f"/v1/tenants/{tenant_id}/limits/deals/check",
        headers=headers,
        json={"enforce": True},
    )
    assert enforced.status_code == 402
    error = enforced.json()["error"]
    assert error["code"] == "PLAN_LIMIT_REACHED"
    assert error["details"] == {"resource_type": "deals", "current": 2, "limit": 2}

    events = await audit_events("limit_blocked")
    assert len(events) == 2
    assert events[0].metadata_json["context"] == "deal.create"
    assert all(event.outcome == "failure" for event in events)


async def test_limit_check_without_body_allows_under_limit() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    headers = bearer(await session_token_for(operator_id))
    tenant_id = await create_tenant(plan_limits={"deals": 2})

    response = await api_request("POST", f"/v1/tenants/{tenant_id}/limits/deals/check", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["allowed"] is True
    assert response.json()["data"]["current"] == 0


async def test_unsupported_resource_type_is_rejected() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    headers = bearer(await session_token_for(operator_id))
    tenant_id = await create_tenant()

    response = await api_request("POST", f"/v1/tenants/{tenant_id}/limits/widgets/check", headers=headers)
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "UNSUPPORTED_RESOURCE_TYPE"
    assert error["details"]["allowed"] == ["users", "clients", "deals", "tickets"]


async def test_usage_for_unknown_tenant_is_not_found() -> None:
    operator_id = await create_account(role=ROLE_PLATFORM_OPERATOR)
    headers = bearer(await session_token_for(operator_id))
    response = await api_request("GET", "/v1/tenants/tenant-missing/usage", headers=headers)
    assert response.status_code == 404
