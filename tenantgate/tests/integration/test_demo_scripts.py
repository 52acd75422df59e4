from __future__ import annotations

import argparse

from scripts import issue_session_token as issue_session_token_script
from scripts import seed_demo as seed_demo_script
from tenantgate.persistence.db import SessionLocal
from tenantgate.services.auth.session_tokens import verify_session_token
from tenantgate.services.plan_limits import check_plan_limit
from tenantgate.tests.utils.seed import stored_context


async def test_seed_demo_is_idempotent() -> None:
    assert await seed_demo_script._seed() is True
    assert await seed_demo_script._seed() is False

    async with SessionLocal() as session:
        decision = await check_plan_limit(
            session, tenant_id=seed_demo_script.DEMO_TENANT_ID, resource_type="users"
        )
    assert (decision.current, decision.limit) == (1, 5)


async def test_issue_session_token_signs_in_demo_admin(capsys) -> None:
    await seed_demo_script._seed()
    args = argparse.Namespace(account_id=seed_demo_script.DEMO_ADMIN_ID)

    assert await issue_session_token_script._issue(args) == 0
    lines = dict(line.split("=", 1) for line in capsys.readouterr().out.strip().splitlines())
    claims = verify_session_token(lines["session_token"])
    assert claims.account_id == seed_demo_script.DEMO_ADMIN_ID
    assert claims.tenant_id == seed_demo_script.DEMO_TENANT_ID

    row = await stored_context(seed_demo_script.DEMO_ADMIN_ID)
    assert row is not None and row.tenant_id == seed_demo_script.DEMO_TENANT_ID


async def test_issue_session_token_rejects_unknown_account(capsys) -> None:
    args = argparse.Namespace(account_id="acct-missing")
    assert await issue_session_token_script._issue(args) == 1
    assert "error=AUTH_UNAUTHORIZED" in capsys.readouterr().err
