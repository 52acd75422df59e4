from __future__ import annotations

import argparse
import asyncio
import sys

from tenantgate.core.errors import TenantGateError
from tenantgate.core.logging import configure_logging
from tenantgate.persistence.db import SessionLocal, engine
from tenantgate.services.auth.credentials import CredentialJar
from tenantgate.services.auth.sign_in import sign_in


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sign in an account and print its session credential")
    parser.add_argument("--account-id", required=True, help="Account identifier")
    return parser


async def _issue(args: argparse.Namespace) -> int:
    jar = CredentialJar()
    async with SessionLocal() as session:
        try:
            claims = await sign_in(session, account_id=args.account_id, jar=jar)
        except TenantGateError as exc:
            print(f"error={exc.code} message={exc.message}", file=sys.stderr)
            return 1
    await engine.dispose()
    print(f"account_id={claims.account_id}")
    print(f"role={claims.role}")
    print(f"expires_at={claims.expires_at.isoformat()}")
    # Raw credential is printed once; treat it like a password.
    print(f"session_token={jar.session_token}")
    return 0


def main() -> None:
    args = _build_parser().parse_args()
    configure_logging()
    sys.exit(asyncio.run(_issue(args)))


if __name__ == "__main__":
    main()
