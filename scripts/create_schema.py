from __future__ import annotations

import argparse

from tenantgate.core.logging import configure_logging
from tenantgate.persistence.migrations import downgrade_to_base, upgrade_to_head


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate the TenantGate schema to the latest revision")
    parser.add_argument("--reset", action="store_true", help="Downgrade to an empty schema first")
    return parser


def main() -> int:
    # Equivalent to `alembic upgrade head`; env.py runs its own event loop.
    args = _build_parser().parse_args()
    configure_logging()
    if args.reset:
        downgrade_to_base()
    upgrade_to_head()
    print("schema_ready=true revision=head")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
