from __future__ import annotations

import uvicorn

from tenantgate.apps.api.main import create_app
from tenantgate.core.config import get_settings


def main() -> None:
    # Serve the API with env-driven bind settings for local runs and compose.
    settings = get_settings()
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
