from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

from tenantgate.core.config import get_settings


ALEMBIC_DIR = Path(__file__).resolve().parent / "alembic"


def alembic_config(database_url: str | None = None) -> Config:
    # Built in code so the installed package migrates without an alembic.ini on disk.
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    url = database_url or get_settings().database_url
    # configparser interpolation treats "%" specially (URL-encoded passwords).
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def upgrade_to_head(database_url: str | None = None) -> None:
    command.upgrade(alembic_config(database_url), "head")


def downgrade_to_base(database_url: str | None = None) -> None:
    command.downgrade(alembic_config(database_url), "base")
