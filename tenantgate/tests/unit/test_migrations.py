from __future__ import annotations

from sqlalchemy import create_engine, inspect, text

from tenantgate.domain.models import Base
from tenantgate.persistence.migrations import downgrade_to_base, upgrade_to_head


def test_upgrade_head_matches_declarative_models(tmp_path) -> None:
    db_path = tmp_path / "migrated.db"
    # Sync test: env.py drives its own event loop.
    upgrade_to_head(f"sqlite+aiosqlite:///{db_path}")

    reader = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(reader)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            migrated = {column["name"] for column in inspector.get_columns(name)}
            assert migrated == set(table.columns.keys()), name
        with reader.connect() as conn:
            ddl = conn.execute(
                text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'active_contexts'")
            ).scalar_one()
            revision = conn.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
        assert "ck_active_contexts_scope_binding" in ddl
        assert revision == "0001_init"
    finally:
        reader.dispose()


def test_downgrade_base_drops_every_table(tmp_path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}"
    upgrade_to_head(url)
    downgrade_to_base(url)

    reader = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")
    try:
        assert set(inspect(reader).get_table_names()) == {"alembic_version"}
    finally:
        reader.dispose()
