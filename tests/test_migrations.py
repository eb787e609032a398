from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from linkpay.config import settings


def test_ledger_migrations_upgrade_and_downgrade(tmp_path):
    repo_root = Path(__file__).resolve().parents[1]
    db_path = tmp_path / "ledger_migration.db"
    async_db_url = f"sqlite+aiosqlite:///{db_path}"
    sync_db_url = f"sqlite:///{db_path}"

    alembic_cfg = Config(str(repo_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(repo_root / "alembic"))

    original_db_url = settings.database_url
    settings.database_url = async_db_url

    engine = create_engine(sync_db_url)
    try:
        command.upgrade(alembic_cfg, "head")

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())
        for table in (
            "affiliates",
            "links",
            "click_events",
            "daily_analytics",
            "commissions",
            "payouts",
            "audit_logs",
        ):
            assert table in table_names

        commission_uniques = {
            tuple(constraint["column_names"]) for constraint in inspector.get_unique_constraints("commissions")
        }
        assert ("unique_id",) in commission_uniques
        daily_uniques = {
            tuple(constraint["column_names"]) for constraint in inspector.get_unique_constraints("daily_analytics")
        }
        assert ("date", "link_key", "affiliate_id") in daily_uniques

        command.downgrade(alembic_cfg, "20261019_01")
        assert "audit_logs" not in set(inspect(engine).get_table_names())

        command.downgrade(alembic_cfg, "base")
        table_names = set(inspect(engine).get_table_names())
        assert "commissions" not in table_names
        assert "affiliates" not in table_names
    finally:
        engine.dispose()
        settings.database_url = original_db_url
