from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from tierdraw.db.engine import make_engine

LOTTERY_TABLES = {
    "lotteries",
    "lottery_organizations",
    "lottery_campaigns",
    "lottery_tiers",
    "lottery_winners",
    "randomness_requests",
    "role_grants",
}


def upgrade_db(target_revision: str = "head") -> None:
    """Run the Alembic migrations shipped under ``alembic/versions``."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def missing_tables() -> set[str]:
    """Return the lottery tables the configured database does not have yet."""
    engine = make_engine()
    return LOTTERY_TABLES - set(inspect(engine).get_table_names())


def main() -> int:
    upgrade_db()
    missing = missing_tables()
    if missing:
        print("Missing tables after upgrade:", ", ".join(sorted(missing)))
        return 1
    print("Lottery schema is up to date.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
