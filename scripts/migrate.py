"""Bring the lessonsmith database up to the latest Alembic revision.

Steps:
- create the database when it is missing (see init_db.py);
- stamp the baseline when the lesson tables already exist without Alembic history,
  which is the case for databases created by older releases with `create_all`;
- upgrade to heads.
"""

import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from alembic import command  # noqa: E402
from sqlalchemy import inspect  # noqa: E402

from lessonsmith.config import get_database_settings  # noqa: E402
from lessonsmith.core.database import Base, dispose_engine, get_db_engine  # noqa: E402
from lessonsmith.core.migrations import load_alembic_config  # noqa: E402
from lessonsmith.schema import sql  # noqa: E402, F401
from scripts.init_db import create_database_if_not_exists  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("migrate")

BASELINE_REVISION = "5a1f0c2e7b93"


async def check_db_state() -> tuple[bool, set[str]]:
  """Return whether Alembic manages the database, and the tables present."""
  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("Database engine is None. LESSONSMITH_PG_DSN is likely missing or empty.")
  try:
    async with engine.connect() as conn:

      def _inspect(sync_conn):  # type: ignore[no-untyped-def]
        tables = set(inspect(sync_conn).get_table_names())
        return "alembic_version" in tables, tables

      return await conn.run_sync(_inspect)
  finally:
    await dispose_engine()


def main() -> None:
  dsn = get_database_settings().pg_dsn
  if not dsn:
    logger.error("LESSONSMITH_PG_DSN is not set.")
    sys.exit(1)

  asyncio.run(create_database_if_not_exists(dsn))

  config = load_alembic_config()
  # Logging is already configured above.
  config.attributes["configure_logger"] = False

  has_alembic, tables = asyncio.run(check_db_state())
  expected = set(Base.metadata.tables)
  if not has_alembic and tables & expected:
    missing = expected - tables
    if missing:
      logger.error("Lesson tables exist without Alembic history and %s are missing. Manual intervention required.", ", ".join(sorted(missing)))
      sys.exit(1)
    logger.info("Existing lesson tables found without Alembic history; stamping baseline %s", BASELINE_REVISION)
    command.stamp(config, BASELINE_REVISION)

  logger.info("Applying migrations...")
  command.upgrade(config, "heads")
  logger.info("Database is at heads.")


if __name__ == "__main__":
  main()
