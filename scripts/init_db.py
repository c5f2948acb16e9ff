"""Database initialization helper.

Creates the configured database when it is missing. Tables are owned by the
Alembic migrations; run `alembic upgrade head` or `python scripts/migrate.py`
afterwards.

How/Why:
- The database name cannot be passed as a bind parameter for `CREATE DATABASE`,
  so it is validated as a strict identifier first.
"""

import asyncio
import os
import re
import sys

from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


_DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def _validate_database_name(db_name: str) -> str:
  """Validate a PostgreSQL database name used as an identifier."""
  if not db_name:
    raise ValueError("Target database name is empty.")
  if not _DB_NAME_PATTERN.fullmatch(db_name):
    raise ValueError("Target database name contains invalid characters (allowed: A-Z, a-z, 0-9, _).")
  return db_name


def _async_url(dsn: str):
  url = make_url(dsn)
  if url.drivername.startswith("postgresql") and "+asyncpg" not in url.drivername:
    url = url.set(drivername="postgresql+asyncpg")
  return url


async def create_database_if_not_exists(dsn: str) -> None:
  """Create the configured database if it does not already exist."""
  url = _async_url(dsn)
  target_db = _validate_database_name(url.database or "")
  print(f"Connecting to postgres to check for database '{target_db}'...")

  # CREATE DATABASE cannot run inside a transaction.
  engine = create_async_engine(url.set(database="postgres"), isolation_level="AUTOCOMMIT")
  try:
    async with engine.connect() as conn:
      result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": target_db})
      if result.scalar() == 1:
        print(f"Database '{target_db}' already exists.")
      else:
        print(f"Database '{target_db}' does not exist. Creating...")
        await conn.execute(text(f'CREATE DATABASE "{target_db}"'))
        print(f"Database '{target_db}' created successfully.")
  finally:
    await engine.dispose()


async def main() -> None:
  # Import after path setup so the script works when run directly.
  from lessonsmith.config import get_database_settings

  dsn = get_database_settings().pg_dsn
  if not dsn:
    print("Error: LESSONSMITH_PG_DSN is not set.")
    sys.exit(1)

  try:
    await create_database_if_not_exists(dsn)
  except Exception as e:  # noqa: BLE001
    print(f"Error initializing database: {e}")
    sys.exit(1)
  print("Next: run `alembic upgrade head` (or `python scripts/migrate.py`) to create the tables.")


if __name__ == "__main__":
  asyncio.run(main())
