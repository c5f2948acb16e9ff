import asyncio
import logging
import sys
from logging.config import fileConfig
from os.path import abspath, dirname
from time import perf_counter

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Add the project root to the path so we can import 'lessonsmith'
sys.path.insert(0, dirname(dirname(abspath(__file__))))

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
  fileConfig(config.config_file_name, disable_existing_loggers=False)

# Importing the models attaches the tables to Base.metadata.
import lessonsmith.schema.sql  # noqa: E402, F401
from lessonsmith.core.database import Base, database_url  # noqa: E402
from lessonsmith.core.migrations import build_migration_context_options  # noqa: E402

target_metadata = Base.metadata

_MIGRATION_TIMER: dict[str, float | None] = {"current_start": None}
_migration_logger = logging.getLogger("alembic.runtime.migration")


def _on_version_apply(*, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
  end_time = perf_counter()
  start_time = _MIGRATION_TIMER.get("current_start")
  revision = getattr(step, "up_revision_id", None) or "unknown"
  if start_time is None:
    _migration_logger.info("Applied migration %s", revision)
  else:
    _migration_logger.info("Applied migration %s in %.3fs", revision, end_time - start_time)
  _MIGRATION_TIMER["current_start"] = perf_counter()


def _context_options() -> dict[str, object]:
  options = build_migration_context_options(target_metadata=target_metadata)
  options["on_version_apply"] = _on_version_apply
  return options


def _require_url() -> str:
  url = database_url()
  if not url:
    raise RuntimeError("LESSONSMITH_PG_DSN must be set to run migrations.")
  return url


def run_migrations_offline() -> None:
  """Emit SQL for the pending revisions instead of executing it."""
  context.configure(url=_require_url(), literal_binds=True, dialect_opts={"paramstyle": "named"}, **_context_options())
  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, **_context_options())
  migration_context = context.get_context()
  current_revision = migration_context.get_current_revision() or "base"
  target_heads = ", ".join(migration_context.script.get_heads() if migration_context.script else []) or "none"
  _migration_logger.info("Starting migration run from %s to %s", current_revision, target_heads)
  _MIGRATION_TIMER["current_start"] = perf_counter()

  with context.begin_transaction():
    context.run_migrations()

  _migration_logger.info("Completed migration run at %s", ", ".join(migration_context.get_current_heads()) or "none")


async def run_async_migrations() -> None:
  configuration = config.get_section(config.config_ini_section) or {}
  configuration["sqlalchemy.url"] = _require_url()
  connectable = async_engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)
  async with connectable.connect() as connection:
    await connection.run_sync(do_run_migrations)
  await connectable.dispose()


def run_migrations_online() -> None:
  # scripts/migrate.py hands over a connection that already holds the migration lock.
  connection = config.attributes.get("connection")
  if connection is not None:
    do_run_migrations(connection)
    return
  asyncio.run(run_async_migrations())


if context.is_offline_mode():
  run_migrations_offline()
else:
  run_migrations_online()
