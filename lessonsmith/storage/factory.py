from __future__ import annotations

from lessonsmith.config import Settings
from lessonsmith.storage.lessons_repo import ComponentsRepository, LessonsRepository
from lessonsmith.storage.postgres_lessons_repo import PostgresComponentsRepository, PostgresLessonsRepository
from lessonsmith.storage.postgres_traces_repo import PostgresTracesRepository
from lessonsmith.storage.traces_repo import TracesRepository


def _require_dsn(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("LESSONSMITH_PG_DSN must be set to enable Postgres persistence.")


def _get_repo(settings: Settings) -> LessonsRepository:
  """Return the active lessons repository."""
  _require_dsn(settings)
  return PostgresLessonsRepository()


def _get_components_repo(settings: Settings) -> ComponentsRepository:
  _require_dsn(settings)
  return PostgresComponentsRepository()


def _get_traces_repo(settings: Settings) -> TracesRepository:
  _require_dsn(settings)
  return PostgresTracesRepository()
