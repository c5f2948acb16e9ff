"""Postgres-backed repository for the lesson queue using SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from lessonsmith.core.database import get_session_factory
from lessonsmith.jobs.models import ComponentRecord, LessonContentRecord, LessonRecord, LessonStatus
from lessonsmith.schema.sql import Lesson, LessonComponent, LessonContent
from lessonsmith.storage.lessons_repo import ComponentsRepository, LessonsRepository

logger = logging.getLogger(__name__)


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresLessonsRepository(LessonsRepository):
  """Persist lessons and their generated content to Postgres."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_lesson(self, record: LessonRecord) -> None:
    async with self._session_factory() as session:
      session.add(Lesson(id=record.id, title=record.title, outline=record.outline, status=record.status, created_at=record.created_at, updated_at=record.updated_at))
      await session.commit()

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Lesson, lesson_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def claim_next_queued(self) -> LessonRecord | None:
    """Flip the oldest queued lesson to generating in a single statement.

    The inner SELECT takes a row lock with SKIP LOCKED, so concurrent workers
    never pick the same lesson and never wait on each other.
    """
    async with self._session_factory() as session:
      candidate = select(Lesson.id).where(Lesson.status == "queued").order_by(Lesson.created_at.asc(), Lesson.id.asc()).limit(1).with_for_update(skip_locked=True).scalar_subquery()
      stmt = update(Lesson).where(Lesson.id == candidate, Lesson.status == "queued").values(status="generating", updated_at=_now_iso()).returning(Lesson).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      logger.info("Claimed lesson %s", row.id)
      return self._model_to_record(row)

  async def claim_lesson(self, lesson_id: str) -> LessonRecord | None:
    async with self._session_factory() as session:
      stmt = update(Lesson).where(Lesson.id == lesson_id, Lesson.status == "queued").values(status="generating", updated_at=_now_iso()).returning(Lesson).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def set_status(self, lesson_id: str, status: LessonStatus, *, expected: LessonStatus | None = None) -> bool:
    async with self._session_factory() as session:
      stmt = update(Lesson).where(Lesson.id == lesson_id)
      if expected is not None:
        stmt = stmt.where(Lesson.status == expected)
      result = await session.execute(stmt.values(status=status, updated_at=_now_iso()).execution_options(synchronize_session=False))
      await session.commit()
      return bool(result.rowcount)

  async def complete_generation(self, lesson_id: str, content: LessonContentRecord) -> None:
    async with self._session_factory() as session:
      values = {"lesson_id": lesson_id, "typescript_source": content.typescript_source, "compiled_js": content.compiled_js, "version": content.version}
      upsert = insert(LessonContent).values(**values)
      upsert = upsert.on_conflict_do_update(index_elements=[LessonContent.lesson_id], set_={"typescript_source": upsert.excluded.typescript_source, "compiled_js": upsert.excluded.compiled_js, "version": LessonContent.version + 1})
      await session.execute(upsert)
      result = await session.execute(update(Lesson).where(Lesson.id == lesson_id, Lesson.status == "generating").values(status="generated", updated_at=_now_iso()).execution_options(synchronize_session=False))
      if not result.rowcount:
        await session.rollback()
        raise RuntimeError(f"Lesson {lesson_id} is not in generating status")
      await session.commit()

  async def get_content(self, lesson_id: str) -> LessonContentRecord | None:
    async with self._session_factory() as session:
      row = await session.get(LessonContent, lesson_id)
      if row is None:
        return None
      return LessonContentRecord(lesson_id=row.lesson_id, typescript_source=row.typescript_source, compiled_js=row.compiled_js, version=row.version, created_at=row.created_at)

  def _model_to_record(self, row: Lesson) -> LessonRecord:
    return LessonRecord(id=row.id, title=row.title, outline=row.outline, status=row.status, created_at=row.created_at, updated_at=row.updated_at)  # type: ignore[arg-type]


class PostgresComponentsRepository(ComponentsRepository):
  """Archive verified components keyed by content hash."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def save_component(self, record: ComponentRecord) -> None:
    async with self._session_factory() as session:
      stmt = insert(LessonComponent).values(
        component_id=record.component_id,
        lesson_id=record.lesson_id,
        name=record.name,
        meta_json=record.meta,
        pedagogy_json=record.pedagogy,
        source_text=record.source_text,
        compiled_js=record.compiled_js,
        evaluation_score=record.evaluation_score,
      )
      await session.execute(stmt.on_conflict_do_nothing(index_elements=[LessonComponent.component_id]))
      await session.commit()

  async def get_component(self, component_id: str) -> ComponentRecord | None:
    async with self._session_factory() as session:
      row = await session.get(LessonComponent, component_id)
      if row is None:
        return None
      return ComponentRecord(
        component_id=row.component_id,
        lesson_id=row.lesson_id,
        name=row.name,
        meta=row.meta_json,
        pedagogy=row.pedagogy_json,
        source_text=row.source_text,
        compiled_js=row.compiled_js,
        evaluation_score=row.evaluation_score,
        created_at=row.created_at,
      )
