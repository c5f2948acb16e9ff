"""Postgres-backed trace and attempt history."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import func, select, update

from lessonsmith.core.database import get_session_factory
from lessonsmith.jobs.models import AttemptStatus, GenerationAttemptRecord, TraceRecord
from lessonsmith.schema.sql import GenerationAttempt, Trace
from lessonsmith.storage.traces_repo import TracesRepository


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresTracesRepository(TracesRepository):
  """Append-only audit rows for generation sub-steps and top-level tries."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def append_trace(self, record: TraceRecord) -> None:
    async with self._session_factory() as session:
      row = Trace(
        lesson_id=record.lesson_id,
        attempt_number=record.attempt_number,
        prompt=record.prompt,
        model=record.model,
        response=record.response,
        tokens_json=record.tokens,
        validation_json=record.validation,
        compilation_json=record.compilation,
        error=record.error,
      )
      if record.created_at:
        row.created_at = record.created_at
      session.add(row)
      await session.commit()

  async def list_traces(self, lesson_id: str) -> list[TraceRecord]:
    async with self._session_factory() as session:
      stmt = select(Trace).where(Trace.lesson_id == lesson_id).order_by(Trace.attempt_number.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [
        TraceRecord(
          lesson_id=row.lesson_id,
          attempt_number=row.attempt_number,
          prompt=row.prompt,
          model=row.model,
          response=row.response,
          tokens=row.tokens_json,
          validation=row.validation_json or {},
          compilation=row.compilation_json or {},
          error=row.error,
          created_at=row.created_at,
        )
        for row in rows
      ]

  async def max_attempt_number(self, lesson_id: str) -> int:
    async with self._session_factory() as session:
      value = await session.scalar(select(func.max(Trace.attempt_number)).where(Trace.lesson_id == lesson_id))
      return int(value or 0)

  async def start_attempt(self, record: GenerationAttemptRecord) -> GenerationAttemptRecord:
    async with self._session_factory() as session:
      row = GenerationAttempt(lesson_id=record.lesson_id, attempt_number=record.attempt_number, status=record.status, started_at=record.started_at)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._attempt_to_record(row)

  async def finish_attempt(self, lesson_id: str, attempt_number: int, *, status: AttemptStatus, error: str | None = None) -> None:
    async with self._session_factory() as session:
      stmt = update(GenerationAttempt).where(GenerationAttempt.lesson_id == lesson_id, GenerationAttempt.attempt_number == attempt_number).values(status=status, error=error, finished_at=_now_iso())
      await session.execute(stmt.execution_options(synchronize_session=False))
      await session.commit()

  async def list_attempts(self, lesson_id: str) -> list[GenerationAttemptRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationAttempt).where(GenerationAttempt.lesson_id == lesson_id).order_by(GenerationAttempt.attempt_number.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._attempt_to_record(row) for row in rows]

  def _attempt_to_record(self, row: GenerationAttempt) -> GenerationAttemptRecord:
    return GenerationAttemptRecord(
      id=row.id,
      lesson_id=row.lesson_id,
      attempt_number=row.attempt_number,
      status=row.status,  # type: ignore[arg-type]
      started_at=row.started_at,
      finished_at=row.finished_at,
      error=row.error,
    )
