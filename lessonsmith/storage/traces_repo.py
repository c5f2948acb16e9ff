"""Repository contract for generation traces and attempts."""

from __future__ import annotations

from typing import Protocol

from lessonsmith.jobs.models import AttemptStatus, GenerationAttemptRecord, TraceRecord


class TracesRepository(Protocol):
  """Append-only audit trail; writes are best-effort for callers."""

  async def append_trace(self, record: TraceRecord) -> None:
    """Insert one trace row."""

  async def list_traces(self, lesson_id: str) -> list[TraceRecord]:
    """Return traces for a lesson ordered by attempt number."""

  async def max_attempt_number(self, lesson_id: str) -> int:
    """Return the highest trace attempt number stored for a lesson, or 0."""

  async def start_attempt(self, record: GenerationAttemptRecord) -> GenerationAttemptRecord:
    """Insert an in-progress attempt and return it with its id."""

  async def finish_attempt(self, lesson_id: str, attempt_number: int, *, status: AttemptStatus, error: str | None = None) -> None:
    """Finalize an attempt with its terminal status."""

  async def list_attempts(self, lesson_id: str) -> list[GenerationAttemptRecord]:
    """Return attempts for a lesson ordered by attempt number."""
