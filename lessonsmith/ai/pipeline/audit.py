"""Attempt numbering and best-effort trace writing."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from lessonsmith.jobs.models import TraceRecord
from lessonsmith.storage.traces_repo import TracesRepository
from lessonsmith.telemetry.context import GenerationContext

logger = logging.getLogger(__name__)


class AttemptCounter:
  """Hands out strictly increasing trace attempt numbers for one lesson.

  One counter is shared by every author call, repair sub-attempt and loop-level
  trace of a lesson, so numbers never repeat across tries or planned items.
  """

  def __init__(self, start: int = 0) -> None:
    self._last = start

  @classmethod
  async def seeded(cls, traces: TracesRepository, lesson_id: str) -> AttemptCounter:
    """Continue after the highest number already stored, so requeued lessons never reuse numbers."""
    try:
      start = await traces.max_attempt_number(lesson_id)
    except Exception:  # noqa: BLE001
      logger.warning("Could not read trace history for lesson %s; numbering from 0", lesson_id, exc_info=True)
      start = 0
    return cls(start)

  @property
  def last(self) -> int:
    return self._last

  def next(self) -> int:
    self._last += 1
    return self._last


class TraceRecorder:
  """Write traces without ever failing the pipeline."""

  def __init__(self, traces: TracesRepository, counter: AttemptCounter, *, model_name: str) -> None:
    self._traces = traces
    self._counter = counter
    self._model_name = model_name

  @property
  def counter(self) -> AttemptCounter:
    return self._counter

  async def record(
    self,
    ctx: GenerationContext,
    *,
    prompt: str,
    response: str | None = None,
    tokens: dict[str, int] | None = None,
    validation: dict[str, Any] | None = None,
    compilation: dict[str, Any] | None = None,
    error: str | None = None,
    attempt_number: int | None = None,
  ) -> int:
    """Append a trace and return the attempt number it was written under."""
    number = attempt_number if attempt_number is not None else self._counter.next()
    record = TraceRecord(
      lesson_id=ctx.lesson_id,
      attempt_number=number,
      prompt=prompt,
      model=self._model_name,
      response=response,
      tokens=tokens,
      validation={"stage": ctx.stage, **(validation or {})},
      compilation=compilation or {},
      error=error,
      created_at=datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
    try:
      await self._traces.append_trace(record)
    except Exception:  # noqa: BLE001
      ctx.logger(__name__).warning("Trace write failed for attempt %d", number, exc_info=True)
    return number
