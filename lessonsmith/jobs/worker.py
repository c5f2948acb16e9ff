"""Top-level generation loop: claim a queued lesson and drive it to a terminal status."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from lessonsmith.ai.errors import ContentQualityFailure, PersistenceError, PipelineFailure, SvgAlignmentFailure, is_output_error
from lessonsmith.ai.pipeline.audit import AttemptCounter
from lessonsmith.ai.providers.base import AIModel
from lessonsmith.ai.providers.factory import build_model
from lessonsmith.config import Settings
from lessonsmith.content.quality import extract_lesson_data, format_feedback, validate_lesson_content
from lessonsmith.jobs.models import AttemptStatus, GenerationAttemptRecord, LessonContentRecord, LessonRecord
from lessonsmith.jobs.pipelines import AttemptState, GenerationPipeline, PipelineOutcome, build_pipeline
from lessonsmith.storage.lessons_repo import ComponentsRepository, LessonsRepository
from lessonsmith.storage.traces_repo import TracesRepository
from lessonsmith.telemetry.context import GenerationContext

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def backoff_ms(attempt: int, *, base_ms: int, max_ms: int) -> int:
  """Delay after failed try `attempt` (1-based): min(base * 2^(attempt-1), max)."""
  return min(base_ms * (2 ** (attempt - 1)), max_ms)


class GenerationLoop:
  """Runs one lesson at a time under the configured retry budget."""

  def __init__(self, *, lessons: LessonsRepository, traces: TracesRepository, pipeline: GenerationPipeline, settings: Settings, sleep: Sleep = asyncio.sleep) -> None:
    self._lessons = lessons
    self._traces = traces
    self._pipeline = pipeline
    self._settings = settings
    self._sleep = sleep

  async def process_next(self) -> LessonRecord | None:
    """Claim the oldest queued lesson and run it; None when nothing was queued or another worker won."""
    lesson = await self._lessons.claim_next_queued()
    if lesson is None:
      return None
    await self.run_claimed(lesson)
    refreshed = await self._lessons.get_lesson(lesson.id)
    return refreshed or lesson

  async def run_claimed(self, lesson: LessonRecord) -> LessonContentRecord:
    """Run an already-claimed lesson; after the last failed try the lesson is failed and the error re-raised."""
    ctx = GenerationContext.for_lesson(lesson.id, pipeline_mode=self._pipeline.mode)
    log = ctx.logger(__name__)
    counter = await AttemptCounter.seeded(self._traces, lesson.id)
    offset = await self._attempt_offset(lesson.id)
    state = AttemptState()
    max_attempts = self._settings.max_generation_attempts
    log.info("Generating %r with the %s pipeline (max %d tries)", lesson.title, self._pipeline.mode, max_attempts)

    last_error: Exception | None = None
    for try_number in range(1, max_attempts + 1):
      attempt_number = offset + try_number
      try_ctx = ctx.with_stage(f"try {try_number}/{max_attempts}")
      await self._start_attempt(lesson.id, attempt_number)
      try:
        outcome = await self._pipeline.attempt(lesson, try_ctx, counter, state)
        self._check_content(outcome, lesson, try_ctx)
        content = LessonContentRecord(lesson_id=lesson.id, typescript_source=outcome.source_text, compiled_js=outcome.compiled_js, version=1)
        try:
          await self._lessons.complete_generation(lesson.id, content)
        except Exception as exc:  # noqa: BLE001
          raise PersistenceError(f"Failed to save lesson content: {exc}") from exc
      except Exception as exc:  # noqa: BLE001
        last_error = exc
        try_ctx.logger(__name__).error("Try %d failed: %s", try_number, exc, exc_info=True)
        await self._finish_attempt(lesson.id, attempt_number, "failed", str(exc))
        state.feedback = self._feedback_for(exc)
        if try_number < max_attempts:
          delay = backoff_ms(try_number, base_ms=self._settings.backoff_base_ms, max_ms=self._settings.backoff_max_ms)
          log.info("Backing off %d ms before try %d", delay, try_number + 1)
          await self._sleep(delay / 1000)
        continue

      await self._finish_attempt(lesson.id, attempt_number, "success")
      log.info("Lesson generated on try %d", try_number)
      return content

    try:
      await self._lessons.set_status(lesson.id, "failed", expected="generating")
    except Exception:  # noqa: BLE001
      log.error("Could not mark lesson failed", exc_info=True)
    log.error("Lesson failed after %d tries", max_attempts)
    if last_error is None:
      raise RuntimeError(f"Lesson {lesson.id} ran no generation tries")
    raise last_error

  def _check_content(self, outcome: PipelineOutcome, lesson: LessonRecord, ctx: GenerationContext) -> None:
    """Gate compiled modules that declare `const lesson = {...}`; others pass through."""
    data = extract_lesson_data(outcome.source_text)
    if data is None:
      return
    result = validate_lesson_content(data, lesson.outline, fail_threshold=self._settings.alignment_fail_threshold, warn_threshold=self._settings.alignment_warn_threshold)
    ctx.logger(__name__).info("Content validation: valid=%s score=%.2f issues=%d", result.valid, result.score, len(result.issues))
    if not result.valid:
      raise ContentQualityFailure(result)

  @staticmethod
  def _feedback_for(exc: Exception) -> str | None:
    if isinstance(exc, ContentQualityFailure):
      return format_feedback(exc.result)
    if isinstance(exc, PipelineFailure):
      lines = [f"- {bucket}: {message}" for bucket, messages in exc.diagnostics.items() for message in messages]
      return "Every planned component failed:\n" + "\n".join(lines[:20])
    if isinstance(exc, SvgAlignmentFailure):
      # The fix prompt already lists the diagram issues.
      return None
    if is_output_error(exc):
      return f"The previous response could not be used: {exc}. Reply in exactly the requested format."
    return None

  async def _attempt_offset(self, lesson_id: str) -> int:
    """Continue attempt numbering after rows left by an earlier run of this lesson."""
    try:
      attempts = await self._traces.list_attempts(lesson_id)
    except Exception:  # noqa: BLE001
      logger.warning("Could not read attempt history for lesson %s", lesson_id, exc_info=True)
      return 0
    return max((attempt.attempt_number for attempt in attempts), default=0)

  async def _start_attempt(self, lesson_id: str, attempt_number: int) -> None:
    record = GenerationAttemptRecord(lesson_id=lesson_id, attempt_number=attempt_number, started_at=_now_iso())
    try:
      await self._traces.start_attempt(record)
    except Exception:  # noqa: BLE001
      logger.warning("Attempt row insert failed for lesson %s attempt %d", lesson_id, attempt_number, exc_info=True)

  async def _finish_attempt(self, lesson_id: str, attempt_number: int, status: AttemptStatus, error: str | None = None) -> None:
    try:
      await self._traces.finish_attempt(lesson_id, attempt_number, status=status, error=error)
    except Exception:  # noqa: BLE001
      logger.warning("Attempt row update failed for lesson %s attempt %d", lesson_id, attempt_number, exc_info=True)


def build_generation_loop(settings: Settings, *, lessons: LessonsRepository, traces: TracesRepository, components: ComponentsRepository, model: AIModel | None = None) -> GenerationLoop:
  """Wire the configured model and pipeline variant into a loop."""
  pipeline = build_pipeline(settings, model=model or build_model(settings), traces=traces, components=components)
  return GenerationLoop(lessons=lessons, traces=traces, pipeline=pipeline, settings=settings)
