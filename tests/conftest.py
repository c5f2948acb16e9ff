"""Shared fixtures: in-memory repositories, a scripted compiler and settings overrides."""

from __future__ import annotations

import re
from dataclasses import replace

import pytest

from lessonsmith.ai.pipeline.contracts import CompilationResult, PedagogyProfile
from lessonsmith.config import Settings, get_settings
from lessonsmith.jobs.models import AttemptStatus, ComponentRecord, GenerationAttemptRecord, LessonContentRecord, LessonRecord, LessonStatus, TraceRecord
from lessonsmith.telemetry.context import GenerationContext


class InMemoryLessonsRepository:
  """Lesson queue double with the same claim semantics as the Postgres repository."""

  def __init__(self) -> None:
    self.lessons: dict[str, LessonRecord] = {}
    self.contents: dict[str, LessonContentRecord] = {}

  def add(self, lesson_id: str, *, title: str = "Fractions", outline: str = "Introduce fractions with pizza slices", status: LessonStatus = "queued", created_at: str = "2024-01-01T00:00:00Z") -> LessonRecord:
    record = LessonRecord(id=lesson_id, title=title, outline=outline, status=status, created_at=created_at, updated_at=created_at)
    self.lessons[lesson_id] = record
    return replace(record)

  async def create_lesson(self, record: LessonRecord) -> None:
    self.lessons[record.id] = replace(record)

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    record = self.lessons.get(lesson_id)
    return replace(record) if record else None

  async def claim_next_queued(self) -> LessonRecord | None:
    queued = sorted((record for record in self.lessons.values() if record.status == "queued"), key=lambda record: (record.created_at, record.id))
    if not queued:
      return None
    return await self.claim_lesson(queued[0].id)

  async def claim_lesson(self, lesson_id: str) -> LessonRecord | None:
    record = self.lessons.get(lesson_id)
    if record is None or record.status != "queued":
      return None
    record.status = "generating"
    return replace(record)

  async def set_status(self, lesson_id: str, status: LessonStatus, *, expected: LessonStatus | None = None) -> bool:
    record = self.lessons.get(lesson_id)
    if record is None or (expected is not None and record.status != expected):
      return False
    record.status = status
    return True

  async def complete_generation(self, lesson_id: str, content: LessonContentRecord) -> None:
    record = self.lessons.get(lesson_id)
    if record is None or record.status != "generating":
      raise RuntimeError(f"Lesson {lesson_id} is not in generating status")
    self.contents[lesson_id] = content
    record.status = "generated"

  async def get_content(self, lesson_id: str) -> LessonContentRecord | None:
    return self.contents.get(lesson_id)


class InMemoryComponentsRepository:
  def __init__(self) -> None:
    self.components: dict[str, ComponentRecord] = {}

  async def save_component(self, record: ComponentRecord) -> None:
    self.components.setdefault(record.component_id, record)

  async def get_component(self, component_id: str) -> ComponentRecord | None:
    return self.components.get(component_id)


class InMemoryTracesRepository:
  """Enforces the (lesson_id, attempt_number) uniqueness of the traces table."""

  def __init__(self) -> None:
    self.traces: list[TraceRecord] = []
    self.attempts: list[GenerationAttemptRecord] = []

  async def append_trace(self, record: TraceRecord) -> None:
    if any(trace.lesson_id == record.lesson_id and trace.attempt_number == record.attempt_number for trace in self.traces):
      raise ValueError(f"duplicate trace attempt {record.attempt_number} for {record.lesson_id}")
    self.traces.append(record)

  async def list_traces(self, lesson_id: str) -> list[TraceRecord]:
    return sorted((trace for trace in self.traces if trace.lesson_id == lesson_id), key=lambda trace: trace.attempt_number)

  async def max_attempt_number(self, lesson_id: str) -> int:
    return max((trace.attempt_number for trace in self.traces if trace.lesson_id == lesson_id), default=0)

  async def start_attempt(self, record: GenerationAttemptRecord) -> GenerationAttemptRecord:
    stored = replace(record, id=len(self.attempts) + 1)
    self.attempts.append(stored)
    return stored

  async def finish_attempt(self, lesson_id: str, attempt_number: int, *, status: AttemptStatus, error: str | None = None) -> None:
    for attempt in self.attempts:
      if attempt.lesson_id == lesson_id and attempt.attempt_number == attempt_number:
        attempt.status = status
        attempt.error = error
        attempt.finished_at = "2024-01-01T00:00:01Z"

  async def list_attempts(self, lesson_id: str) -> list[GenerationAttemptRecord]:
    return sorted((attempt for attempt in self.attempts if attempt.lesson_id == lesson_id), key=lambda attempt: attempt.attempt_number)


class ScriptedCompiler:
  """Fails with TS2304 for every listed name still referenced by the source."""

  def __init__(self, undefined: tuple[str, ...] = ("missing",)) -> None:
    self._undefined = undefined
    self.calls: list[str] = []

  def compile(self, source: str) -> CompilationResult:
    self.calls.append(source)
    errors = [f"Component.tsx(2,15): error TS2304: Cannot find name '{name}'." for name in self._undefined if re.search(rf"\b{re.escape(name)}\b", source)]
    if errors:
      return CompilationResult(success=False, errors=errors)
    return CompilationResult(success=True, out_dir="dist", emitted_files=["dist/Component.js"], compiled_js="export default function Component() { return null; }\n")


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def lessons_repo() -> InMemoryLessonsRepository:
  return InMemoryLessonsRepository()


@pytest.fixture
def components_repo() -> InMemoryComponentsRepository:
  return InMemoryComponentsRepository()


@pytest.fixture
def traces_repo() -> InMemoryTracesRepository:
  return InMemoryTracesRepository()


@pytest.fixture
def compiler() -> ScriptedCompiler:
  return ScriptedCompiler()


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), environment="test", model_name="dummy", max_generation_attempts=5, max_repair_attempts=2, evaluation_threshold=0.5, backoff_base_ms=2000, backoff_max_ms=10000, pipeline_mode="orchestrator", enforce_svg_alignment=False)


@pytest.fixture
def pedagogy() -> PedagogyProfile:
  return PedagogyProfile(grade_band="3-5")


@pytest.fixture
def ctx() -> GenerationContext:
  return GenerationContext.for_lesson("lesson-1", session_id="testsession")
