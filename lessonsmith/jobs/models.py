"""Domain records for queued lessons and their generation audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

LessonStatus = Literal["queued", "generating", "generated", "failed"]
AttemptStatus = Literal["in_progress", "success", "failed"]

LESSON_STATUSES: tuple[LessonStatus, ...] = ("queued", "generating", "generated", "failed")


@dataclass
class LessonRecord:
  """A lesson request moving through the job state machine."""

  id: str
  title: str
  outline: str
  status: LessonStatus
  created_at: str
  updated_at: str


@dataclass
class LessonContentRecord:
  """Persisted output of a successful generation."""

  lesson_id: str
  typescript_source: str
  compiled_js: str | None
  version: int = 1
  created_at: str | None = None


@dataclass
class ComponentRecord:
  """Archived component keyed by its content hash."""

  component_id: str
  lesson_id: str
  name: str
  meta: dict[str, Any]
  pedagogy: dict[str, Any]
  source_text: str
  compiled_js: str | None
  evaluation_score: float
  created_at: str | None = None


@dataclass
class TraceRecord:
  """Append-only audit record of one generation sub-step."""

  lesson_id: str
  attempt_number: int
  prompt: str
  model: str
  response: str | None = None
  tokens: dict[str, int] | None = None
  validation: dict[str, Any] = field(default_factory=dict)
  compilation: dict[str, Any] = field(default_factory=dict)
  error: str | None = None
  created_at: str | None = None


@dataclass
class GenerationAttemptRecord:
  """One top-level try at producing a lesson's content."""

  lesson_id: str
  attempt_number: int
  started_at: str
  status: AttemptStatus = "in_progress"
  finished_at: str | None = None
  error: str | None = None
  id: int | None = None
