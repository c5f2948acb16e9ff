from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from lessonsmith.jobs.models import AttemptStatus, GenerationAttemptRecord, LessonContentRecord, LessonRecord, LessonStatus, TraceRecord

MAX_OUTLINE_CHARS = 20000


class _ResponseModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateLessonRequest(BaseModel):
  """Request payload submitted by the external lesson creator."""

  title: StrictStr = Field(min_length=1, max_length=200, description="Lesson title.", examples=["Fractions on a number line"])
  outline: StrictStr = Field(min_length=1, max_length=MAX_OUTLINE_CHARS, description="Free-text outline the lesson should cover.")
  model_config = ConfigDict(extra="forbid")

  @field_validator("title", "outline")
  @classmethod
  def _not_blank(cls, value: str) -> str:
    stripped = value.strip()
    if not stripped:
      raise ValueError("must not be blank")
    return stripped


class LessonContentResponse(_ResponseModel):
  typescript_source: str
  compiled_js: str | None = None
  version: int = 1
  created_at: str | None = None

  @classmethod
  def from_record(cls, record: LessonContentRecord) -> LessonContentResponse:
    return cls(typescript_source=record.typescript_source, compiled_js=record.compiled_js, version=record.version, created_at=record.created_at)


class LessonResponse(_ResponseModel):
  """Lesson status; content is attached once the lesson is generated."""

  id: str
  title: str
  outline: str
  status: LessonStatus
  created_at: str
  updated_at: str
  content: LessonContentResponse | None = None

  @classmethod
  def from_record(cls, record: LessonRecord, content: LessonContentRecord | None = None) -> LessonResponse:
    return cls(
      id=record.id,
      title=record.title,
      outline=record.outline,
      status=record.status,
      created_at=record.created_at,
      updated_at=record.updated_at,
      content=LessonContentResponse.from_record(content) if content else None,
    )


class TraceResponse(_ResponseModel):
  attempt_number: int
  model: str
  prompt: str
  response: str | None = None
  tokens: dict[str, int] | None = None
  validation: dict[str, Any] = Field(default_factory=dict)
  compilation: dict[str, Any] = Field(default_factory=dict)
  error: str | None = None
  created_at: str | None = None

  @classmethod
  def from_record(cls, record: TraceRecord) -> TraceResponse:
    return cls(
      attempt_number=record.attempt_number,
      model=record.model,
      prompt=record.prompt,
      response=record.response,
      tokens=record.tokens,
      validation=record.validation,
      compilation=record.compilation,
      error=record.error,
      created_at=record.created_at,
    )


class AttemptResponse(_ResponseModel):
  attempt_number: int
  status: AttemptStatus
  started_at: str
  finished_at: str | None = None
  error: str | None = None

  @classmethod
  def from_record(cls, record: GenerationAttemptRecord) -> AttemptResponse:
    return cls(attempt_number=record.attempt_number, status=record.status, started_at=record.started_at, finished_at=record.finished_at, error=record.error)


class LessonTracesResponse(_ResponseModel):
  lesson_id: str
  status: LessonStatus
  attempts: list[AttemptResponse]
  traces: list[TraceResponse]


class TaskAcceptedResponse(BaseModel):
  status: str
  lesson_id: str | None = None
