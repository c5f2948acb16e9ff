"""Per-job logging context passed explicitly through the generation call chain."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from dataclasses import dataclass, replace
from typing import Any

from lessonsmith.utils.ids import generate_correlation_id, generate_session_id


class _ContextAdapter(logging.LoggerAdapter):
  """Prefix messages with correlation metadata and attach it to the record."""

  def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
    extra = dict(self.extra or {})
    extra.update(kwargs.get("extra") or {})
    kwargs["extra"] = extra
    prefix = f"[lesson={extra.get('lesson_id')} cid={extra.get('correlation_id')}]"
    if extra.get("stage"):
      prefix = f"{prefix[:-1]} stage={extra['stage']}]"
    return f"{prefix} {msg}", kwargs


@dataclass(frozen=True)
class GenerationContext:
  """Correlation metadata for one claimed lesson."""

  lesson_id: str
  correlation_id: str
  session_id: str
  pipeline_mode: str = "orchestrator"
  stage: str | None = None

  @classmethod
  def for_lesson(cls, lesson_id: str, *, session_id: str | None = None, pipeline_mode: str = "orchestrator") -> GenerationContext:
    return cls(lesson_id=lesson_id, correlation_id=generate_correlation_id(), session_id=session_id or generate_session_id(), pipeline_mode=pipeline_mode)

  def with_stage(self, stage: str) -> GenerationContext:
    """Return a copy tagged with the pipeline stage currently running."""
    return replace(self, stage=stage)

  def as_log_extra(self) -> dict[str, Any]:
    return {"lesson_id": self.lesson_id, "correlation_id": self.correlation_id, "session_id": self.session_id, "pipeline_mode": self.pipeline_mode, "stage": self.stage}

  def logger(self, name: str) -> logging.LoggerAdapter:
    """Return a logger adapter that stamps this context into every record."""
    return _ContextAdapter(logging.getLogger(name), self.as_log_extra())
