"""Base class for AI agents."""

from __future__ import annotations

from abc import ABC
from collections.abc import Callable
from typing import Any

from lessonsmith.ai.pipeline.audit import TraceRecorder
from lessonsmith.ai.providers.base import AIModel, ModelResponse, Prompt
from lessonsmith.config import Settings
from lessonsmith.telemetry.context import GenerationContext

UsageSink = Callable[[dict[str, Any]], None] | None


class BaseAgent(ABC):
  """Base agent with shared dependencies."""

  name: str

  def __init__(self, *, model: AIModel, settings: Settings, recorder: TraceRecorder, use: UsageSink = None) -> None:
    self._model = model
    self._settings = settings
    self._recorder = recorder
    self._usage_sink = use

  async def _complete(self, prompt: Prompt, ctx: GenerationContext, *, purpose: str) -> ModelResponse:
    response = await self._model.complete(prompt, self._settings.model_name)
    self._record_usage(agent=self.name, purpose=purpose, lesson_id=ctx.lesson_id, usage=response.usage)
    return response

  def _record_usage(self, *, agent: str, purpose: str, lesson_id: str, usage: dict[str, int] | None) -> None:
    if not usage or not self._usage_sink:
      return
    payload = {
      "model": getattr(self._model, "name", "unknown"),
      "agent": agent,
      "purpose": purpose,
      "lesson_id": lesson_id,
      **usage,
    }
    self._usage_sink(payload)
