"""Build the configured model client."""

from __future__ import annotations

import logging

from lessonsmith.ai.providers.base import AIModel
from lessonsmith.ai.providers.dummy import DummyModel
from lessonsmith.ai.providers.openai_chat import OpenAIChatModel
from lessonsmith.config import Settings

logger = logging.getLogger(__name__)


def build_model(settings: Settings) -> AIModel:
  """Return the dummy model in MOCK mode, otherwise the OpenAI-compatible client."""
  if settings.llm_api_key is not None and settings.llm_api_key.upper() == "MOCK":
    logger.info("LLM API key is MOCK; using the deterministic dummy model.")
    return DummyModel(name=settings.model_name)
  if settings.llm_api_key is None:
    if settings.environment not in {"development", "test"}:
      raise ValueError("LESSONSMITH_LLM_API_KEY must be set outside development.")
    logger.warning("LLM API key missing; using the deterministic dummy model.")
    return DummyModel(name=settings.model_name)
  return OpenAIChatModel(settings.model_name, api_key=settings.llm_api_key, base_url=settings.llm_base_url, max_tokens=settings.llm_max_tokens, temperature=settings.llm_temperature)
