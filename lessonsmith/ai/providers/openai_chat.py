"""OpenAI-compatible chat completion model using the openai SDK."""

from __future__ import annotations

import logging

import openai
from openai import AsyncOpenAI

from lessonsmith.ai.backoff import retry_with_backoff
from lessonsmith.ai.errors import EmptyResponseError, LlmError, RateLimitError
from lessonsmith.ai.providers.base import AIModel, ModelResponse, Prompt, to_messages

logger = logging.getLogger(__name__)


class OpenAIChatModel(AIModel):
  """Chat completions client with rate-limit aware retries."""

  def __init__(self, name: str, *, api_key: str, base_url: str | None = None, max_tokens: int = 6000, temperature: float = 0.6, client: AsyncOpenAI | None = None) -> None:
    self.name = name
    self._max_tokens = max_tokens
    self._temperature = temperature
    self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

  async def complete(self, prompt: Prompt, model: str | None = None) -> ModelResponse:
    return await retry_with_backoff(self._complete_once, prompt, model or self.name)

  async def _complete_once(self, prompt: Prompt, model_name: str) -> ModelResponse:
    try:
      response = await self._client.chat.completions.create(model=model_name, messages=to_messages(prompt), max_tokens=self._max_tokens, temperature=self._temperature)
    except openai.RateLimitError as exc:
      raise RateLimitError(str(exc)) from exc
    except openai.APIStatusError as exc:
      if exc.status_code == 429:
        raise RateLimitError(str(exc)) from exc
      raise LlmError(f"Provider returned HTTP {exc.status_code}: {exc.message}") from exc

    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
      raise EmptyResponseError(f"Model {model_name} returned an empty response.")

    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    logger.debug("Model %s returned %d chars (usage=%s)", model_name, len(content), usage)
    return ModelResponse(content=content, usage=usage)
