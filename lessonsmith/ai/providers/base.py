"""Base interfaces for LLM models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, TypedDict


class ChatMessage(TypedDict):
  role: Literal["system", "user", "assistant"]
  content: str


@dataclass(frozen=True)
class PromptMessages:
  """A prompt split into an optional system part and the user part."""

  user: str
  system: str | None = None


Prompt = str | PromptMessages | list[ChatMessage]


@dataclass
class ModelResponse:
  """Text returned by a model plus optional token usage."""

  content: str
  usage: dict[str, int] | None = None


def to_messages(prompt: Prompt) -> list[ChatMessage]:
  """Normalize any accepted prompt shape into chat messages."""
  if isinstance(prompt, str):
    return [{"role": "user", "content": prompt}]
  if isinstance(prompt, PromptMessages):
    messages: list[ChatMessage] = []
    if prompt.system:
      messages.append({"role": "system", "content": prompt.system})
    messages.append({"role": "user", "content": prompt.user})
    return messages
  return list(prompt)


def prompt_text(prompt: Prompt) -> str:
  """Flatten a prompt for trace storage."""
  if isinstance(prompt, str):
    return prompt
  return "\n\n".join(f"[{message['role']}]\n{message['content']}" for message in to_messages(prompt))


class AIModel(ABC):
  """Abstract base class for LLM models."""

  name: str

  @abstractmethod
  async def complete(self, prompt: Prompt, model: str | None = None) -> ModelResponse:
    """Return the completion text for the prompt.

    Raises RateLimitError when throttled and EmptyResponseError when the provider returns no text.
    """
