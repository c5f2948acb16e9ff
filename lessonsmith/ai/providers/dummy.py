"""Deterministic model used for local runs without provider credentials."""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from collections.abc import Iterable

from lessonsmith.ai.errors import EmptyResponseError
from lessonsmith.ai.providers.base import AIModel, ModelResponse, Prompt, prompt_text, to_messages

logger = logging.getLogger(__name__)

DEFAULT_PLAN = {"items": [{"name": "Concept Card", "learningObjective": "Explain the core idea of the topic in plain words.", "suggestedProps": {"title": "Key idea"}}]}

DEFAULT_COMPONENT = """```tsx
import React from 'react';

export default function ConceptCard() {
  return (
    <section className="p-6 text-lg text-gray-900 bg-white">
      <h2 className="text-2xl">Let's explore the key idea</h2>
      <p>Try reading each step slowly. It is easy to follow and fun to practice.</p>
    </section>
  );
}
```

```json
{"name": "Concept Card", "learningObjective": "Explain the core idea of the topic in plain words.", "interactivityLevel": "none", "propsSchemaJson": "{}"}
```"""


def _agent_for(prompt: Prompt) -> str:
  """Route by the role named in the system message."""
  for message in to_messages(prompt):
    if message["role"] == "system" and "planner" in message["content"].lower():
      return "PLANNER"
  return "AUTHOR"


class DummyModel(AIModel):
  """Replay scripted responses, then fall back to per-agent fixtures."""

  def __init__(self, responses: Iterable[str] = (), *, name: str = "dummy") -> None:
    self.name = name
    self._scripted = deque(responses)
    self.prompts: list[str] = []

  @staticmethod
  def load_dummy_response(agent: str) -> str | None:
    """Return the fixture configured for an agent through LESSONSMITH_DUMMY_<AGENT>."""
    value = os.getenv(f"LESSONSMITH_DUMMY_{agent.upper()}")
    if value is None or not value.strip():
      return None
    return value

  async def complete(self, prompt: Prompt, model: str | None = None) -> ModelResponse:
    self.prompts.append(prompt_text(prompt))
    if self._scripted:
      content = self._scripted.popleft()
    else:
      agent = _agent_for(prompt)
      content = self.load_dummy_response(agent) or (json.dumps(DEFAULT_PLAN) if agent == "PLANNER" else DEFAULT_COMPONENT)
    if not content.strip():
      raise EmptyResponseError(f"Dummy model {self.name} returned an empty response.")
    logger.info("Dummy model %s served %d chars", self.name, len(content))
    return ModelResponse(content=content, usage={"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0})
