from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from lessonsmith.ai.agents.prompts import render_planner_prompt
from lessonsmith.ai.errors import EmptyResponseError
from lessonsmith.ai.providers.dummy import DEFAULT_COMPONENT, DummyModel
from lessonsmith.ai.providers.factory import build_model
from lessonsmith.ai.providers.openai_chat import OpenAIChatModel
from lessonsmith.jobs.pedagogy import infer_pedagogy


def _completion(content: str | None) -> SimpleNamespace:
  usage = SimpleNamespace(prompt_tokens=12, completion_tokens=30, total_tokens=42)
  return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))], usage=usage)


def _client(*results: object) -> MagicMock:
  client = MagicMock()
  client.chat.completions.create = AsyncMock(side_effect=list(results))
  return client


def test_factory_uses_dummy_for_mock_key(settings) -> None:
  model = build_model(replace(settings, llm_api_key="mock"))
  assert isinstance(model, DummyModel)


def test_factory_requires_key_in_production(settings) -> None:
  with pytest.raises(ValueError, match="LESSONSMITH_LLM_API_KEY"):
    build_model(replace(settings, environment="production", llm_api_key=None))


def test_factory_builds_openai_client(settings) -> None:
  model = build_model(replace(settings, llm_api_key="sk-test", model_name="gpt-4o-mini"))
  assert isinstance(model, OpenAIChatModel)
  assert model.name == "gpt-4o-mini"


def test_sdk_retries_are_disabled() -> None:
  # Rate-limit retries belong to retry_with_backoff alone.
  model = OpenAIChatModel("gpt-4o-mini", api_key="sk-test")
  assert model._client.max_retries == 0


@pytest.mark.anyio
async def test_openai_model_returns_content_and_usage() -> None:
  client = _client(_completion("```tsx\nexport default 1;\n```"))
  model = OpenAIChatModel("gpt-4o-mini", api_key="sk-test", client=client)
  response = await model.complete("Plan a lesson")
  assert response.content.startswith("```tsx")
  assert response.usage == {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42}
  kwargs = client.chat.completions.create.await_args.kwargs
  assert kwargs["model"] == "gpt-4o-mini"
  assert kwargs["messages"][-1] == {"role": "user", "content": "Plan a lesson"}


@pytest.mark.anyio
async def test_openai_model_rejects_blank_content() -> None:
  model = OpenAIChatModel("gpt-4o-mini", api_key="sk-test", client=_client(_completion("   ")))
  with pytest.raises(EmptyResponseError):
    await model.complete("Plan a lesson")


@pytest.mark.anyio
async def test_dummy_model_routes_fixtures_by_agent(pedagogy, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("LESSONSMITH_DUMMY_PLANNER", raising=False)
  monkeypatch.setenv("LESSONSMITH_DUMMY_AUTHOR", "```tsx\nexport default function Custom() { return null; }\n```")
  model = DummyModel(["scripted first"])
  assert (await model.complete("anything")).content == "scripted first"
  plan = await model.complete(render_planner_prompt("Fractions", pedagogy))
  assert '"items"' in plan.content
  author = await model.complete("Write the component")
  assert "Custom" in author.content
  assert len(model.prompts) == 3


@pytest.mark.anyio
async def test_dummy_model_default_component(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("LESSONSMITH_DUMMY_AUTHOR", raising=False)
  assert (await DummyModel().complete("Write the component")).content == DEFAULT_COMPONENT


@pytest.mark.anyio
async def test_dummy_model_rejects_empty_script() -> None:
  with pytest.raises(EmptyResponseError):
    await DummyModel([""]).complete("anything")


@pytest.mark.parametrize(
  ("outline", "grade_band", "reading_level", "load"),
  [
    ("Build a React counter with TypeScript", "9-12", "advanced", "high"),
    ("Solving one-step equation problems in middle school", "6-8", "intermediate", "medium"),
    ("Counting apples and sharing them with friends", "3-5", "basic", "low"),
  ],
)
def test_pedagogy_is_inferred_from_outline(outline: str, grade_band: str, reading_level: str, load: str) -> None:
  profile = infer_pedagogy(outline)
  assert (profile.grade_band, profile.reading_level, profile.cognitive_load) == (grade_band, reading_level, load)
  assert profile.language_tone == "friendly"
  assert profile.accessibility.min_font_size_px == 16
