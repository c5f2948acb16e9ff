from __future__ import annotations

import json
from dataclasses import replace

import pytest

from lessonsmith.ai.agents.author import AuthorAgent, extract_code, extract_meta
from lessonsmith.ai.agents.planner import PlannerAgent
from lessonsmith.ai.errors import PlanValidationError
from lessonsmith.ai.pipeline.audit import AttemptCounter, TraceRecorder
from lessonsmith.ai.pipeline.contracts import PlannedItem
from lessonsmith.ai.pipeline.results import Err, ErrorKind, Ok
from lessonsmith.ai.providers.dummy import DummyModel

CARD_SOURCE = "export default function Card() {\n  return <p className=\"text-lg\">Hi</p>;\n}"
ITEM = PlannedItem(name="Fraction Card", learning_objective="Show one half as pizza slices", suggested_props={"slices": 2})


def _author_response(source: str = CARD_SOURCE, meta: dict | None = None) -> str:
  parts = [f"```tsx\n{source}\n```"]
  if meta is not None:
    parts.append(f"```json\n{json.dumps(meta)}\n```")
  return "\n\n".join(parts)


def _recorder(traces_repo, settings) -> TraceRecorder:
  return TraceRecorder(traces_repo, AttemptCounter(), model_name=settings.model_name)


@pytest.mark.anyio
async def test_planner_accepts_wrapped_item_list(traces_repo, settings, pedagogy, ctx) -> None:
  response = '```json\n{"plan": [{"name": "Fraction Card", "learningObjective": "Show halves"}]}\n```'
  usage: list[dict] = []
  planner = PlannerAgent(model=DummyModel([response]), settings=settings, recorder=_recorder(traces_repo, settings), use=usage.append)
  plan = await planner.run("Fractions", pedagogy, ctx)
  assert [item.name for item in plan.items] == ["Fraction Card"]
  assert plan.items[0].learning_objective == "Show halves"
  assert traces_repo.traces[0].attempt_number == 1
  assert traces_repo.traces[0].validation == {"stage": "plan", "ok": True, "items": 1, "errors": []}
  assert usage[0]["agent"] == "Planner"


@pytest.mark.anyio
async def test_planner_raises_with_raw_response_on_invalid_plan(traces_repo, settings, pedagogy, ctx) -> None:
  planner = PlannerAgent(model=DummyModel(['{"items": []}']), settings=settings, recorder=_recorder(traces_repo, settings))
  with pytest.raises(PlanValidationError) as excinfo:
    await planner.run("Fractions", pedagogy, ctx)
  assert excinfo.value.raw_response == '{"items": []}'
  assert excinfo.value.errors
  assert traces_repo.traces[0].error == "plan_validation_failed"


@pytest.mark.anyio
async def test_planner_reports_unparseable_output(traces_repo, settings, pedagogy, ctx) -> None:
  planner = PlannerAgent(model=DummyModel(["I cannot help with that."]), settings=settings, recorder=_recorder(traces_repo, settings))
  with pytest.raises(PlanValidationError) as excinfo:
    await planner.run("Fractions", pedagogy, ctx)
  assert str(excinfo.value.errors[0]).startswith("invalid json")


def test_extract_code_prefers_first_block_unless_asked() -> None:
  raw = "```tsx\nfirst\n```\n```ts\nsecond\n```"
  assert extract_code(raw) == "first"
  assert extract_code(raw, last=True) == "second"
  assert extract_code("export default function C() { return null; }") == "export default function C() { return null; }"
  assert extract_code('{"answer": "no code"}') is None


def test_meta_falls_back_to_planned_item() -> None:
  meta, fallback = extract_meta("```json\n{\"name\": \"\"}\n```", ITEM)
  assert fallback
  assert meta.name == "Fraction Card"
  assert meta.props_schema_json == '{"slices": 2}'


@pytest.mark.anyio
async def test_author_returns_artifact_with_declared_meta(traces_repo, settings, pedagogy, ctx) -> None:
  meta = {"name": "Pizza Halves", "learningObjective": "Show one half", "interactivityLevel": "none", "propsSchemaJson": {"slices": "number"}}
  author = AuthorAgent(model=DummyModel([_author_response(meta=meta)]), settings=settings, recorder=_recorder(traces_repo, settings))
  result = await author.run(ITEM, "Fractions", pedagogy, ctx)
  assert isinstance(result, Ok)
  authored = result.value
  assert authored.artifact.source_text == CARD_SOURCE
  assert authored.artifact.meta.name == "Pizza Halves"
  assert authored.artifact.meta.props_schema_json == '{"slices":"number"}'
  assert not authored.meta_fallback
  assert authored.constraint_issues == []
  assert authored.attempt_number == 1


@pytest.mark.anyio
async def test_author_passes_constraint_issues_forward(traces_repo, settings, pedagogy, ctx) -> None:
  source = "import { motion } from 'framer-motion';\nexport default function C() { return <motion.div />; }"
  author = AuthorAgent(model=DummyModel([_author_response(source)]), settings=settings, recorder=_recorder(traces_repo, settings))
  result = await author.run(ITEM, "Fractions", pedagogy, ctx)
  assert isinstance(result, Ok)
  assert "disallowed-library" in [issue.rule for issue in result.value.constraint_issues]
  assert result.value.meta_fallback
  assert traces_repo.traces[0].validation["ok"] is False


@pytest.mark.anyio
async def test_author_without_code_is_an_author_error(traces_repo, settings, pedagogy, ctx) -> None:
  author = AuthorAgent(model=DummyModel(["Sorry, here is a description instead."]), settings=settings, recorder=_recorder(traces_repo, settings))
  result = await author.run(ITEM, "Fractions", pedagogy, ctx)
  assert isinstance(result, Err)
  assert result.kind is ErrorKind.AUTHOR
  assert traces_repo.traces[0].error == "no component source in response"


@pytest.mark.anyio
async def test_author_rejects_oversized_source(traces_repo, settings, pedagogy, ctx) -> None:
  tight = replace(settings, generated_code_max_bytes=20)
  author = AuthorAgent(model=DummyModel([_author_response()]), settings=tight, recorder=_recorder(traces_repo, tight))
  result = await author.run(ITEM, "Fractions", pedagogy, ctx)
  assert isinstance(result, Err)
  assert "limit is 20" in result.detail
