"""Planner agent implementation."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from lessonsmith.ai.agents.base import BaseAgent
from lessonsmith.ai.agents.prompts import render_planner_prompt
from lessonsmith.ai.errors import PlanValidationError
from lessonsmith.ai.json_parser import parse_json_with_fallback, strip_json_fences
from lessonsmith.ai.pipeline.contracts import ComponentPlan, PedagogyProfile, PlannerPayload
from lessonsmith.ai.providers.base import prompt_text
from lessonsmith.telemetry.context import GenerationContext


def _normalize_plan_json(raw: Any) -> Any:
  """Accept a bare list of items or a `plan` wrapper in addition to {"items": [...]}."""
  if isinstance(raw, list):
    return {"items": raw}
  if isinstance(raw, dict) and "items" not in raw:
    for key in ("plan", "components"):
      if isinstance(raw.get(key), list):
        return {"items": raw[key]}
  return raw


class PlannerAgent(BaseAgent):
  """Turn a topic and pedagogy profile into planned component items."""

  name = "Planner"

  async def run(self, topic: str, pedagogy: PedagogyProfile, ctx: GenerationContext, *, feedback: str | None = None) -> ComponentPlan:
    """Plan the components; invalid output raises PlanValidationError with the raw response."""
    ctx = ctx.with_stage("plan")
    logger = ctx.logger(__name__)
    prompt = render_planner_prompt(topic, pedagogy, feedback=feedback)
    response = await self._complete(prompt, ctx, purpose="plan_components")
    raw = response.content

    errors: list[Any] = []
    plan: ComponentPlan | None = None
    try:
      payload = PlannerPayload.model_validate(_normalize_plan_json(parse_json_with_fallback(strip_json_fences(raw))))
      plan = ComponentPlan(topic=topic, pedagogy=pedagogy, items=payload.items)
    except json.JSONDecodeError as exc:
      errors = [f"invalid json: {exc}"]
    except ValidationError as exc:
      errors = exc.errors(include_url=False, include_context=False, include_input=False)

    validation = {"ok": plan is not None, "items": len(plan.items) if plan else 0, "errors": [str(error) for error in errors]}
    await self._recorder.record(ctx, prompt=prompt_text(prompt), response=raw, tokens=response.usage, validation=validation, error=None if plan else "plan_validation_failed")

    if plan is None:
      logger.warning("Planner output failed validation: %s", errors)
      raise PlanValidationError("Planner output did not match the component plan schema.", raw_response=raw, errors=errors)
    logger.info("Planned %d component(s) for %r", len(plan.items), topic)
    return plan
