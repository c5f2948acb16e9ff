"""Author agent: one planned item in, one component artifact out."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from pydantic import ValidationError

from lessonsmith.ai.agents.base import BaseAgent
from lessonsmith.ai.agents.prompts import render_author_prompt
from lessonsmith.ai.errors import AuthorExtractionError
from lessonsmith.ai.json_parser import extract_fenced_blocks, parse_json_with_fallback
from lessonsmith.ai.pipeline.contracts import ComponentArtifact, ComponentMeta, PedagogyProfile, PlannedItem, SafetyIssue
from lessonsmith.ai.pipeline.results import Err, ErrorKind, Ok, StageResult
from lessonsmith.ai.providers.base import prompt_text
from lessonsmith.componentkit.constraints import check_author_constraints, check_source_size
from lessonsmith.telemetry.context import GenerationContext

CODE_LANGUAGES = frozenset({"tsx", "ts", "typescript", "jsx"})


@dataclass(frozen=True)
class AuthoredComponent:
  """Extracted artifact plus the constraint issues the safety stage must see."""

  artifact: ComponentArtifact
  attempt_number: int
  constraint_issues: list[SafetyIssue] = field(default_factory=list)
  meta_fallback: bool = False


def extract_code(raw: str, *, last: bool = False) -> str | None:
  """Return the first (or last) fenced TSX/TS block; an unfenced module is taken whole."""
  blocks = [block for block in extract_fenced_blocks(raw) if block.language in CODE_LANGUAGES]
  if blocks:
    body = (blocks[-1] if last else blocks[0]).body
    return body or None
  stripped = raw.strip()
  if "export default" in stripped and not stripped.startswith("{"):
    return stripped
  return None


def extract_meta(raw: str, item: PlannedItem) -> tuple[ComponentMeta, bool]:
  """Parse the ```json meta block, falling back to the planned item's name and objective."""
  for block in extract_fenced_blocks(raw):
    if block.language != "json":
      continue
    try:
      return ComponentMeta.model_validate(parse_json_with_fallback(block.body)), False
    except (json.JSONDecodeError, ValidationError):
      break
  schema = json.dumps(item.suggested_props or {}, sort_keys=True) if item.suggested_props else "{}"
  return ComponentMeta(name=item.name, learning_objective=item.learning_objective, props_schema_json=schema), True


class AuthorAgent(BaseAgent):
  """Write one component for a planned item."""

  name = "Author"

  async def run(self, item: PlannedItem, topic: str, pedagogy: PedagogyProfile, ctx: GenerationContext, *, feedback: str | None = None) -> StageResult[AuthoredComponent]:
    ctx = ctx.with_stage("author")
    logger = ctx.logger(__name__)
    prompt = render_author_prompt(item, topic, pedagogy, feedback=feedback)
    response = await self._complete(prompt, ctx, purpose="author_component")
    raw = response.content

    source = extract_code(raw)
    if source is None:
      number = await self._recorder.record(ctx, prompt=prompt_text(prompt), response=raw, tokens=response.usage, validation={"ok": False, "item": item.name}, error="no component source in response")
      logger.warning("Author response for %s had no component source (attempt %d)", item.name, number)
      error = AuthorExtractionError(f"No component source found for {item.name}", raw_response=raw)
      return Err(ErrorKind.AUTHOR, str(error), error)

    meta, meta_fallback = extract_meta(raw, item)
    issues = check_author_constraints(source)
    size_issue = check_source_size(source, self._settings.generated_code_max_bytes)
    validation = {"ok": not issues and size_issue is None, "item": item.name, "meta_fallback": meta_fallback, "constraint_issues": [issue.model_dump() for issue in issues]}
    number = await self._recorder.record(ctx, prompt=prompt_text(prompt), response=raw, tokens=response.usage, validation=validation, error=size_issue.message if size_issue else None)

    if size_issue is not None:
      logger.warning("Author source for %s rejected: %s", item.name, size_issue.message)
      return Err(ErrorKind.AUTHOR, size_issue.message)
    if meta_fallback:
      logger.info("Author meta for %s missing or invalid; using planned item values", item.name)

    artifact = ComponentArtifact(meta=meta, pedagogy=pedagogy, source_text=source)
    return Ok(AuthoredComponent(artifact=artifact, attempt_number=number, constraint_issues=issues, meta_fallback=meta_fallback))
