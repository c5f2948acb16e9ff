"""Prompt builders shared by agents and the direct-author pipeline."""

from __future__ import annotations

import json
from collections.abc import Sequence

from lessonsmith.ai.pipeline.contracts import PedagogyProfile, PlannedItem
from lessonsmith.ai.providers.base import PromptMessages
from lessonsmith.componentkit.constraints import ALLOWED_MODULES

PLANNER_SYSTEM = "You are the lesson component planner. Break a topic into small, self-contained interactive UI components. Reply with JSON only."
AUTHOR_SYSTEM = "You are a senior React + TypeScript author writing one self-contained educational component at a time."
LEGACY_SYSTEM = "You write complete, self-contained React + TypeScript lesson modules that compile without external packages."

_COMPONENT_RULES = (
  f"- Import only from: {', '.join(sorted(ALLOWED_MODULES))}.",
  "- No network access, timers, eval, storage APIs or direct document/window access.",
  "- No require() or dynamic import(); no third-party UI, chart or animation libraries.",
  "- Export the component as the default export and return JSX from its body.",
  "- Use Tailwind utility classes as static className strings.",
)

SVG_GUIDANCE = (
  "Add an inline SVG grounded in the outline's entities with labels and at least one relationship; include viewBox, "
  "preserveAspectRatio=\"xMidYMid meet\", <title>/<desc>, aria-labelledby, <g data-entity> groups and a meaningful micro-interaction."
)


def _svg_rules(require_svg: bool) -> list[str]:
  return [f"- {SVG_GUIDANCE}"] if require_svg else []


def _pedagogy_block(pedagogy: PedagogyProfile) -> str:
  """Serialize the profile deterministically so prompts stay stable."""
  return json.dumps(pedagogy.model_dump(by_alias=True), ensure_ascii=True, sort_keys=True)


def _feedback_block(feedback: str | None) -> str:
  if not feedback:
    return ""
  return f"\n\nThe previous attempt was rejected. Address this feedback:\n{feedback.strip()}"


def render_planner_prompt(topic: str, pedagogy: PedagogyProfile, *, feedback: str | None = None) -> PromptMessages:
  user = "\n".join(
    [
      f"Topic: {topic}",
      f"Pedagogy profile: {_pedagogy_block(pedagogy)}",
      "",
      "Return a JSON object of the form:",
      '{"items": [{"name": "...", "learningObjective": "...", "suggestedProps": {}}]}',
      "Plan between 1 and 12 items. Names are at most 80 characters; objectives at most 500.",
    ]
  )
  return PromptMessages(user=user + _feedback_block(feedback), system=PLANNER_SYSTEM)


def render_author_prompt(item: PlannedItem, topic: str, pedagogy: PedagogyProfile, *, feedback: str | None = None) -> PromptMessages:
  suggested = json.dumps(item.suggested_props or {}, ensure_ascii=True, sort_keys=True)
  user = "\n".join(
    [
      f"Topic: {topic}",
      f"Component: {item.name}",
      f"Learning objective: {item.learning_objective}",
      f"Suggested props: {suggested}",
      f"Pedagogy profile: {_pedagogy_block(pedagogy)}",
      "",
      "Rules:",
      *_COMPONENT_RULES,
      "",
      "Reply with exactly two fenced blocks: the component in ```tsx and its metadata in ```json",
      'with keys name, learningObjective, interactivityLevel, propsSchemaJson and optional assets.',
    ]
  )
  return PromptMessages(user=user + _feedback_block(feedback), system=AUTHOR_SYSTEM)


def render_legacy_prompt(title: str, outline: str, *, feedback: str | None = None, require_svg: bool = False) -> PromptMessages:
  user = "\n".join(
    [
      f"Lesson title: {title}",
      f"Outline: {outline}",
      "",
      "Write one TypeScript module that declares `const lesson = {...}` with keys",
      "title, type (quiz | one-pager | explanation | rich-content), description and content,",
      "and default-exports a React component rendering it.",
      "",
      "Rules:",
      *_COMPONENT_RULES,
      *_svg_rules(require_svg),
      "",
      "Reply with the module in a single ```tsx fenced block.",
    ]
  )
  return PromptMessages(user=user + _feedback_block(feedback), system=LEGACY_SYSTEM)


def render_legacy_fix_prompt(title: str, outline: str, source: str, errors: Sequence[str], *, feedback: str | None = None, require_svg: bool = False) -> PromptMessages:
  error_lines = "\n".join(f"- {error}" for error in errors) or "- (none reported)"
  user = "\n".join(
    [
      f"Lesson title: {title}",
      f"Outline: {outline}",
      "",
      "The module below failed validation. Return the complete corrected module in a single ```tsx block.",
      "",
      "CODE:",
      "```tsx",
      source,
      "```",
      "",
      "ERRORS:",
      error_lines,
      "",
      "Rules:",
      *_COMPONENT_RULES,
      *_svg_rules(require_svg),
    ]
  )
  return PromptMessages(user=user + _feedback_block(feedback), system=LEGACY_SYSTEM)
