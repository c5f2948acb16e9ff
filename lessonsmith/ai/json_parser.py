"""Lenient JSON parsing and fence extraction helpers for LLM outputs."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BARE_KEY_RE = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)')
_FENCE_RE = re.compile(r"```([A-Za-z0-9_+-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class FencedBlock:
  """One fenced block from a model response."""

  language: str
  body: str


def extract_fenced_blocks(raw: str) -> list[FencedBlock]:
  """Return fenced code blocks in the order they appear."""
  return [FencedBlock(language=match.group(1).lower(), body=match.group(2).strip()) for match in _FENCE_RE.finditer(raw)]


def strip_json_fences(raw: str) -> str:
  """Drop a surrounding ```json fence when the model wrapped its payload."""
  stripped = raw.strip()
  for block in extract_fenced_blocks(stripped):
    if block.language in {"", "json"}:
      return block.body
  return stripped


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON with minimal recovery to keep LLM retries low."""
  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Extract the first JSON object/array to ignore leading or trailing prose.
  candidate = _extract_json_block(raw)
  if candidate is None:
    raise last_error

  # Each pass applies one more repair; the first that parses wins.
  for repaired in _repair_passes(candidate):
    try:
      return json.loads(repaired)
    except json.JSONDecodeError as exc:
      last_error = exc

  raise last_error


def _repair_passes(candidate: str) -> list[str]:
  without_commas = _TRAILING_COMMA_RE.sub(r"\1", candidate)
  quoted = _BARE_KEY_RE.sub(r'\1"\2"\3', without_commas)
  return [candidate, without_commas, quoted]


def _extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object/array for recovery parsing."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
