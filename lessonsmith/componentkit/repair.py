"""Diagnostic-driven source patching between failed and retried compilations."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from lessonsmith.componentkit.syntax import ParsedSource, TextEdit, apply_edits, import_sources, is_expression_identifier, parse_tsx, walk

logger = logging.getLogger(__name__)

REACT_IMPORT = "import React from 'react';\n"

_UNDEFINED_NAME_RE = re.compile(r"Cannot find name '([A-Za-z_$][A-Za-z0-9_$]*)'")
_INTRINSIC_NAMES = frozenset({"div", "span", "p", "h1", "h2", "h3", "button"})
_REACT_IMPORT_RE = re.compile(r"^\s*import\s[^;]*from\s+['\"]react['\"]", re.MULTILINE)


@dataclass(frozen=True)
class RepairOutcome:
  """Patched source plus a description of each change."""

  source: str
  changes: list[str] = field(default_factory=list)
  tier: Literal["ast", "text", "none"] = "none"

  @property
  def changed(self) -> bool:
    return bool(self.changes)


def undefined_names(errors: Sequence[str]) -> list[str]:
  """Names reported as undefined, in first-seen order, excluding React itself."""
  names: list[str] = []
  for error in errors:
    for name in _UNDEFINED_NAME_RE.findall(error):
      if name != "React" and name not in names:
        names.append(name)
  return names


def needs_runtime_import(errors: Sequence[str]) -> bool:
  """True when a diagnostic says the UI runtime import is missing."""
  for error in errors:
    lowered = error.lower()
    if "jsx" in lowered or "cannot find name 'react'" in lowered or "umd global" in lowered:
      return True
    match = _UNDEFINED_NAME_RE.search(error)
    if match is not None and match.group(1) in _INTRINSIC_NAMES:
      return True
  return False


def _has_react_import(parsed: ParsedSource) -> bool:
  return any(module == "react" for _, module in import_sources(parsed))


def _identifier_edits(parsed: ParsedSource, names: set[str]) -> tuple[list[TextEdit], list[str]]:
  edits: list[TextEdit] = []
  changes: list[str] = []
  for node in walk(parsed.root):
    if node.type == "shorthand_property_identifier" and parsed.text_of(node) in names:
      # `{ X }` in an object literal becomes `{ X: "" }` so the key survives.
      name = parsed.text_of(node)
      edits.append(TextEdit(node.start_byte, node.end_byte, f'{name}: ""'))
      changes.append(f"line {parsed.line_of(node)}: {name} -> {name}: \"\"")
    elif is_expression_identifier(node) and parsed.text_of(node) in names:
      name = parsed.text_of(node)
      edits.append(TextEdit(node.start_byte, node.end_byte, '""'))
      changes.append(f"line {parsed.line_of(node)}: {name} -> \"\"")
  return edits, changes


def _repair_tree(parsed: ParsedSource, errors: Sequence[str]) -> RepairOutcome:
  names = set(undefined_names(errors))
  edits, changes = _identifier_edits(parsed, names) if names else ([], [])
  patched = apply_edits(parsed, edits) if edits else parsed.text
  if needs_runtime_import(errors) and not _has_react_import(parsed):
    patched = REACT_IMPORT + patched
    changes.append("prepended React import")
  return RepairOutcome(source=patched, changes=changes, tier="ast" if changes else "none")


def _repair_text(source: str, errors: Sequence[str]) -> RepairOutcome:
  """Lower-precision regex tier, only for source the parser rejects."""
  patched = source
  changes: list[str] = []
  for name in undefined_names(errors):
    escaped = re.escape(name)
    patched, braces = re.subn(rf"\{{\s*{escaped}\s*\}}", '{""}', patched)
    patched, children = re.subn(rf"\bchildren:\s*{escaped}\b", 'children: ""', patched)
    if braces or children:
      changes.append(f"{name} -> \"\" ({braces + children} textual replacements)")
  if needs_runtime_import(errors) and not _REACT_IMPORT_RE.search(patched):
    patched = REACT_IMPORT + patched
    changes.append("prepended React import")
  return RepairOutcome(source=patched, changes=changes, tier="text" if changes else "none")


def repair_source(source: str, errors: Sequence[str], *, allow_text_fallback: bool = False) -> RepairOutcome:
  """Patch undefined identifiers and a missing runtime import; no model call.

  Unparseable source is returned unchanged unless the text tier is enabled.
  """
  if not errors:
    return RepairOutcome(source=source)
  parsed = parse_tsx(source)
  if parsed.has_error:
    if allow_text_fallback:
      logger.info("Repair using text tier; source has syntax errors")
      return _repair_text(source, errors)
    logger.info("Repair skipped; source has syntax errors")
    return RepairOutcome(source=source)
  return _repair_tree(parsed, errors)


def attempt_repair(source: str, errors: Sequence[str], *, allow_text_fallback: bool = False) -> str:
  return repair_source(source, errors, allow_text_fallback=allow_text_fallback).source
