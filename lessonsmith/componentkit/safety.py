"""Static safety scan of generated component source."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from tree_sitter import Node

from lessonsmith.ai.pipeline.contracts import SafetyIssue
from lessonsmith.componentkit.syntax import ParsedSource, is_expression_identifier, parse_tsx, walk

logger = logging.getLogger(__name__)

_HINT_MAX_CHARS = 200

_TIMER_NAMES = frozenset({"setTimeout", "setInterval", "setImmediate", "requestAnimationFrame"})
_REQUEST_CONSTRUCTORS = frozenset({"XMLHttpRequest", "WebSocket", "EventSource"})
_WINDOW_NAMES = frozenset({"window", "globalThis", "self", "top", "parent", "frames"})
_STORAGE_NAMES = frozenset({"localStorage", "sessionStorage", "indexedDB"})


@dataclass(frozen=True)
class SafetyRule:
  """One forbidden construct with its AST matcher and line-pattern fallback."""

  rule: str
  message: str
  matches: Callable[[ParsedSource, Node], bool]
  pattern: re.Pattern[str]


def _callee_name(parsed: ParsedSource, node: Node) -> str | None:
  if node.type not in {"call_expression", "new_expression"}:
    return None
  callee = node.child_by_field_name("function") or node.child_by_field_name("constructor")
  if callee is None:
    return None
  if callee.type == "identifier":
    return parsed.text_of(callee)
  if callee.type == "member_expression":
    # window.fetch(...) / globalThis.setTimeout(...) resolve to the property name.
    prop = callee.child_by_field_name("property")
    if prop is not None:
      return parsed.text_of(prop)
  return None


def _is_fetch(parsed: ParsedSource, node: Node) -> bool:
  # Bare references count too, so `const get = fetch` cannot smuggle the call out.
  if is_expression_identifier(node):
    return parsed.text_of(node) == "fetch"
  return node.type == "call_expression" and _callee_name(parsed, node) == "fetch"


def _is_network_request(parsed: ParsedSource, node: Node) -> bool:
  if node.type == "new_expression" and _callee_name(parsed, node) in _REQUEST_CONSTRUCTORS:
    return True
  if node.type == "member_expression":
    obj = node.child_by_field_name("object")
    prop = node.child_by_field_name("property")
    return obj is not None and prop is not None and parsed.text_of(obj) == "navigator" and parsed.text_of(prop) == "sendBeacon"
  return False


def _is_timer(parsed: ParsedSource, node: Node) -> bool:
  if is_expression_identifier(node):
    return parsed.text_of(node) in _TIMER_NAMES
  return node.type == "call_expression" and _callee_name(parsed, node) in _TIMER_NAMES


def _is_eval(parsed: ParsedSource, node: Node) -> bool:
  if is_expression_identifier(node):
    return parsed.text_of(node) in {"eval", "Function"}
  return node.type in {"call_expression", "new_expression"} and _callee_name(parsed, node) in {"eval", "Function"}


def _identifier_in(names: frozenset[str]) -> Callable[[ParsedSource, Node], bool]:
  def _matches(parsed: ParsedSource, node: Node) -> bool:
    return is_expression_identifier(node) and parsed.text_of(node) in names

  return _matches


def _global_member_in(names: frozenset[str]) -> Callable[[ParsedSource, Node], bool]:
  """Match the bare identifier or the same name read off a global object, e.g. `self.localStorage`."""

  def _matches(parsed: ParsedSource, node: Node) -> bool:
    if is_expression_identifier(node):
      return parsed.text_of(node) in names
    if node.type != "member_expression":
      return False
    obj = node.child_by_field_name("object")
    prop = node.child_by_field_name("property")
    return obj is not None and prop is not None and obj.type == "identifier" and parsed.text_of(obj) in _WINDOW_NAMES and parsed.text_of(prop) in names

  return _matches


RULES: tuple[SafetyRule, ...] = (
  SafetyRule("network-fetch", "Network calls via fetch are not allowed", _is_fetch, re.compile(r"\bfetch\s*\(")),
  SafetyRule("network-request", "Network requests (XMLHttpRequest, WebSocket, EventSource, sendBeacon) are not allowed", _is_network_request, re.compile(r"\bnew\s+(XMLHttpRequest|WebSocket|EventSource)\b|\bnavigator\.sendBeacon\b")),
  SafetyRule("timers", "Timers are not allowed", _is_timer, re.compile(r"\b(setTimeout|setInterval|setImmediate|requestAnimationFrame)\s*\(")),
  SafetyRule("eval", "Dynamic code evaluation is not allowed", _is_eval, re.compile(r"\beval\s*\(|\bFunction\s*\(")),
  SafetyRule("document-access", "Direct document access is not allowed", _global_member_in(frozenset({"document"})), re.compile(r"(?<![\w.])document\b|\b(window|globalThis|self|top|parent|frames)\s*\.\s*document\b")),
  SafetyRule("window-access", "Direct window/global object access is not allowed", _identifier_in(_WINDOW_NAMES), re.compile(r"(?<![\w.])(window|globalThis)\b|(?<![\w.])(self|top|parent|frames)\s*\.")),
  SafetyRule("global-side-effects", "Persistent storage access is not allowed", _global_member_in(_STORAGE_NAMES), re.compile(r"\b(localStorage|sessionStorage|indexedDB)\b")),
)


def _hint(line: int, text: str) -> str:
  return f"line {line}: {text.strip()[:_HINT_MAX_CHARS]}"


def _scan_tree(parsed: ParsedSource) -> list[SafetyIssue]:
  first_hit: dict[str, Node] = {}
  for node in walk(parsed.root):
    for rule in RULES:
      if rule.rule not in first_hit and rule.matches(parsed, node):
        first_hit[rule.rule] = node
  issues: list[SafetyIssue] = []
  for rule in RULES:
    node = first_hit.get(rule.rule)
    if node is None:
      continue
    line = parsed.line_of(node)
    issues.append(SafetyIssue(rule=rule.rule, message=rule.message, line_hint=_hint(line, parsed.line_text(line))))
  return issues


def _scan_lines(source: str) -> list[SafetyIssue]:
  """Lower-precision tier used only when the source does not parse."""
  issues: list[SafetyIssue] = []
  lines = source.splitlines()
  for rule in RULES:
    for index, line in enumerate(lines, start=1):
      if rule.pattern.search(line):
        issues.append(SafetyIssue(rule=rule.rule, message=rule.message, line_hint=_hint(index, line)))
        break
  return issues


def check_safety(source: str) -> list[SafetyIssue]:
  """Return issues in rule order, at most one per rule; an empty list means the source is safe."""
  parsed = parse_tsx(source)
  if parsed.has_error:
    logger.info("Safety scan falling back to line patterns; source has syntax errors")
    return _scan_lines(source)
  return _scan_tree(parsed)
