"""Textual constraints on authored components and the legacy sanitizer."""

from __future__ import annotations

import re

from tree_sitter import Node

from lessonsmith.ai.pipeline.contracts import SafetyIssue
from lessonsmith.componentkit.syntax import JSX_TAG_OWNERS, ParsedSource, TextEdit, apply_edits, enclosing_statement, import_sources, is_binding_identifier, is_expression_identifier, parse_tsx, string_value, walk

ALLOWED_MODULES = frozenset({"react", "react/jsx-runtime"})

# Raw-text tokens rejected before extraction in the direct-author pipeline.
FORBIDDEN_TOKENS: tuple[str, ...] = ("child_process", "fs.", "process.env", "eval(", "Function(", "require(", "import(", "fetch(")

DISALLOWED_LIBRARY_GLOBALS = frozenset({"axios", "d3", "THREE", "jQuery", "Chart", "gsap", "anime"})
DISALLOWED_JSX_NAMESPACES = frozenset({"motion", "Motion", "Recharts", "THREE"})
DISALLOWED_MODULE_PATTERN = re.compile(r"^(framer-motion|lucide-react|@heroicons/|recharts|chart\.js|react-chartjs|d3|three|axios|lodash|jquery|@mui/|antd|styled-components|next/)")

_DECLARE_MODULE_RE = re.compile(r"^\s*declare\s+module\s+[^\n]+\n?", re.MULTILINE)
_FENCE_LINE_RE = re.compile(r"^```[A-Za-z]*\s*$\n?", re.MULTILINE)

FALLBACK_CLASS_NAME = "lesson-section"


def scan_forbidden_tokens(text: str) -> list[str]:
  """Return forbidden raw tokens present in a model response."""
  return [token for token in FORBIDDEN_TOKENS if token in text]


def _issue(parsed: ParsedSource, node: Node, rule: str, message: str) -> SafetyIssue:
  line = parsed.line_of(node)
  return SafetyIssue(rule=rule, message=message, line_hint=f"line {line}: {parsed.line_text(line).strip()[:200]}")


def _is_dynamic_import(node: Node) -> bool:
  callee = node.child_by_field_name("function")
  return node.type == "call_expression" and callee is not None and callee.type == "import"


def _is_require(parsed: ParsedSource, node: Node) -> bool:
  callee = node.child_by_field_name("function")
  return node.type == "call_expression" and callee is not None and callee.type == "identifier" and parsed.text_of(callee) == "require"


def _declared_names(parsed: ParsedSource) -> set[str]:
  return {parsed.text_of(node) for node in walk(parsed.root) if node.type == "identifier" and is_binding_identifier(node)}


def _jsx_namespace(parsed: ParsedSource, node: Node) -> str | None:
  """Return `motion` for <motion.div>, None for plain tags."""
  name = node.child_by_field_name("name")
  if name is None or name.type not in {"member_expression", "nested_identifier"}:
    return None
  return parsed.text_of(name).split(".", 1)[0]


_LINE_CHECKS: tuple[tuple[str, re.Pattern[str], str], ...] = (
  ("external-import", re.compile(r"^\s*import\s[^;]*?from\s+['\"](?!react['\"/])([^'\"]+)['\"]"), "External import"),
  ("require", re.compile(r"\brequire\s*\("), "Require statement detected"),
  ("dynamic-import", re.compile(r"\bimport\s*\("), "Dynamic import() detected"),
)


def _check_lines(source: str) -> list[SafetyIssue]:
  """Line patterns for source the parser rejects; the compiler reports the syntax error itself."""
  issues: list[SafetyIssue] = []
  for index, line in enumerate(source.splitlines(), start=1):
    for rule, pattern, message in _LINE_CHECKS:
      if pattern.search(line):
        issues.append(SafetyIssue(rule=rule, message=message, line_hint=f"line {index}: {line.strip()[:200]}"))
  return issues


def check_author_constraints(source: str) -> list[SafetyIssue]:
  """Check an authored component for disallowed imports and library usage."""
  parsed = parse_tsx(source)
  if parsed.has_error:
    return _check_lines(source)

  issues: list[SafetyIssue] = []
  for statement, module in import_sources(parsed):
    if module in ALLOWED_MODULES:
      continue
    if DISALLOWED_MODULE_PATTERN.match(module):
      issues.append(_issue(parsed, statement, "disallowed-library", f"Disallowed library import: {module}"))
    else:
      issues.append(_issue(parsed, statement, "external-import", f"External import: {module}"))

  declared = _declared_names(parsed)
  seen_globals: set[str] = set()
  for node in walk(parsed.root):
    if _is_require(parsed, node):
      issues.append(_issue(parsed, node, "require", "Require statement detected"))
    elif _is_dynamic_import(node):
      issues.append(_issue(parsed, node, "dynamic-import", "Dynamic import() detected"))
    elif node.type in JSX_TAG_OWNERS - {"jsx_closing_element"}:
      namespace = _jsx_namespace(parsed, node)
      if namespace in DISALLOWED_JSX_NAMESPACES and namespace not in declared and namespace not in seen_globals:
        seen_globals.add(namespace)
        issues.append(_issue(parsed, node, "disallowed-library", f"Disallowed library component: <{namespace}.*>"))
    elif is_expression_identifier(node):
      name = parsed.text_of(node)
      if name in DISALLOWED_LIBRARY_GLOBALS and name not in declared and name not in seen_globals:
        seen_globals.add(name)
        issues.append(_issue(parsed, node, "disallowed-library", f"Disallowed library reference: {name}"))
  return issues


def check_source_size(source: str, max_bytes: int) -> SafetyIssue | None:
  size = len(source.encode("utf-8"))
  if size <= max_bytes:
    return None
  return SafetyIssue(rule="source-size", message=f"Generated source is {size} bytes; limit is {max_bytes}", line_hint=None)


def _strip_wrappers(source: str) -> str:
  without_fences = _FENCE_LINE_RE.sub("", source)
  return _DECLARE_MODULE_RE.sub("", without_fences)


def _class_name_edit(parsed: ParsedSource, attribute: Node) -> TextEdit | None:
  """Collapse className={...} to a static string literal."""
  children = attribute.named_children
  if len(children) < 2 or parsed.text_of(children[0]) != "className":
    return None
  value = children[1]
  if value.type == "string":
    return None
  if value.type != "jsx_expression":
    return None
  inner = value.named_children[0] if value.named_children else None
  static = inner is not None and (inner.type == "string" or (inner.type == "template_string" and not any(child.type == "template_substitution" for child in inner.named_children)))
  if static:
    # JSX attribute strings have no escapes, so inner double quotes become single quotes.
    literal = string_value(parsed, inner).replace('"', "'")
    return TextEdit(value.start_byte, value.end_byte, f'"{literal}"')
  return TextEdit(value.start_byte, value.end_byte, f'"{FALLBACK_CLASS_NAME}"')


def sanitize_component(source: str) -> str:
  """Strip non-react imports, require/import() statements and dynamic class names.

  Unparseable source is returned after the textual pre-pass only; the compiler reports the syntax error.
  """
  cleaned = _strip_wrappers(source)
  parsed = parse_tsx(cleaned)
  if parsed.has_error:
    return cleaned

  edits: list[TextEdit] = []
  for statement, module in import_sources(parsed):
    if module not in ALLOWED_MODULES:
      edits.append(TextEdit(statement.start_byte, statement.end_byte, ""))
  for node in walk(parsed.root):
    if _is_require(parsed, node) or _is_dynamic_import(node):
      statement = enclosing_statement(node)
      edits.append(TextEdit(statement.start_byte, statement.end_byte, ""))
    elif node.type == "jsx_attribute":
      edit = _class_name_edit(parsed, node)
      if edit is not None:
        edits.append(edit)
  return apply_edits(parsed, edits)
