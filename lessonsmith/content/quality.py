"""Structural and alignment checks for structured lesson content.

Why:
  - A component can compile cleanly and still carry an empty quiz, placeholder prose,
    or content about the wrong topic.
  - The generation loop retries such lessons with the findings fed back to the author.

How:
  - Start from a score of 1.0 and deduct per finding, split into blocking issues and
    softer suggestions.
  - Alignment is the share of distinctive outline words found in the serialized content.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import msgspec
from tree_sitter import Node

from lessonsmith.ai.pipeline.contracts import ContentValidationResult, StyleReport, SvgAlignmentResult
from lessonsmith.componentkit.syntax import ParsedSource, parse_tsx, string_value, walk

logger = logging.getLogger(__name__)

LESSON_TYPES = frozenset({"quiz", "one-pager", "explanation", "rich-content"})
PROSE_TYPES = frozenset({"one-pager", "explanation"})

_PLACEHOLDER_RE = re.compile(r"\b(placeholder|lorem|ipsum)\b|example text|your content here")
_OUTLINE_PUNCTUATION_RE = re.compile(r"[\"'.,()\-]")
_EXAMPLE_WORDS = frozenset({"example", "examples", "instance", "such", "like"})
_EXPLANATION_WORDS = frozenset({"because", "therefore", "means", "explain", "explanation"})

MAX_ALIGNMENT_KEYWORDS = 10


class _Findings:
  def __init__(self) -> None:
    self.issues: list[str] = []
    self.suggestions: list[str] = []
    self.deduction = 0.0

  def issue(self, message: str, deduction: float = 0.0) -> None:
    self.issues.append(message)
    self.deduction += deduction

  def suggest(self, message: str, deduction: float = 0.0) -> None:
    self.suggestions.append(message)
    self.deduction += deduction


def _text(value: Any) -> str:
  return value if isinstance(value, str) else ""


def _check_quiz(content: dict[str, Any], findings: _Findings, metrics: dict[str, Any]) -> None:
  questions = content.get("questions")
  if not isinstance(questions, list):
    findings.issue("Quiz content must have a questions array", 0.4)
    metrics["questionCount"] = 0
    return
  metrics["questionCount"] = len(questions)
  if not questions:
    findings.issue("Quiz must have at least one question", 0.3)
  elif len(questions) < 3:
    findings.suggest("Consider adding more questions for better assessment", 0.1)

  for index, question in enumerate(questions, start=1):
    question = question if isinstance(question, dict) else {}
    text = _text(question.get("q"))
    if len(text) < 10:
      findings.issue(f"Question {index}: Question text is too short or missing", 0.1)
    elif len(text) < 20:
      findings.suggest(f"Question {index}: Consider making the question more detailed")
    options = question.get("options")
    if not isinstance(options, list) or len(options) != 4:
      findings.issue(f"Question {index}: Must have exactly 4 options", 0.1)
    elif any(not _text(option).strip() for option in options):
      findings.issue(f"Question {index}: All options must have content", 0.1)
    answer = question.get("answerIndex")
    if isinstance(answer, bool) or not isinstance(answer, int) or not 0 <= answer <= 3:
      findings.issue(f"Question {index}: Invalid answerIndex (must be 0-3)", 0.1)


def _check_sections(content: dict[str, Any], findings: _Findings, metrics: dict[str, Any]) -> None:
  sections = content.get("sections")
  if not isinstance(sections, list):
    findings.issue("Content must have a sections array", 0.4)
    metrics.update(sectionCount=0, wordCount=0)
    return
  metrics["sectionCount"] = len(sections)
  if not sections:
    findings.issue("Content must have at least one section", 0.3)
  elif len(sections) < 3:
    findings.suggest("Consider adding more sections for comprehensive coverage", 0.1)

  total_words = 0
  has_examples = False
  has_explanations = False
  for index, section in enumerate(sections, start=1):
    section = section if isinstance(section, dict) else {}
    if len(_text(section.get("heading"))) < 3:
      findings.issue(f"Section {index}: Heading is too short or missing", 0.1)
    text = _text(section.get("text"))
    if len(text) < 50:
      findings.issue(f"Section {index}: Text content is too short (minimum 50 characters)", 0.1)
    else:
      words = len(text.split())
      total_words += words
      if words < 20:
        findings.suggest(f"Section {index}: Consider expanding the content")
    if text:
      lowered = text.lower()
      tokens = set(lowered.split())
      section_examples = bool(tokens & _EXAMPLE_WORDS) or "for instance" in lowered or "such as" in lowered
      section_explanations = bool(tokens & _EXPLANATION_WORDS) or "this means" in lowered or "in other words" in lowered
      has_examples = has_examples or section_examples
      has_explanations = has_explanations or section_explanations
      if not section_examples and not section_explanations:
        findings.suggest(f"Section {index}: Consider adding examples or explanations")

  if total_words < 100:
    findings.suggest("Consider expanding the overall content for better educational value", 0.1)
  metrics.update(wordCount=total_words, hasExamples=has_examples, hasExplanations=has_explanations)


def _check_blocks(content: dict[str, Any], findings: _Findings, metrics: dict[str, Any]) -> None:
  blocks = content.get("blocks")
  if not isinstance(blocks, list):
    findings.issue("Rich content must have a blocks array", 0.4)
    metrics["blockCount"] = 0
    return
  metrics["blockCount"] = len(blocks)
  if not blocks:
    findings.issue("Rich content must have at least one block", 0.3)
  elif len(blocks) < 3:
    findings.suggest("Consider adding more blocks for richer content", 0.1)

  kinds: set[str] = set()
  for index, block in enumerate(blocks, start=1):
    block = block if isinstance(block, dict) else {}
    kind = block.get("type")
    if not kind:
      findings.issue(f"Block {index}: Missing block type", 0.1)
      continue
    kinds.add(str(kind))
    if kind == "text" and len(_text(block.get("content"))) < 20:
      findings.issue(f"Block {index}: Text block content is too short", 0.1)
    if kind == "quiz" and not block.get("questions"):
      findings.issue(f"Block {index}: Quiz block must have questions", 0.1)
  if len(kinds) < 2:
    findings.suggest("Consider using more variety in block types", 0.1)


def _serialize(data: Any) -> str:
  return msgspec.json.encode(data).decode("utf-8").lower()


def _check_general(data: dict[str, Any], serialized: str, findings: _Findings) -> None:
  if _PLACEHOLDER_RE.search(serialized):
    findings.issue("Content contains placeholder text", 0.2)
  if len(_text(data.get("title"))) > 100:
    findings.suggest("Title is quite long, consider shortening it")
  if len(_text(data.get("description"))) < 10:
    findings.suggest("Consider adding a more descriptive description", 0.05)


def outline_keywords(outline: str) -> list[str]:
  """Unique outline words longer than four characters, in order, at most ten."""
  words = _OUTLINE_PUNCTUATION_RE.sub(" ", outline.lower()).split()
  keywords: list[str] = []
  for word in words:
    if len(word) > 4 and word not in keywords:
      keywords.append(word)
  return keywords[:MAX_ALIGNMENT_KEYWORDS]


def alignment_score(outline: str, serialized: str) -> float:
  keywords = outline_keywords(outline)
  if not keywords:
    return 1.0
  matched = [keyword for keyword in keywords if keyword in serialized]
  return len(matched) / len(keywords)


def validate_lesson_content(data: Any, outline: str | None = None, *, fail_threshold: float = 0.4, warn_threshold: float = 0.7) -> ContentValidationResult:
  """Score structured lesson content; `valid` requires no issues and a score of at least 0.7."""
  if not isinstance(data, dict):
    return ContentValidationResult(valid=False, score=0.0, issues=["Lesson content must be an object"])
  findings = _Findings()
  metrics: dict[str, Any] = {}

  if len(_text(data.get("title"))) < 5:
    findings.issue("Title is too short or missing", 0.2)
  lesson_type = data.get("type")
  if lesson_type not in LESSON_TYPES:
    findings.issue("Invalid or missing lesson type", 0.3)

  content = data.get("content")
  if not content:
    findings.issue("Missing lesson content")
    return ContentValidationResult(valid=False, score=0.0, issues=findings.issues, suggestions=findings.suggestions)
  content = content if isinstance(content, dict) else {}

  if lesson_type == "quiz":
    _check_quiz(content, findings, metrics)
  elif lesson_type in PROSE_TYPES:
    _check_sections(content, findings, metrics)
  elif lesson_type == "rich-content":
    _check_blocks(content, findings, metrics)

  serialized = _serialize(data)
  _check_general(data, serialized, findings)

  if outline:
    alignment = alignment_score(outline, serialized)
    metrics["alignmentScore"] = round(alignment, 2)
    if alignment < fail_threshold:
      findings.issue("Low outline alignment: content shares few keywords with the outline", 0.15)
      findings.suggest("Incorporate more outline-specific terms, examples, or constraints")
    elif alignment < warn_threshold:
      findings.suggest("Increase outline-specific details and vocabulary to improve alignment", 0.05)

  score = max(0.0, round(1.0 - findings.deduction, 4))
  return ContentValidationResult(valid=not findings.issues and score >= 0.7, score=score, issues=findings.issues, suggestions=findings.suggestions, metrics=metrics)


class _NotLiteral(ValueError):
  pass


def _literal(parsed: ParsedSource, node: Node) -> Any:
  """Convert an object-literal subtree to Python values without executing anything."""
  kind = node.type
  if kind == "parenthesized_expression" and node.named_children:
    return _literal(parsed, node.named_children[0])
  if kind == "object":
    result: dict[str, Any] = {}
    for member in node.named_children:
      if member.type == "comment":
        continue
      if member.type != "pair":
        raise _NotLiteral(f"unsupported object member {member.type}")
      key_node = member.child_by_field_name("key")
      value_node = member.child_by_field_name("value")
      if key_node is None or value_node is None:
        raise _NotLiteral("incomplete object member")
      key = string_value(parsed, key_node) if key_node.type == "string" else parsed.text_of(key_node)
      result[key] = _literal(parsed, value_node)
    return result
  if kind == "array":
    return [_literal(parsed, child) for child in node.named_children if child.type != "comment"]
  if kind == "string":
    return string_value(parsed, node)
  if kind == "template_string":
    if any(child.type == "template_substitution" for child in node.named_children):
      raise _NotLiteral("template substitution")
    return string_value(parsed, node)
  if kind == "number":
    raw = parsed.text_of(node).replace("_", "")
    return float(raw) if any(char in raw for char in ".eE") and not raw.lower().startswith("0x") else int(raw, 0)
  if kind == "unary_expression" and parsed.text_of(node).startswith("-") and node.named_children:
    value = _literal(parsed, node.named_children[0])
    if isinstance(value, bool) or not isinstance(value, int | float):
      raise _NotLiteral("negated non-number")
    return -value
  if kind == "true":
    return True
  if kind == "false":
    return False
  if kind in {"null", "undefined"} or (kind == "identifier" and parsed.text_of(node) == "undefined"):
    return None
  if kind in {"as_expression", "satisfies_expression"} and node.named_children:
    return _literal(parsed, node.named_children[0])
  raise _NotLiteral(f"unsupported expression {kind}")


def extract_lesson_data(source: str) -> dict[str, Any] | None:
  """Return the object bound to `const lesson = {...}`, or None when absent or not a plain literal."""
  parsed = parse_tsx(source)
  for node in walk(parsed.root):
    if node.type != "variable_declarator":
      continue
    name = node.child_by_field_name("name")
    value = node.child_by_field_name("value")
    if name is None or value is None or parsed.text_of(name) != "lesson":
      continue
    declaration = node.parent
    if declaration is None or not declaration.children or declaration.children[0].type != "const":
      continue
    try:
      data = _literal(parsed, value)
    except (_NotLiteral, ValueError) as exc:
      logger.info("Lesson literal could not be evaluated: %s", exc)
      return None
    return data if isinstance(data, dict) else None
  return None


def format_feedback(result: ContentValidationResult) -> str:
  """Retry feedback for the author prompt."""
  lines = [f"The previous lesson content scored {result.score:.2f} and was rejected."]
  if "alignmentScore" in result.metrics:
    lines.append(f"Outline alignment: {result.metrics['alignmentScore']:.2f}")
  if result.issues:
    lines.append("Issues to fix:")
    lines.extend(f"- {issue}" for issue in result.issues)
  if result.suggestions:
    lines.append("Suggestions:")
    lines.extend(f"- {suggestion}" for suggestion in result.suggestions)
  return "\n".join(lines)


_SVG_RE = re.compile(r"<svg\b[\s\S]*?>[\s\S]*?</svg>", re.IGNORECASE)
_VIEWBOX_RE = re.compile(r"<svg[^>]*\bviewBox=\"([-\d.\s]+)\"[^>]*>", re.IGNORECASE)
_PRESERVE_RE = re.compile(r"<svg[^>]*\bpreserveAspectRatio=\"xMidYMid meet\"", re.IGNORECASE)
_TITLE_RE = re.compile(r"<title>[^<]+</title>", re.IGNORECASE)
_DESC_RE = re.compile(r"<desc>[^<]*</desc>", re.IGNORECASE)
_ARIA_RE = re.compile(r"<svg[^>]*\baria-labelledby=\"[^\"]+\"", re.IGNORECASE)
_LABEL_RE = re.compile(r"<text([^>]*)>([^<]*)</text>", re.IGNORECASE)
_X_RE = re.compile(r"\bx=(?:\"|\{)\s*(-?\d+(?:\.\d+)?)")
_Y_RE = re.compile(r"\by=(?:\"|\{)\s*(-?\d+(?:\.\d+)?)")
_ARROW_RE = re.compile(r"<path[^>]*markerEnd=|<marker[^>]*id=\"arrow|d=\"M [^\"]+ L ", re.IGNORECASE)
_ENTITY_GROUP_RE = re.compile(r"<g[^>]*data-entity=\"[^\"]+\"", re.IGNORECASE)
_LEGEND_RE = re.compile(r"Legend|<g[^>]*data-legend=|<rect[^>]*className=\"[^\"]*legend", re.IGNORECASE)
_MAPPING_RE = re.compile(r"entity\s*:\s*\"[^\"]*\"\s*(?:→|->)|->|=>\s*(?:rect|circle|path|g\b|#|\.)", re.IGNORECASE)

SVG_LABEL_MARGIN = 16
SVG_LABEL_MAX_CHARS = 18
SVG_VALID_SCORE = 0.7

_HUES = ("red", "orange", "amber", "yellow", "lime", "green", "emerald", "teal", "cyan", "sky", "blue", "indigo", "violet", "purple", "fuchsia", "pink", "rose")


def _viewbox(source: str) -> tuple[float, float, float, float] | None:
  match = _VIEWBOX_RE.search(source)
  if match is None:
    return None
  try:
    parts = [float(part) for part in match.group(1).split()]
  except ValueError:
    return None
  return (parts[0], parts[1], parts[2], parts[3]) if len(parts) == 4 else None


def _labels_out_of_bounds(labels: list[tuple[str, str]], viewbox: tuple[float, float, float, float]) -> list[str]:
  min_x, min_y, width, height = viewbox
  if width <= 0 or height <= 0:
    return []
  left, top = min_x + SVG_LABEL_MARGIN, min_y + SVG_LABEL_MARGIN
  right, bottom = min_x + width - SVG_LABEL_MARGIN, min_y + height - SVG_LABEL_MARGIN
  outside: list[str] = []
  for attributes, text in labels:
    x_match, y_match = _X_RE.search(attributes), _Y_RE.search(attributes)
    if x_match is None or y_match is None:
      continue
    x, y = float(x_match.group(1)), float(y_match.group(1))
    if not (left <= x <= right and top <= y <= bottom):
      outside.append(f"{text.strip()[:20] or 'label'}@({x:g},{y:g})")
  return outside


def validate_svg_alignment(source: str, outline: str | None = None) -> SvgAlignmentResult:
  """Check the module's inline diagram for accessibility, labelling and outline grounding.

  Valid when there are no issues or the score stays at or above 0.7.
  """
  if not _SVG_RE.search(source):
    return SvgAlignmentResult(valid=False, score=0.0, issues=["No inline <svg> found"], signals={"hasSvg": False, "labelCount": 0})

  issues: list[str] = []
  viewbox = _viewbox(source)
  has_viewbox = _VIEWBOX_RE.search(source) is not None
  if not has_viewbox:
    issues.append("SVG missing viewBox")
  has_preserve = _PRESERVE_RE.search(source) is not None
  if not has_preserve:
    issues.append('SVG should set preserveAspectRatio="xMidYMid meet"')
  has_title_desc = _TITLE_RE.search(source) is not None and _DESC_RE.search(source) is not None
  if not has_title_desc:
    issues.append("SVG missing <title> or <desc>")
  has_aria = _ARIA_RE.search(source) is not None
  if not has_aria:
    issues.append("SVG missing aria-labelledby")

  labels = _LABEL_RE.findall(source)
  if len(labels) < 2:
    issues.append("Insufficient labeled marks (<text>)")
  if viewbox is not None:
    outside = _labels_out_of_bounds(labels, viewbox)
    if outside:
      suffix = "..." if len(outside) > 3 else ""
      issues.append(f"Labels outside viewBox bounds (with margin): {'; '.join(outside[:3])}{suffix}")
  if any(len(text.strip()) > SVG_LABEL_MAX_CHARS for _, text in labels):
    issues.append(f"Some labels exceed {SVG_LABEL_MAX_CHARS} characters; consider truncation with ...")

  has_arrow = _ARROW_RE.search(source) is not None
  if not has_arrow:
    issues.append("No relationship arrow/flow indicated")
  has_groups = _ENTITY_GROUP_RE.search(source) is not None
  if not has_groups:
    issues.append("No <g data-entity> grouping present")
  has_mapping = _MAPPING_RE.search(source) is not None
  if not has_mapping:
    issues.append("Missing mapping comment for entities -> SVG elements")

  outline_ok = True
  if outline:
    words = list(dict.fromkeys(word for word in re.split(r"[^a-z0-9]+", outline.lower()) if len(word) > 4))[:6]
    label_text = " ".join(text for _, text in labels).lower()
    matched = [word for word in words if word in label_text]
    outline_ok = not words or len(matched) >= max(1, int(len(words) * 0.3))
    if not outline_ok:
      issues.append("SVG labels appear weakly aligned to outline keywords")

  deductions = [
    0.0 if has_viewbox else 0.15,
    0.0 if has_title_desc else 0.15,
    0.0 if has_aria else 0.1,
    0.0 if len(labels) >= 2 else 0.15,
    0.0 if has_arrow else 0.15,
    0.0 if has_groups else 0.15,
    0.0 if outline_ok else 0.1,
    0.0 if has_preserve else 0.05,
  ]
  score = max(0.0, round(1.0 - sum(deductions), 4))
  signals = {
    "hasSvg": True,
    "hasViewBox": has_viewbox,
    "hasTitleDesc": has_title_desc,
    "hasAria": has_aria,
    "labelCount": len(labels),
    "hasRelationshipArrow": has_arrow,
    "hasEntityGroups": has_groups,
    "hasLegend": _LEGEND_RE.search(source) is not None,
    "hasMappingComment": has_mapping,
  }
  return SvgAlignmentResult(valid=not issues or score >= SVG_VALID_SCORE, score=score, issues=issues, signals=signals)


def validate_style_heuristics(source: str) -> StyleReport:
  """Utility-class signals for spacing, depth, radius, layout and palette; advisory only."""
  issues: list[str] = []
  signals: dict[str, Any] = {}

  spacing = len(re.findall(r"\b(?:p|px|py|pt|pb|pl|pr|gap)-(?:4|6|8)\b", source))
  signals["spacing_rhythm"] = spacing
  if spacing < 3:
    issues.append("Low usage of 4/6/8 spacing rhythm")

  has_shadow = re.search(r"\bshadow(?!-\[)", source) is not None
  has_ring = re.search(r"\bring-1\b", source) is not None
  signals.update(has_shadow=has_shadow, has_ring=has_ring)
  if not has_shadow and not has_ring:
    issues.append("No elevation styles (shadow or ring) detected")

  has_radius = re.search(r"\brounded-(?:xl|2xl)\b", source) is not None
  signals["has_large_radius"] = has_radius
  if not has_radius:
    issues.append("No large radius (rounded-xl/2xl) found for cards")

  has_container = re.search(r"\bmax-w-(?:xl|2xl|3xl|4xl)\b", source) is not None and re.search(r"\bmx-auto\b", source) is not None
  signals["has_responsive_container"] = has_container
  if not has_container:
    issues.append("No responsive container (max-w-*/mx-auto)")

  arbitrary = len(re.findall(r"\[[^\]]+\]", source))
  signals["arbitrary_class_count"] = arbitrary
  if arbitrary > 2:
    issues.append("Excessive arbitrary utility values; prefer tokens")

  hues = [hue for hue in _HUES if re.search(rf"\b{hue}-\d{{2,3}}\b", source)]
  signals["distinct_hues"] = len(hues)
  if len(hues) > 3:
    issues.append("Too many distinct color hues; limit to primary + accent + neutrals")

  return StyleReport(signals=signals, issues=issues)
