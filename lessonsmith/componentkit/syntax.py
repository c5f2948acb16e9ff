"""Tree-sitter helpers for parsing generated TSX components."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

JSX_TAG_OWNERS = frozenset({"jsx_opening_element", "jsx_closing_element", "jsx_self_closing_element"})
FUNCTION_TYPES = frozenset({"function_declaration", "function_expression", "function", "arrow_function", "generator_function_declaration"})


@lru_cache(maxsize=1)
def tsx_language() -> Language:
  return Language(tree_sitter_typescript.language_tsx())


@dataclass(frozen=True)
class ParsedSource:
  """Source text together with its syntax tree."""

  text: str
  data: bytes
  tree: Tree

  @property
  def root(self) -> Node:
    return self.tree.root_node

  @property
  def has_error(self) -> bool:
    return self.tree.root_node.has_error

  def text_of(self, node: Node) -> str:
    return self.data[node.start_byte : node.end_byte].decode("utf-8")

  def line_of(self, node: Node) -> int:
    """1-based line number of the node start."""
    return node.start_point[0] + 1

  def line_text(self, line: int) -> str:
    lines = self.text.splitlines()
    if 1 <= line <= len(lines):
      return lines[line - 1]
    return ""


def parse_tsx(source: str) -> ParsedSource:
  """Parse TSX source; a fresh parser per call keeps this safe across threads."""
  data = source.encode("utf-8")
  parser = Parser(tsx_language())
  return ParsedSource(text=source, data=data, tree=parser.parse(data))


def walk(node: Node) -> Iterator[Node]:
  """Yield the node and all descendants in source order."""
  stack = [node]
  while stack:
    current = stack.pop()
    yield current
    stack.extend(reversed(current.children))


def same_node(left: Node | None, right: Node | None) -> bool:
  if left is None or right is None:
    return False
  return left.start_byte == right.start_byte and left.end_byte == right.end_byte and left.type == right.type


def is_jsx_tag_name(node: Node) -> bool:
  """True when the identifier names a JSX element (<Foo>, <Foo.Bar>) rather than an expression."""
  current = node
  parent = current.parent
  while parent is not None and parent.type in {"member_expression", "nested_identifier", "jsx_namespace_name"}:
    current = parent
    parent = current.parent
  if parent is None or parent.type not in JSX_TAG_OWNERS:
    return False
  return same_node(parent.child_by_field_name("name"), current)


_BINDING_FIELDS: dict[str, tuple[str, ...]] = {
  "variable_declarator": ("name",),
  "function_declaration": ("name",),
  "function_expression": ("name",),
  "function": ("name",),
  "generator_function_declaration": ("name",),
  "class_declaration": ("name",),
  "class": ("name",),
  "required_parameter": ("pattern", "name"),
  "optional_parameter": ("pattern", "name"),
  "arrow_function": ("parameter",),
  "catch_clause": ("parameter",),
  "labeled_statement": ("label",),
}

_BINDING_PARENTS = frozenset({"import_specifier", "import_clause", "namespace_import", "export_specifier", "array_pattern", "object_pattern", "shorthand_property_identifier_pattern", "pair_pattern"})


def is_binding_identifier(node: Node) -> bool:
  """True when the identifier declares a name instead of referencing one."""
  parent = node.parent
  if parent is None:
    return False
  if parent.type in _BINDING_PARENTS:
    # Destructuring keys are property identifiers, so any identifier here is bound.
    return True
  fields = _BINDING_FIELDS.get(parent.type, ())
  return any(same_node(parent.child_by_field_name(field), node) for field in fields)


def is_expression_identifier(node: Node) -> bool:
  """True for identifiers in expression position."""
  return node.type == "identifier" and not is_jsx_tag_name(node) and not is_binding_identifier(node)


def import_sources(parsed: ParsedSource) -> list[tuple[Node, str]]:
  """Return each top-level import statement with its module specifier."""
  results: list[tuple[Node, str]] = []
  for child in parsed.root.children:
    if child.type != "import_statement":
      continue
    source = child.child_by_field_name("source")
    if source is None:
      continue
    results.append((child, string_value(parsed, source)))
  return results


def string_value(parsed: ParsedSource, node: Node) -> str:
  """Decode a string literal node to its value."""
  raw = parsed.text_of(node)
  if len(raw) >= 2 and raw[0] in {'"', "'", "`"} and raw[-1] == raw[0]:
    raw = raw[1:-1]
  parts: list[str] = []
  index = 0
  while index < len(raw):
    char = raw[index]
    if char == "\\" and index + 1 < len(raw):
      nxt = raw[index + 1]
      parts.append({"n": "\n", "t": "\t", "r": "\r", "0": "\0"}.get(nxt, nxt))
      index += 2
      continue
    parts.append(char)
    index += 1
  return "".join(parts)


@dataclass(frozen=True)
class TextEdit:
  """Replace bytes [start, end) of the source with `text`."""

  start: int
  end: int
  text: str


def apply_edits(parsed: ParsedSource, edits: list[TextEdit]) -> str:
  """Apply edits back to front so earlier offsets stay valid; an edit nested in another is dropped."""
  kept: list[TextEdit] = []
  for edit in sorted(edits, key=lambda item: (item.start, -item.end)):
    if kept and edit.start < kept[-1].end:
      continue
    kept.append(edit)
  data = parsed.data
  for edit in reversed(kept):
    data = data[: edit.start] + edit.text.encode("utf-8") + data[edit.end :]
  return data.decode("utf-8")


def enclosing_statement(node: Node) -> Node:
  """Return the statement that owns the node directly inside a block or the program."""
  current = node
  while current.parent is not None and current.parent.type not in {"program", "statement_block"}:
    current = current.parent
  return current
