"""Deterministic server-side render of a component's default export to markup.

The renderer evaluates the JSX returned by the default export statically:
literal attributes and text are kept, dynamic expressions render empty, and
conditionals render their markup branch. No component code is executed.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Mapping
from typing import Any

from tree_sitter import Node

from lessonsmith.ai.pipeline.contracts import ComponentArtifact, PreviewResult
from lessonsmith.componentkit.syntax import FUNCTION_TYPES, ParsedSource, parse_tsx, string_value

logger = logging.getLogger(__name__)

MAX_COMPONENT_DEPTH = 8

VOID_ELEMENTS = frozenset({"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"})
ATTRIBUTE_ALIASES = {"className": "class", "htmlFor": "for"}
_SKIPPED_ATTRIBUTES = frozenset({"key", "ref", "style", "dangerouslySetInnerHTML"})


class PreviewError(Exception):
  """The component cannot be rendered statically."""


class _Markup(str):
  """Already-rendered children passed down as the `children` prop."""


def _find_components(parsed: ParsedSource) -> dict[str, Node]:
  """Map top-level component names to their function nodes."""
  components: dict[str, Node] = {}
  for child in parsed.root.named_children:
    node = child
    if node.type == "export_statement":
      declaration = node.child_by_field_name("declaration")
      if declaration is None:
        continue
      node = declaration
    if node.type in FUNCTION_TYPES:
      name = node.child_by_field_name("name")
      if name is not None:
        components[parsed.text_of(name)] = node
    elif node.type in {"lexical_declaration", "variable_declaration"}:
      for declarator in node.named_children:
        if declarator.type != "variable_declarator":
          continue
        name = declarator.child_by_field_name("name")
        value = _unwrap_call(parsed, declarator.child_by_field_name("value"))
        if name is not None and value is not None and value.type in FUNCTION_TYPES:
          components[parsed.text_of(name)] = value
  return components


def _unwrap_call(parsed: ParsedSource, node: Node | None) -> Node | None:
  """Look through wrappers such as React.memo(Component)."""
  while node is not None and node.type in {"call_expression", "parenthesized_expression", "as_expression", "satisfies_expression"}:
    if node.type == "call_expression":
      arguments = node.child_by_field_name("arguments")
      node = arguments.named_children[0] if arguments is not None and arguments.named_children else None
    else:
      node = node.named_children[0] if node.named_children else None
  return node


def _default_export(parsed: ParsedSource, components: Mapping[str, Node]) -> Node:
  for child in parsed.root.named_children:
    if child.type != "export_statement" or not any(token.type == "default" for token in child.children):
      continue
    target = child.child_by_field_name("declaration") or child.child_by_field_name("value")
    target = _unwrap_call(parsed, target)
    if target is None:
      break
    if target.type in FUNCTION_TYPES:
      return target
    if target.type == "identifier" and parsed.text_of(target) in components:
      return components[parsed.text_of(target)]
    raise PreviewError(f"Default export is not a component function: {parsed.text_of(target)[:80]}")
  raise PreviewError("Module has no default export")


def _returned_expression(function: Node) -> Node | None:
  """Expression returned at the top level of the function body."""
  body = function.child_by_field_name("body")
  if body is None:
    return None
  if body.type != "statement_block":
    return body
  for statement in body.named_children:
    if statement.type == "return_statement":
      return statement.named_children[0] if statement.named_children else None
  return None


class _Renderer:
  def __init__(self, parsed: ParsedSource, components: Mapping[str, Node]) -> None:
    self._parsed = parsed
    self._components = components

  def render_component(self, function: Node, props: Mapping[str, Any], depth: int) -> str:
    if depth > MAX_COMPONENT_DEPTH:
      raise PreviewError("Component nesting is too deep to render")
    expression = _returned_expression(function)
    if expression is None:
      return ""
    return self.render_expression(expression, props, depth)

  def render_expression(self, node: Node, props: Mapping[str, Any], depth: int) -> str:
    kind = node.type
    if kind in {"parenthesized_expression", "as_expression", "satisfies_expression", "non_null_expression"}:
      return self.render_expression(node.named_children[0], props, depth) if node.named_children else ""
    if kind in {"jsx_element", "jsx_self_closing_element"}:
      return self.render_element(node, props, depth)
    if kind in {"string", "template_string"}:
      if kind == "template_string" and any(child.type == "template_substitution" for child in node.named_children):
        return ""
      return html.escape(string_value(self._parsed, node), quote=False)
    if kind == "number":
      return self._parsed.text_of(node)
    if kind == "binary_expression":
      operator = node.child_by_field_name("operator")
      op = self._parsed.text_of(operator) if operator is not None else ""
      left = node.child_by_field_name("left")
      right = node.child_by_field_name("right")
      if op == "&&" and right is not None:
        return self.render_expression(right, props, depth)
      if op in {"||", "??"} and left is not None:
        rendered = self.render_expression(left, props, depth)
        return rendered or (self.render_expression(right, props, depth) if right is not None else "")
      return ""
    if kind == "ternary_expression":
      consequence = node.child_by_field_name("consequence")
      return self.render_expression(consequence, props, depth) if consequence is not None else ""
    if kind == "array":
      return "".join(self.render_expression(child, props, depth) for child in node.named_children)
    if kind in {"identifier", "member_expression"}:
      return self._render_prop(node, props)
    # Calls, null, booleans and other dynamic values render nothing.
    return ""

  def _render_prop(self, node: Node, props: Mapping[str, Any]) -> str:
    if node.type == "member_expression":
      prop = node.child_by_field_name("property")
      key = self._parsed.text_of(prop) if prop is not None else ""
    else:
      key = self._parsed.text_of(node)
    value = props.get(key)
    if isinstance(value, _Markup):
      return str(value)
    if isinstance(value, bool) or value is None or isinstance(value, dict | list):
      return ""
    return html.escape(str(value), quote=False)

  def _tag_name(self, element: Node) -> str | None:
    opening = element if element.type == "jsx_self_closing_element" else element.child_by_field_name("open_tag")
    if opening is None:
      return None
    name = opening.child_by_field_name("name")
    return self._parsed.text_of(name) if name is not None else None

  def _attributes(self, element: Node) -> list[tuple[str, str | None]]:
    opening = element if element.type == "jsx_self_closing_element" else element.child_by_field_name("open_tag")
    attributes: list[tuple[str, str | None]] = []
    if opening is None:
      return attributes
    for attribute in opening.named_children:
      if attribute.type != "jsx_attribute" or not attribute.named_children:
        continue
      name = self._parsed.text_of(attribute.named_children[0])
      value_node = attribute.named_children[1] if len(attribute.named_children) > 1 else None
      if value_node is None:
        attributes.append((name, None))
        continue
      value = self._literal_attribute(value_node)
      if value is not None:
        attributes.append((name, value))
    return attributes

  def _literal_attribute(self, node: Node) -> str | None:
    if node.type == "string":
      return string_value(self._parsed, node)
    if node.type != "jsx_expression" or not node.named_children:
      return None
    inner = node.named_children[0]
    if inner.type == "string" or (inner.type == "template_string" and not any(child.type == "template_substitution" for child in inner.named_children)):
      return string_value(self._parsed, inner)
    if inner.type == "number":
      return self._parsed.text_of(inner)
    if inner.type == "true":
      return ""
    return None

  def _children(self, element: Node, props: Mapping[str, Any], depth: int) -> str:
    if element.type == "jsx_self_closing_element":
      return ""
    parts: list[str] = []
    for child in element.named_children:
      if child.type in {"jsx_opening_element", "jsx_closing_element"}:
        continue
      if child.type == "jsx_text":
        parts.append(html.escape(_normalize_jsx_text(self._parsed.text_of(child)), quote=False))
      elif child.type == "html_character_reference":
        parts.append(self._parsed.text_of(child))
      elif child.type == "jsx_expression":
        if child.named_children and child.named_children[0].type != "comment":
          parts.append(self.render_expression(child.named_children[0], props, depth))
      else:
        parts.append(self.render_expression(child, props, depth))
    return "".join(parts)

  def render_element(self, element: Node, props: Mapping[str, Any], depth: int) -> str:
    tag = self._tag_name(element)
    children = self._children(element, props, depth)
    if tag is None or tag in {"Fragment", "React.Fragment"}:
      return children
    if tag[:1].isupper() or "." in tag:
      component = self._components.get(tag)
      if component is None:
        # Unknown components render their children only.
        return children
      child_props = {name: value for name, value in self._attributes(element) if value is not None}
      if children:
        child_props["children"] = _Markup(children)
      return self.render_component(component, child_props, depth + 1)

    rendered_attributes = []
    for name, value in self._attributes(element):
      if name in _SKIPPED_ATTRIBUTES or (name.startswith("on") and name[2:3].isupper()):
        continue
      html_name = ATTRIBUTE_ALIASES.get(name, name)
      rendered_attributes.append(f'{html_name}=""' if value is None else f'{html_name}="{html.escape(value, quote=True)}"')
    opening = f"<{tag}{''.join(' ' + item for item in rendered_attributes)}"
    if tag in VOID_ELEMENTS:
      return f"{opening}/>"
    return f"{opening}>{children}</{tag}>"


def _normalize_jsx_text(raw: str) -> str:
  """Apply JSX whitespace rules: trim around line breaks and drop blank lines."""
  lines = raw.split("\n")
  if len(lines) == 1:
    return raw
  cleaned: list[str] = []
  for index, line in enumerate(lines):
    text = line.replace("\t", " ")
    if index != 0:
      text = text.lstrip()
    if index != len(lines) - 1:
      text = text.rstrip()
    if text:
      cleaned.append(text)
  return " ".join(cleaned)


def render_source(source: str, props: Mapping[str, Any] | None = None) -> PreviewResult:
  parsed = parse_tsx(source)
  if parsed.has_error:
    return PreviewResult(success=False, error="Component source could not be parsed")
  try:
    components = _find_components(parsed)
    entry = _default_export(parsed, components)
    markup = _Renderer(parsed, components).render_component(entry, props or {}, depth=0)
  except PreviewError as exc:
    return PreviewResult(success=False, error=str(exc))
  except RecursionError:
    return PreviewResult(success=False, error="Component markup is too deeply nested to render")
  return PreviewResult(success=True, html=markup)


def render_preview(artifact: ComponentArtifact, props: Mapping[str, Any] | None = None) -> PreviewResult:
  """Render the artifact's default export; failures come back as success=False."""
  result = render_source(artifact.source_text, props)
  if not result.success:
    logger.info("Preview failed for %s: %s", artifact.meta.name, result.error)
  return result
