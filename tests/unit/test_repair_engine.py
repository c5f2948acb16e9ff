from __future__ import annotations

from lessonsmith.componentkit.repair import REACT_IMPORT, attempt_repair, needs_runtime_import, repair_source, undefined_names

UNDEFINED = ["Component.tsx(2,15): error TS2304: Cannot find name 'missing'."]


def test_undefined_names_are_collected_once_and_skip_react() -> None:
  errors = [*UNDEFINED, "error TS2304: Cannot find name 'React'.", "error TS2304: Cannot find name 'missing'.", "error TS2304: Cannot find name 'other'."]
  assert undefined_names(errors) == ["missing", "other"]


def test_undefined_child_expression_becomes_empty_string() -> None:
  source = "export default function C() {\n  return <div>{missing}</div>;\n}\n"
  outcome = repair_source(source, UNDEFINED)
  assert outcome.tier == "ast"
  assert outcome.source == 'export default function C() {\n  return <div>{""}</div>;\n}\n'
  assert outcome.changes == ['line 2: missing -> ""']


def test_shorthand_property_keeps_its_key() -> None:
  source = "export default function C() {\n  const data = { missing };\n  return <div>{data.missing}</div>;\n}\n"
  outcome = repair_source(source, UNDEFINED)
  assert 'const data = { missing: "" };' in outcome.source
  # Property access is not an undefined-name reference.
  assert "{data.missing}" in outcome.source


def test_declarations_and_jsx_tags_are_not_rewritten() -> None:
  source = "function missing() { return null; }\nexport default function C() { return <missing />; }\n"
  outcome = repair_source(source, UNDEFINED)
  assert not outcome.changed
  assert outcome.source == source


def test_missing_runtime_import_is_prepended() -> None:
  source = "export default function C() { return <div />; }\n"
  errors = ["Component.tsx(1,38): error TS2304: Cannot find name 'div'."]
  assert needs_runtime_import(errors)
  outcome = repair_source(source, errors)
  assert outcome.source.startswith(REACT_IMPORT)
  assert outcome.changes == ["prepended React import"]


def test_repair_is_idempotent() -> None:
  source = "export default function C() {\n  return <section>{missing}<p>{missing}</p></section>;\n}\n"
  errors = [*UNDEFINED, "error TS2875: This JSX tag requires the module path 'react/jsx-runtime' to exist."]
  once = attempt_repair(source, errors)
  twice = attempt_repair(once, errors)
  assert once == twice
  assert once.count(REACT_IMPORT) == 1
  assert "missing" not in once


def test_unparseable_source_is_left_alone_without_text_tier() -> None:
  source = "export default function C( {\n  return <div>{missing}</div>\n"
  outcome = repair_source(source, UNDEFINED)
  assert outcome.source == source
  assert outcome.tier == "none"


def test_text_tier_patches_unparseable_source_when_enabled() -> None:
  source = "export default function C( {\n  return <div>{ missing }</div>\n"
  outcome = repair_source(source, UNDEFINED, allow_text_fallback=True)
  assert outcome.tier == "text"
  assert '<div>{""}</div>' in outcome.source


def test_no_errors_means_no_changes() -> None:
  source = "export default function C() { return null; }\n"
  assert repair_source(source, []).source == source
