"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from lessonsmith.core.exceptions import _coerce_json_safe, _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "title"), "msg": "Value error, title must not be blank", "input": "   ", "ctx": {"error": ValueError("title must not be blank"), "input": "   "}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "title"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: title must not be blank"
  assert "input" not in sanitized[0]["ctx"]


def test_coerce_json_safe_names_bare_exceptions() -> None:
  assert _coerce_json_safe(RuntimeError()) == "RuntimeError"
  assert _coerce_json_safe({1: {"a", }}) == {"1": ["a"]}


def test_error_payload_includes_request_id_only_when_known() -> None:
  assert _error_payload("Not found") == {"detail": "Not found"}
  assert _error_payload("Not found", request_id="abc") == {"detail": "Not found", "requestId": "abc"}
