"""Unit tests for lesson request validation rules."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from lessonsmith.api.models import MAX_OUTLINE_CHARS, CreateLessonRequest, LessonResponse
from lessonsmith.jobs.models import LessonContentRecord, LessonRecord


def _valid_payload() -> dict[str, object]:
  """Build a valid lesson request payload used by model tests."""
  return {"title": "How are soaps made?", "outline": "Describe the saponification process step by step"}


def test_create_lesson_request_strips_whitespace() -> None:
  payload = _valid_payload()
  payload["title"] = "  How are soaps made?\n"
  request = CreateLessonRequest.model_validate(payload)
  assert request.title == "How are soaps made?"
  assert request.outline == "Describe the saponification process step by step"


@pytest.mark.parametrize(
  ("mutator", "expected_message"),
  [
    (lambda payload: payload.update(title="x" * 201), "at most 200 characters"),
    (lambda payload: payload.update(outline="x" * (MAX_OUTLINE_CHARS + 1)), "at most 20000 characters"),
    (lambda payload: payload.update(outline=" \t "), "must not be blank"),
    (lambda payload: payload.update(title=["list"]), "valid string"),
    (lambda payload: payload.update(depth="deep"), "Extra inputs are not permitted"),
    (lambda payload: payload.pop("outline"), "Field required"),
  ],
)
def test_create_lesson_request_rejects_invalid_fields(mutator, expected_message: str) -> None:
  """Reject oversized, blank, mistyped, unknown and missing fields."""
  payload = _valid_payload()
  mutator(payload)
  with pytest.raises(ValidationError) as excinfo:
    CreateLessonRequest.model_validate(payload)
  assert expected_message in str(excinfo.value)


def test_lesson_response_serializes_camel_case() -> None:
  record = LessonRecord(id="lesson-1", title="Soap", outline="Saponification", status="generated", created_at="2024-01-01T00:00:00Z", updated_at="2024-01-01T00:01:00Z")
  content = LessonContentRecord(lesson_id="lesson-1", typescript_source="src", compiled_js=None, version=2)
  dumped = LessonResponse.from_record(record, content).model_dump(by_alias=True)
  assert dumped["updatedAt"] == "2024-01-01T00:01:00Z"
  assert dumped["content"]["typescriptSource"] == "src"
  assert dumped["content"]["version"] == 2
