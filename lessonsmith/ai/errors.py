"""Error taxonomy and classification helpers for the generation pipeline."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
  from lessonsmith.ai.pipeline.contracts import ContentValidationResult, SafetyIssue, SvgAlignmentResult


class GenerationError(RuntimeError):
  """Base class for failures raised while generating a lesson."""


class PlanValidationError(GenerationError):
  """Planner output could not be parsed into a valid component plan."""

  def __init__(self, message: str, *, raw_response: str, errors: Sequence[Any] | None = None) -> None:
    super().__init__(message)
    self.raw_response = raw_response
    self.errors = list(errors or [])


class AuthorExtractionError(GenerationError):
  """Author response did not contain usable component source."""

  def __init__(self, message: str, *, raw_response: str) -> None:
    super().__init__(message)
    self.raw_response = raw_response
    self.reason = message


class SafetyViolation(GenerationError):
  """Source contains constructs the safety scanner rejects."""

  def __init__(self, issues: Sequence[SafetyIssue]) -> None:
    self.issues = list(issues)
    rules = ", ".join(issue.rule for issue in self.issues) or "unknown"
    super().__init__(f"Safety scan failed: {rules}")


class CompilationError(GenerationError):
  """Compiler diagnostics remained after the repair budget was spent."""

  def __init__(self, errors: Sequence[str]) -> None:
    self.errors = list(errors)
    preview = "; ".join(self.errors[:3]) or "unknown compiler failure"
    super().__init__(f"Compilation failed: {preview}")


class EvaluationBelowThreshold(GenerationError):
  """Rendered markup scored below the quality bar."""

  def __init__(self, score: float, threshold: float, reasons: Sequence[str] = ()) -> None:
    self.score = score
    self.threshold = threshold
    self.reasons = list(reasons)
    super().__init__(f"Evaluation score {score:.2f} below threshold {threshold:.2f}")


class ContentQualityFailure(GenerationError):
  """Lesson content did not pass the structural and alignment checks."""

  def __init__(self, result: ContentValidationResult) -> None:
    self.result = result
    issues = "; ".join(result.issues) or "score below threshold"
    super().__init__(f"Content validation failed (score {result.score:.2f}): {issues}")


class SvgAlignmentFailure(GenerationError):
  """The module compiled but its inline diagram failed the alignment check."""

  def __init__(self, result: SvgAlignmentResult) -> None:
    self.result = result
    super().__init__(f"SVG alignment validation failed (score {result.score:.2f}): {'; '.join(result.issues)}")


class PersistenceError(GenerationError):
  """A store write failed; fatal only for the final artifact write."""


class PipelineFailure(GenerationError):
  """Every planned item failed; carries the aggregated diagnostics."""

  def __init__(self, message: str, *, diagnostics: Mapping[str, list[str]]) -> None:
    super().__init__(message)
    self.diagnostics = {key: list(values) for key, values in diagnostics.items()}


class LlmError(RuntimeError):
  """Base class for errors raised by the LLM collaborator."""


class RateLimitError(LlmError):
  """The provider rejected the call because of rate limiting or quota."""


class EmptyResponseError(LlmError):
  """The provider returned no content."""


_RATE_LIMIT_HINTS: tuple[str, ...] = ("rate limit", "rate_limit", "too many requests", "429", "quota", "resource exhausted")

_OUTPUT_HINTS: tuple[str, ...] = ("invalid json", "failed to parse", "parse json", "schema", "validation")


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  return any(hint in message for hint in hints)


def is_rate_limit_error(exc: BaseException) -> bool:
  """Return True when an exception indicates provider throttling."""
  if isinstance(exc, RateLimitError):
    return True
  status_code = getattr(exc, "status_code", None)
  if status_code == 429:
    return True
  return _match_hint(str(exc).lower(), _RATE_LIMIT_HINTS)


def is_output_error(exc: BaseException) -> bool:
  """Return True when an exception indicates invalid output formatting."""
  if isinstance(exc, PlanValidationError | AuthorExtractionError):
    return True
  return _match_hint(str(exc).lower(), _OUTPUT_HINTS)
