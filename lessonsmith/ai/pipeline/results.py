"""Tagged stage outcomes that the orchestrator pattern-matches on."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
  """Diagnostic bucket for a failed stage."""

  AUTHOR = "author"
  SAFETY = "safety"
  COMPILE = "compile"
  PREVIEW = "preview"
  EVALUATE = "evaluate"
  PERSISTENCE = "persistence"
  ITEM_ERROR = "item_error"


@dataclass(frozen=True)
class Ok(Generic[T]):
  value: T


@dataclass(frozen=True)
class Err:
  kind: ErrorKind
  detail: str
  error: Exception | None = None


StageResult = Ok[T] | Err
