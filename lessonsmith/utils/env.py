"""Read `.env` files for local runs of the API, the worker and the scripts."""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from pathlib import Path

ENV_FILE_VARIABLE = "LESSONSMITH_ENV_FILE"

_ASSIGNMENT_RE = re.compile(r"^(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*)$")
_INLINE_COMMENT_RE = re.compile(r"\s+#.*$")


def default_env_path() -> Path:
  """`LESSONSMITH_ENV_FILE` when set, otherwise `.env` beside the package directory."""
  configured = os.getenv(ENV_FILE_VARIABLE)
  if configured and configured.strip():
    return Path(configured.strip()).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  # Unquoted values may carry a trailing `# comment`.
  return _INLINE_COMMENT_RE.sub("", value)


def iter_env_pairs(text: str) -> Iterator[tuple[str, str]]:
  """Yield (key, value) for each assignment line; comments and malformed lines are skipped."""
  for raw_line in text.splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    match = _ASSIGNMENT_RE.match(line)
    if match is None:
      continue
    yield match.group("key"), _unquote(match.group("value").strip())


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Copy the file's assignments into the environment and return the keys that were set.

  Variables already present in the process win unless `override` is true.
  """
  if not path.is_file():
    return []
  applied: list[str] = []
  for key, value in iter_env_pairs(path.read_text(encoding="utf-8")):
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
