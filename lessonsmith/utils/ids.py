"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import uuid


def generate_lesson_id() -> str:
  """Return a new lesson identifier."""
  return str(uuid.uuid4())


def generate_correlation_id() -> str:
  """Return a new correlation identifier for one generation run."""
  return str(uuid.uuid4())


def generate_session_id(size: int = 12) -> str:
  """Return a short non-sequential id that tags one worker session in logs."""
  alphabet = string.ascii_lowercase + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))
