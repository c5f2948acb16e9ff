"""Retry logic with exponential backoff for throttled provider calls."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from lessonsmith.ai.errors import RateLimitError, is_rate_limit_error

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay_seconds(retry: int, *, base_seconds: float, jitter_seconds: float) -> float:
  """Return the wait before retry number `retry` (1-based)."""
  return base_seconds * (3 ** (retry - 1)) + random.uniform(0, jitter_seconds)


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args: Any, attempts: int = 3, base_seconds: float = 5.0, jitter_seconds: float = 1.5, sleep: Sleep = asyncio.sleep, **kwargs: Any) -> T:
  """
  Execute an async callable up to `attempts` times, retrying only on rate limits.

  Delays grow as base, 3x base, 9x base plus jitter. Any other error is raised immediately.
  """
  attempt = 1
  while True:
    try:
      return await func(*args, **kwargs)
    except Exception as exc:
      if not is_rate_limit_error(exc):
        raise
      if attempt >= attempts:
        if isinstance(exc, RateLimitError):
          raise
        raise RateLimitError(str(exc)) from exc
      delay = backoff_delay_seconds(attempt, base_seconds=base_seconds, jitter_seconds=jitter_seconds)
      logger.warning("Rate limited (attempt %d/%d): %s. Retrying in %.1fs", attempt, attempts, exc, delay)
      await sleep(delay)
      attempt += 1
