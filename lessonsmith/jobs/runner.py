"""Polling worker process.

Run with `python -m lessonsmith.jobs.runner` (or the `lessonsmith-worker`
script). Each cycle claims at most one queued lesson; concurrent workers are
safe because the claim is a single SKIP LOCKED update.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from lessonsmith.config import Settings, get_settings
from lessonsmith.core.database import dispose_engine
from lessonsmith.core.logging import initialize_logging
from lessonsmith.jobs.worker import GenerationLoop, build_generation_loop
from lessonsmith.storage.factory import _get_components_repo, _get_repo, _get_traces_repo

logger = logging.getLogger(__name__)


def _build_loop(settings: Settings) -> GenerationLoop:
  return build_generation_loop(settings, lessons=_get_repo(settings), traces=_get_traces_repo(settings), components=_get_components_repo(settings))


async def run_worker(settings: Settings, *, once: bool = False) -> None:
  """Process queued lessons until cancelled (or a single cycle with `once`)."""
  loop = _build_loop(settings)
  logger.info("Worker started (pipeline=%s, poll every %.1fs)", settings.pipeline_mode, settings.worker_poll_seconds)
  try:
    while True:
      lesson = None
      try:
        lesson = await loop.process_next()
      except Exception:  # noqa: BLE001
        logger.error("Worker cycle failed", exc_info=True)
      if lesson is not None:
        logger.info("Lesson %s finished with status %s", lesson.id, lesson.status)
      if once:
        return
      # Drain the queue without sleeping while there is work.
      if lesson is None:
        await asyncio.sleep(settings.worker_poll_seconds)
  finally:
    await dispose_engine()


def main(argv: list[str] | None = None) -> None:
  parser = argparse.ArgumentParser(description="Generate queued lessons.")
  parser.add_argument("--once", action="store_true", help="Run a single claim cycle and exit.")
  args = parser.parse_args(argv)

  settings = get_settings()
  initialize_logging(settings, prefix="lessonsmith-worker")
  try:
    asyncio.run(run_worker(settings, once=args.once))
  except KeyboardInterrupt:
    logger.info("Worker stopped.")


if __name__ == "__main__":
  main()
