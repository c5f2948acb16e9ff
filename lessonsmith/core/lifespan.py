import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from lessonsmith.core.database import dispose_engine
from lessonsmith.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging after uvicorn starts and release pooled connections on shutdown."""
  from lessonsmith.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("lessonsmith.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    logger.info("Environment=%s pipeline=%s LESSONSMITH_PG_DSN=%s", settings.environment, settings.pipeline_mode, _redact_dsn(settings.pg_dsn))
  except Exception:  # noqa: BLE001
    # Stream logging still works when the log directory is not writable.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  yield

  await dispose_engine()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
