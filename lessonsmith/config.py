"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from lessonsmith.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

PipelineMode = Literal["orchestrator", "legacy"]


@dataclass(frozen=True)
class Settings:
  """Typed settings for the lesson generation service."""

  environment: str
  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  max_generation_attempts: int
  max_repair_attempts: int
  evaluation_threshold: float
  alignment_fail_threshold: float
  alignment_warn_threshold: float
  generated_code_max_bytes: int
  model_name: str
  llm_api_key: str | None
  llm_base_url: str | None
  llm_max_tokens: int
  llm_temperature: float
  pipeline_mode: PipelineMode
  tsc_command: str
  compiler_timeout_seconds: int
  sandbox_root: str
  repair_text_fallback: bool
  enforce_svg_alignment: bool
  backoff_base_ms: int
  backoff_max_ms: int
  worker_poll_seconds: float
  task_secret: str | None
  log_dir: str
  log_max_bytes: int
  log_backup_count: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _parse_ratio(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if not 0.0 <= value <= 1.0:
    raise ValueError(f"{name} must be between 0 and 1.")
  return value


def _resolve_pg_dsn() -> str | None:
  return _optional_str(os.getenv("LESSONSMITH_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LESSONSMITH_ENV", "development").lower()

  # Toggle verbose SQL echo and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("LESSONSMITH_DEBUG"))

  max_generation_attempts = _parse_positive_int("LESSONSMITH_MAX_GENERATION_ATTEMPTS", "5")

  max_repair_attempts = int(os.getenv("LESSONSMITH_MAX_REPAIR_ATTEMPTS", "2"))
  if max_repair_attempts < 0:
    raise ValueError("LESSONSMITH_MAX_REPAIR_ATTEMPTS must be zero or a positive integer.")

  evaluation_threshold = _parse_ratio("LESSONSMITH_EVALUATION_THRESHOLD", "0.5")
  alignment_fail_threshold = _parse_ratio("LESSONSMITH_ALIGNMENT_FAIL_THRESHOLD", "0.4")
  alignment_warn_threshold = _parse_ratio("LESSONSMITH_ALIGNMENT_WARN_THRESHOLD", "0.7")
  if alignment_fail_threshold > alignment_warn_threshold:
    raise ValueError("LESSONSMITH_ALIGNMENT_FAIL_THRESHOLD must not exceed LESSONSMITH_ALIGNMENT_WARN_THRESHOLD.")

  generated_code_max_bytes = _parse_positive_int("LESSONSMITH_GENERATED_CODE_MAX_BYTES", str(200 * 1024))

  model_name = (os.getenv("LESSONSMITH_MODEL_NAME") or os.getenv("MODEL_NAME") or "gpt-4o-mini").strip()
  llm_api_key = _optional_str(os.getenv("LESSONSMITH_LLM_API_KEY")) or _optional_str(os.getenv("OPENAI_API_KEY"))

  # Clamp output budgets so a misconfigured env cannot request unbounded completions.
  llm_max_tokens = min(_parse_positive_int("LESSONSMITH_LLM_MAX_TOKENS", "6000"), 12000)
  llm_temperature = float(os.getenv("LESSONSMITH_LLM_TEMPERATURE", "0.6"))
  if not 0.0 <= llm_temperature <= 2.0:
    raise ValueError("LESSONSMITH_LLM_TEMPERATURE must be between 0 and 2.")

  pipeline_mode = (os.getenv("LESSONSMITH_PIPELINE_MODE") or "orchestrator").strip().lower()
  if pipeline_mode not in {"orchestrator", "legacy"}:
    raise ValueError("LESSONSMITH_PIPELINE_MODE must be 'orchestrator' or 'legacy'.")

  tsc_command = (os.getenv("LESSONSMITH_TSC_COMMAND") or "tsc").strip()
  compiler_timeout_seconds = _parse_positive_int("LESSONSMITH_COMPILER_TIMEOUT_SECONDS", "60")
  sandbox_root = (os.getenv("LESSONSMITH_SANDBOX_ROOT") or tempfile.gettempdir()).strip()

  backoff_base_ms = _parse_positive_int("LESSONSMITH_BACKOFF_BASE_MS", "2000")
  backoff_max_ms = _parse_positive_int("LESSONSMITH_BACKOFF_MAX_MS", "10000")

  worker_poll_seconds = float(os.getenv("LESSONSMITH_WORKER_POLL_SECONDS", "8"))
  if worker_poll_seconds <= 0:
    raise ValueError("LESSONSMITH_WORKER_POLL_SECONDS must be positive.")

  log_max_bytes = _parse_positive_int("LESSONSMITH_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("LESSONSMITH_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("LESSONSMITH_LOG_BACKUP_COUNT must be zero or a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    pg_dsn=_resolve_pg_dsn(),
    pg_connect_timeout=int(os.getenv("LESSONSMITH_PG_CONNECT_TIMEOUT", "5")),
    max_generation_attempts=max_generation_attempts,
    max_repair_attempts=max_repair_attempts,
    evaluation_threshold=evaluation_threshold,
    alignment_fail_threshold=alignment_fail_threshold,
    alignment_warn_threshold=alignment_warn_threshold,
    generated_code_max_bytes=generated_code_max_bytes,
    model_name=model_name,
    llm_api_key=llm_api_key,
    llm_base_url=_optional_str(os.getenv("LESSONSMITH_LLM_BASE_URL")),
    llm_max_tokens=llm_max_tokens,
    llm_temperature=llm_temperature,
    pipeline_mode=pipeline_mode,  # type: ignore[arg-type]
    tsc_command=tsc_command,
    compiler_timeout_seconds=compiler_timeout_seconds,
    sandbox_root=sandbox_root,
    repair_text_fallback=_parse_bool(os.getenv("LESSONSMITH_REPAIR_TEXT_FALLBACK")),
    enforce_svg_alignment=_parse_bool(os.getenv("LESSONSMITH_ENFORCE_SVG_ALIGNMENT", "true")),
    backoff_base_ms=backoff_base_ms,
    backoff_max_ms=backoff_max_ms,
    worker_poll_seconds=worker_poll_seconds,
    task_secret=_optional_str(os.getenv("LESSONSMITH_TASK_SECRET")),
    log_dir=(os.getenv("LESSONSMITH_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database-only settings so offline scripts skip unrelated validation."""

  return DatabaseSettings(debug=_parse_bool(os.getenv("LESSONSMITH_DEBUG")), pg_dsn=_resolve_pg_dsn(), pg_connect_timeout=int(os.getenv("LESSONSMITH_PG_CONNECT_TIMEOUT", "5")))
