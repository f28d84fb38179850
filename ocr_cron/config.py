"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
  """Typed settings for the OCR cron service."""

  environment: str
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  scheduler_enabled: bool
  interval_seconds: float
  job_kind: str
  force_reprocess: bool
  ocr_timeout_seconds: float
  textract_poll_seconds: float
  stale_after_seconds: float | None
  max_error_chars: int
  bucket_name: str | None
  aws_region: str | None
  aws_access_key_id: str | None
  aws_secret_access_key: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("OCR_CRON_ENV", "development").lower()
  # Toggle SQL echo and debug-level logging.
  debug = _parse_bool(os.getenv("OCR_CRON_DEBUG"))

  log_max_bytes = _parse_positive_int("OCR_CRON_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("OCR_CRON_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("OCR_CRON_LOG_BACKUP_COUNT must be zero or a positive integer.")

  job_kind = (os.getenv("OCR_CRON_JOB_KIND") or "textract").strip()
  if not job_kind:
    raise ValueError("OCR_CRON_JOB_KIND must not be blank.")

  # The stale threshold is opt-in; unset disables startup reaping entirely.
  stale_after_seconds = _parse_optional_float(os.getenv("OCR_CRON_STALE_AFTER_SECONDS"))

  database = get_database_settings()

  return Settings(
    environment=environment,
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    scheduler_enabled=_parse_bool(os.getenv("OCR_CRON_ENABLED"), default=True),
    interval_seconds=_parse_positive_float("OCR_CRON_INTERVAL_SECONDS", "30"),
    job_kind=job_kind,
    force_reprocess=_parse_bool(os.getenv("OCR_CRON_FORCE_REPROCESS")),
    ocr_timeout_seconds=_parse_positive_float("OCR_CRON_OCR_TIMEOUT_SECONDS", "900"),
    textract_poll_seconds=_parse_positive_float("OCR_CRON_TEXTRACT_POLL_SECONDS", "5"),
    stale_after_seconds=stale_after_seconds,
    max_error_chars=_parse_positive_int("OCR_CRON_MAX_ERROR_CHARS", "4000"),
    bucket_name=_optional_str(os.getenv("BUCKET_NAME")),
    aws_region=_optional_str(os.getenv("BUCKET_REGION")),
    aws_access_key_id=_optional_str(os.getenv("BUCKET_KEY")),
    aws_secret_access_key=_optional_str(os.getenv("BUCKET_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring scheduler or AWS configuration."""
  # Keep database configuration isolated so migrations and scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("OCR_CRON_DEBUG"))
  pg_connect_timeout = int(os.getenv("OCR_CRON_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("OCR_CRON_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL, which the web application already sets.
  pg_dsn = _optional_str(os.getenv("OCR_CRON_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_optional_float(raw: str | None) -> float | None:
  if raw is None or raw.strip() == "":
    return None

  value = float(raw)

  if value <= 0:
    raise ValueError("OCR_CRON_STALE_AFTER_SECONDS must be positive when provided.")

  return value
