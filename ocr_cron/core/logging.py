import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from ocr_cron.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
LOG_DIR = Path(__file__).resolve().parents[2] / "logs"

# AWS SDK and pool loggers that drown the cron's own lines at DEBUG.
_QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

_LOG_FILE_PATH: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Console formatter that keeps the exception header and the innermost frames only."""

  def __init__(self, *args: object, tail: int = 5, **kwargs: object) -> None:
    super().__init__(*args, **kwargs)
    self._tail = tail

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) <= self._tail + 1:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-self._tail :]])


def _rotated_name(default_name: str) -> str:
  """Name rotated backups `ocr_cron_x.log-1` rather than `ocr_cron_x.log.1`."""
  base_filename, _, num = default_name.rpartition(".")
  if base_filename and num.isdigit():
    return f"{base_filename}-{num}"
  return default_name


def _build_handlers(settings: Settings, log_dir: Path | None = None) -> tuple[logging.Handler, logging.Handler, Path]:
  """Return the console handler, the rotating file handler and the file they write to."""
  target_dir = log_dir or LOG_DIR
  log_path = target_dir / f"ocr_cron_{time.strftime('%Y%m%d_%H%M%S')}.log"
  try:
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot create OCR cron log file at {log_path}: {exc}") from exc

  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  file_handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  file_handler.namer = _rotated_name
  # Full tracebacks go to the file; the console gets the truncated form.
  file_handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return console, file_handler, log_path


def setup_logging(settings: Settings, log_dir: Path | None = None) -> Path:
  """Route the root logger and the server loggers through the same two handlers."""
  console, file_handler, log_path = _build_handlers(settings, log_dir)
  level = logging.DEBUG if settings.debug else logging.INFO
  logging.basicConfig(level=level, handlers=[console, file_handler], force=True)

  for name in _SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = [console, file_handler]
    server_logger.propagate = False
  for name in _QUIET_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)
  return log_path


def _initialize_logging(settings: Settings) -> None:
  """Configure logging once per process and record the effective cron settings."""
  global _LOG_FILE_PATH
  if _LOG_FILE_PATH is not None:
    return
  _LOG_FILE_PATH = setup_logging(settings)
  logger = logging.getLogger("ocr_cron.core.logging")
  logger.info("Logging initialized. Writing to %s", _LOG_FILE_PATH)
  logger.info(
    "OCR cron env=%s kind=%s interval=%ss enabled=%s force=%s bucket=%s",
    settings.environment,
    settings.job_kind,
    settings.interval_seconds,
    settings.scheduler_enabled,
    settings.force_reprocess,
    settings.bucket_name or "<from locator>",
  )
