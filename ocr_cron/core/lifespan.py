import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ocr_cron.config import Settings
from ocr_cron.core.database import dispose_engine
from ocr_cron.core.logging import _initialize_logging
from ocr_cron.jobs.scheduler import CronScheduler
from ocr_cron.jobs.textract_cron import build_textract_cron

# Track the scheduler for lifecycle management and health reporting.
_SCHEDULER: CronScheduler | None = None


def get_scheduler() -> CronScheduler | None:
  """Return the process-wide scheduler, if one was started."""
  return _SCHEDULER


async def _start_scheduler(active_settings: Settings) -> None:
  """Start the OCR cron loop once per process."""
  global _SCHEDULER
  logger = logging.getLogger("ocr_cron.core.lifespan")

  if _SCHEDULER is not None and _SCHEDULER.running:
    return

  if not active_settings.scheduler_enabled:
    logger.info("OCR cron scheduler disabled (OCR_CRON_ENABLED is off).")
    return

  cron = build_textract_cron(active_settings)
  # Close rows left in flight by a previous process before the first guard check.
  if active_settings.stale_after_seconds is not None:
    try:
      await cron.reap_stale(older_than_seconds=active_settings.stale_after_seconds)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to reap abandoned cron runs: %s", exc, exc_info=True)

  scheduler = CronScheduler(cron, interval_seconds=active_settings.interval_seconds)
  scheduler.start()
  _SCHEDULER = scheduler


async def _stop_scheduler() -> None:
  """Stop the OCR cron loop when the app shuts down."""
  global _SCHEDULER
  scheduler = _SCHEDULER
  _SCHEDULER = None
  if scheduler is None:
    return
  await scheduler.stop()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, start the OCR cron, and tear both down on shutdown."""
  from ocr_cron.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("ocr_cron.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    await _start_scheduler(settings)

  except Exception:
    logger.warning("OCR cron startup failed; scheduler is not running.", exc_info=True)

  yield

  await _stop_scheduler()
  await dispose_engine()
