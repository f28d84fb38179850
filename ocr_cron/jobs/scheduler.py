"""Fixed-cadence loop that drives the OCR cron inside the host process."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ocr_cron.jobs.models import CronOutcome
from ocr_cron.jobs.textract_cron import TextractCron

logger = logging.getLogger(__name__)


def _log_task_exit(task: asyncio.Task[None]) -> None:
  """Log unexpected exits of the scheduler task."""
  if task.cancelled():
    return
  exc = task.exception()
  if exc is not None:
    logger.error("OCR cron scheduler stopped unexpectedly: %s", exc, exc_info=exc)


class CronScheduler:
  """Invoke `TextractCron.run_once` every `interval_seconds` until stopped."""

  def __init__(self, cron: TextractCron, *, interval_seconds: float = 30.0) -> None:
    if interval_seconds <= 0:
      raise ValueError("interval_seconds must be positive")
    self._cron = cron
    self._interval_seconds = interval_seconds
    self._task: asyncio.Task[None] | None = None
    self._last_outcome: CronOutcome | None = None

  @property
  def running(self) -> bool:
    return self._task is not None and not self._task.done()

  @property
  def last_outcome(self) -> CronOutcome | None:
    return self._last_outcome

  def start(self) -> None:
    """Schedule the loop on the running event loop; a second call is a no-op."""
    if self.running:
      return
    loop = asyncio.get_running_loop()
    self._task = loop.create_task(self._run_forever(), name=f"ocr-cron-{self._cron.job_kind}")
    self._task.add_done_callback(_log_task_exit)
    logger.info("OCR cron scheduler started (kind=%s, every %ss).", self._cron.job_kind, self._interval_seconds)

  async def stop(self) -> None:
    """Cancel the loop and wait for the current tick to unwind."""
    task = self._task
    self._task = None
    if task is None:
      return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
      await task
    logger.info("OCR cron scheduler stopped.")

  async def tick(self) -> CronOutcome | None:
    """Run one invocation, keeping the loop alive whatever it raises."""
    try:
      self._last_outcome = await self._cron.run_once()
    except Exception as exc:  # noqa: BLE001
      logger.error("OCR cron tick failed: %s", exc, exc_info=True)
      self._last_outcome = CronOutcome.ERRORED
    return self._last_outcome

  async def _run_forever(self) -> None:
    loop = asyncio.get_running_loop()
    while True:
      started = loop.time()
      await self.tick()
      # Sleep only the remainder so ticks stay on a fixed cadence.
      elapsed = loop.time() - started
      await asyncio.sleep(max(self._interval_seconds - elapsed, 0.0))
