from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ocr_cron.jobs.models import CronOutcome, OcrResult
from ocr_cron.jobs.scheduler import CronScheduler


def _mock_cron(*outcomes: object) -> MagicMock:
  cron = MagicMock()
  cron.job_kind = "textract"
  cron.run_once = AsyncMock(side_effect=list(outcomes) if outcomes else None, return_value=CronOutcome.SKIPPED_NO_WORK)
  return cron


def test_scheduler_rejects_non_positive_interval():
  with pytest.raises(ValueError, match="interval_seconds"):
    CronScheduler(_mock_cron(), interval_seconds=0)


@pytest.mark.anyio
async def test_tick_survives_unexpected_exceptions():
  cron = _mock_cron(RuntimeError("boom"), CronOutcome.SUCCEEDED)
  scheduler = CronScheduler(cron, interval_seconds=30)

  assert await scheduler.tick() is CronOutcome.ERRORED
  assert scheduler.last_outcome is CronOutcome.ERRORED
  assert await scheduler.tick() is CronOutcome.SUCCEEDED
  assert scheduler.last_outcome is CronOutcome.SUCCEEDED


@pytest.mark.anyio
async def test_start_and_stop_are_idempotent():
  scheduler = CronScheduler(_mock_cron(), interval_seconds=30)
  assert scheduler.running is False

  scheduler.start()
  first_task = scheduler._task
  scheduler.start()
  assert scheduler._task is first_task
  assert scheduler.running is True

  await scheduler.stop()
  assert scheduler.running is False
  await scheduler.stop()


@pytest.mark.anyio
async def test_loop_keeps_ticking_after_a_failed_invocation():
  cron = _mock_cron()
  calls = {"count": 0}

  async def _run_once():
    calls["count"] += 1
    if calls["count"] == 1:
      raise RuntimeError("transient")
    return CronOutcome.SKIPPED_NO_WORK

  cron.run_once = _run_once
  scheduler = CronScheduler(cron, interval_seconds=0.01)

  scheduler.start()
  for _ in range(100):
    if calls["count"] >= 3:
      break
    await asyncio.sleep(0.01)
  await scheduler.stop()

  assert calls["count"] >= 3
  assert scheduler.last_outcome is CronOutcome.SKIPPED_NO_WORK


@pytest.mark.anyio
async def test_slow_invocation_delays_the_next_tick_instead_of_overlapping(memory_repo, ocr_client, make_cron):
  """A run longer than the interval never overlaps with the next tick in the same process."""
  memory_repo.add_document("D1", "s3://bucket/D1.pdf", "folderA")
  memory_repo.add_document("D2", "s3://bucket/D2.pdf", "folderA")
  ocr_client.responses["D1.pdf"] = OcrResult(total_pages_processed=1, textract_result={})
  ocr_client.responses["D2.pdf"] = OcrResult(total_pages_processed=1, textract_result={})
  ocr_client.delay = 0.05
  observed: list[int] = []
  ocr_client.on_call = lambda: observed.append(len(memory_repo.in_flight()))
  scheduler = CronScheduler(make_cron(), interval_seconds=0.01)

  scheduler.start()
  for _ in range(200):
    if memory_repo.documents["D2"].doc_ocr_status:
      break
    await asyncio.sleep(0.01)
  await scheduler.stop()

  assert memory_repo.documents["D1"].doc_ocr_status is True
  assert memory_repo.documents["D2"].doc_ocr_status is True
  assert observed == [1, 1]
