from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ocr_cron.core import lifespan as lifespan_module
from ocr_cron.jobs.models import CronOutcome
from ocr_cron.main import app


def _mock_cron() -> MagicMock:
  cron = MagicMock()
  cron.job_kind = "textract"
  cron.run_once = AsyncMock(return_value=CronOutcome.SKIPPED_NO_WORK)
  cron.reap_stale = AsyncMock(return_value=0)
  return cron


async def _get_health() -> dict:
  transport = httpx.ASGITransport(app=app)
  async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
    response = await client.get("/health")
  assert response.status_code == 200
  return response.json()


@pytest.mark.anyio
async def test_health_reports_stopped_scheduler():
  assert await _get_health() == {"status": "ok", "scheduler": "stopped", "last_outcome": None}


@pytest.mark.anyio
async def test_disabled_scheduler_is_never_built(settings):
  with patch("ocr_cron.core.lifespan.build_textract_cron") as build:
    await lifespan_module._start_scheduler(replace(settings, scheduler_enabled=False))

  build.assert_not_called()
  assert lifespan_module.get_scheduler() is None


@pytest.mark.anyio
async def test_scheduler_lifecycle_is_reported_by_health(settings):
  cron = _mock_cron()
  with patch("ocr_cron.core.lifespan.build_textract_cron", return_value=cron):
    await lifespan_module._start_scheduler(replace(settings, stale_after_seconds=3600.0))
    try:
      cron.reap_stale.assert_awaited_once_with(older_than_seconds=3600.0)
      scheduler = lifespan_module.get_scheduler()
      assert scheduler is not None
      assert scheduler.running is True
      # A second start while running reuses the same scheduler.
      await lifespan_module._start_scheduler(settings)
      assert lifespan_module.get_scheduler() is scheduler
      assert (await _get_health())["scheduler"] == "running"
    finally:
      await lifespan_module._stop_scheduler()

  assert lifespan_module.get_scheduler() is None
  assert (await _get_health())["scheduler"] == "stopped"


@pytest.mark.anyio
async def test_reap_failure_does_not_block_startup(settings):
  cron = _mock_cron()
  cron.reap_stale.side_effect = ConnectionError("database unreachable")
  with patch("ocr_cron.core.lifespan.build_textract_cron", return_value=cron):
    await lifespan_module._start_scheduler(replace(settings, stale_after_seconds=60.0))
    try:
      assert lifespan_module.get_scheduler() is not None
    finally:
      await lifespan_module._stop_scheduler()
