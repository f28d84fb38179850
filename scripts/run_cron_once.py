"""Run a single OCR cron invocation against the configured database and bucket."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from ocr_cron.config import get_settings
from ocr_cron.core.database import dispose_engine
from ocr_cron.jobs.models import CronOutcome
from ocr_cron.jobs.textract_cron import build_textract_cron


async def _run(*, force: bool) -> CronOutcome:
  settings = get_settings()
  if not settings.pg_dsn:
    raise SystemExit("Error: OCR_CRON_PG_DSN not set in environment.")
  if force:
    settings = replace(settings, force_reprocess=True)
  cron = build_textract_cron(settings)
  try:
    return await cron.run_once()
  finally:
    await dispose_engine()


def main() -> int:
  parser = argparse.ArgumentParser(description=__doc__)
  parser.add_argument("--force", action="store_true", help="Ignore cached Textract results for this run.")
  args = parser.parse_args()
  logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
  outcome = asyncio.run(_run(force=args.force))
  print(f"Outcome: {outcome.value}")
  return 1 if outcome in {CronOutcome.FAILED, CronOutcome.ERRORED} else 0


if __name__ == "__main__":
  sys.exit(main())
