"""Print the most recent OCR cron ledger rows."""

from __future__ import annotations

import argparse
import asyncio

from ocr_cron.config import get_settings
from ocr_cron.core.database import dispose_engine
from ocr_cron.storage.postgres_ocr_repo import PostgresOcrRepository


async def _inspect(*, cron_type: str, limit: int) -> None:
  repo = PostgresOcrRepository()
  try:
    records = await repo.list_recent(cron_type=cron_type, limit=limit)
  finally:
    await dispose_engine()

  if not records:
    print(f"No {cron_type} cron runs recorded.")
    return

  for record in records:
    state = "running" if record.in_flight else ("flagged" if record.cron_flagged else "ok")
    stopped = record.cron_stopped_at.isoformat() if record.cron_stopped_at else "-"
    print(f"{record.cron_id}  {state:<8} feed={record.cron_feed} started={record.cron_started_at.isoformat()} stopped={stopped}")
    if record.cron_error:
      print(f"    error: {record.cron_error}")


def main() -> None:
  settings = get_settings()
  parser = argparse.ArgumentParser(description=__doc__)
  parser.add_argument("--type", dest="cron_type", default=settings.job_kind)
  parser.add_argument("--limit", type=int, default=20)
  args = parser.parse_args()

  if not settings.pg_dsn:
    print("Error: OCR_CRON_PG_DSN not set in environment.")
    raise SystemExit(1)

  asyncio.run(_inspect(cron_type=args.cron_type, limit=args.limit))


if __name__ == "__main__":
  main()
