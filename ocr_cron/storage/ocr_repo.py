"""Storage interface for the cron ledger, the document backlog and folder stats."""

from __future__ import annotations

import datetime
from typing import Protocol

from ocr_cron.jobs.models import CronRecord, DocumentRef, OcrResult


class OcrRepository(Protocol):
  """Repository contract for the OCR cron's persisted state."""

  async def find_running(self, cron_type: str) -> CronRecord | None:
    """Return an in-flight ledger row for the cron type, if any."""

  async def select_next_document(self) -> DocumentRef | None:
    """Return the oldest unprocessed document that has a content locator."""

  async def open_cron(self, record: CronRecord) -> bool:
    """Insert an in-flight ledger row; False when another row of the same type is already in flight."""

  async def complete_document(self, *, cron_id: str, doc_number: str, result: OcrResult, stopped_at: datetime.datetime) -> None:
    """Store OCR results, accumulate folder stats and close the ledger row in one transaction."""

  async def fail_cron(self, *, cron_id: str, error: str, stopped_at: datetime.datetime) -> bool:
    """Close an in-flight ledger row as flagged; False when it was already closed."""

  async def reap_stale(self, *, cron_type: str, started_before: datetime.datetime, stopped_at: datetime.datetime, error: str) -> int:
    """Close in-flight rows started before the cutoff as flagged and return how many were closed."""

  async def list_recent(self, *, cron_type: str, limit: int = 20) -> list[CronRecord]:
    """Return the newest ledger rows for the cron type."""
