"""Domain models for the scheduled OCR job."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any


class CronOutcome(str, Enum):
  """Result of one scheduler invocation."""

  SUCCEEDED = "succeeded"
  FAILED = "failed"
  SKIPPED_RUNNING = "skipped_running"
  SKIPPED_NO_WORK = "skipped_no_work"
  ERRORED = "errored"


@dataclass
class CronRecord:
  """Represents one row of the cron ledger."""

  cron_id: str
  cron_feed: str
  cron_type: str
  cron_started_at: datetime.datetime
  cron_stopped_at: datetime.datetime | None = None
  cron_status: bool = False
  cron_flagged: bool = False
  cron_error: str | None = None

  @property
  def in_flight(self) -> bool:
    return not self.cron_status


@dataclass(frozen=True)
class DocumentRef:
  """A backlog document eligible for OCR."""

  doc_number: str
  doc_pdf_link: str


@dataclass(frozen=True)
class OcrResult:
  """Output of the OCR boundary."""

  total_pages_processed: int
  textract_result: dict[str, Any]

  def __post_init__(self) -> None:
    if self.total_pages_processed < 0:
      raise ValueError("total_pages_processed must be >= 0")
