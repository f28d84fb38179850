"""Shared fixtures: in-memory repository, scripted OCR client and settings."""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass, replace
from typing import Any

import pytest

from ocr_cron.config import Settings
from ocr_cron.core.exceptions import CronAlreadyClosedError, DocumentMissingError
from ocr_cron.jobs.models import CronRecord, DocumentRef, OcrResult
from ocr_cron.jobs.textract_cron import TextractCron


@pytest.fixture
def anyio_backend():
  return "asyncio"


@dataclass
class StoredDocument:
  doc_number: str
  doc_pdf_link: str | None
  doc_folder: str
  doc_site: str | None = None
  doc_ocr_status: bool = False
  doc_ocr_pages: int | None = None
  doc_ocr_content: dict | None = None


class InMemoryOcrRepo:
  """In-memory OCR repository mirroring the Postgres repository's contract."""

  def __init__(self) -> None:
    # Insertion order stands in for doc_created_at.
    self.documents: dict[str, StoredDocument] = {}
    self.stats: dict[str, dict[str, Any]] = {}
    self.crons: dict[str, CronRecord] = {}
    self.writes = 0

  def add_document(self, doc_number: str, doc_pdf_link: str | None, doc_folder: str, doc_site: str | None = None) -> StoredDocument:
    document = StoredDocument(doc_number=doc_number, doc_pdf_link=doc_pdf_link, doc_folder=doc_folder, doc_site=doc_site)
    self.documents[doc_number] = document
    return document

  def in_flight(self, cron_type: str = "textract") -> list[CronRecord]:
    return [record for record in self.crons.values() if record.cron_type == cron_type and not record.cron_status]

  async def find_running(self, cron_type: str) -> CronRecord | None:
    running = self.in_flight(cron_type)
    return running[0] if running else None

  async def select_next_document(self) -> DocumentRef | None:
    for document in self.documents.values():
      if not document.doc_ocr_status and document.doc_pdf_link is not None:
        return DocumentRef(doc_number=document.doc_number, doc_pdf_link=document.doc_pdf_link)
    return None

  async def open_cron(self, record: CronRecord) -> bool:
    # Same rule as the single-flight partial unique index.
    if self.in_flight(record.cron_type):
      return False
    self.crons[record.cron_id] = replace(record)
    self.writes += 1
    return True

  async def complete_document(self, *, cron_id: str, doc_number: str, result: OcrResult, stopped_at: datetime.datetime) -> None:
    document = self.documents.get(doc_number)
    if document is None or document.doc_ocr_status:
      raise DocumentMissingError(f"Document {doc_number} was already processed")
    record = self.crons.get(cron_id)
    if record is None or record.cron_status:
      raise CronAlreadyClosedError(f"Cron {cron_id} is no longer in flight")

    # Validate everything before mutating so the three writes land together.
    document.doc_ocr_status = True
    document.doc_ocr_pages = result.total_pages_processed
    document.doc_ocr_content = result.textract_result
    stats = self.stats.setdefault(document.doc_folder, {"doc_site": document.doc_site, "doc_total_pages": 0, "doc_total_doc": 0})
    stats["doc_total_pages"] += result.total_pages_processed
    stats["doc_total_doc"] += 1
    record.cron_stopped_at = stopped_at
    record.cron_status = True
    record.cron_flagged = False
    self.writes += 3

  async def fail_cron(self, *, cron_id: str, error: str, stopped_at: datetime.datetime) -> bool:
    record = self.crons.get(cron_id)
    if record is None or record.cron_status:
      return False
    record.cron_stopped_at = stopped_at
    record.cron_status = True
    record.cron_flagged = True
    record.cron_error = error
    self.writes += 1
    return True

  async def reap_stale(self, *, cron_type: str, started_before: datetime.datetime, stopped_at: datetime.datetime, error: str) -> int:
    reaped = 0
    for record in self.in_flight(cron_type):
      if record.cron_started_at < started_before:
        record.cron_stopped_at = stopped_at
        record.cron_status = True
        record.cron_flagged = True
        record.cron_error = error
        reaped += 1
    self.writes += reaped
    return reaped

  async def list_recent(self, *, cron_type: str, limit: int = 20) -> list[CronRecord]:
    records = [record for record in self.crons.values() if record.cron_type == cron_type]
    return sorted(records, key=lambda record: record.cron_started_at, reverse=True)[:limit]


class ScriptedOcrClient:
  """OCR client returning canned results (or raising canned errors) per object path."""

  def __init__(self, responses: dict[str, OcrResult | BaseException] | None = None, *, delay: float = 0.0) -> None:
    self.responses = responses or {}
    self.delay = delay
    self.calls: list[tuple[str, str, bool]] = []
    self.on_call = None

  async def extract(self, bucket: str, path: str, force: bool = False) -> OcrResult:
    self.calls.append((bucket, path, force))
    if self.on_call is not None:
      self.on_call()
    if self.delay:
      await asyncio.sleep(self.delay)
    response = self.responses.get(path)
    if response is None:
      raise AssertionError(f"Unexpected OCR call for {path}")
    if isinstance(response, BaseException):
      raise response
    return response


class FixedClock:
  """Deterministic clock advancing one second per reading."""

  def __init__(self, start: datetime.datetime | None = None) -> None:
    self.now = start or datetime.datetime(2026, 10, 19, 9, 0, tzinfo=datetime.UTC)

  def __call__(self) -> datetime.datetime:
    current = self.now
    self.now = self.now + datetime.timedelta(seconds=1)
    return current


@pytest.fixture
def memory_repo() -> InMemoryOcrRepo:
  return InMemoryOcrRepo()


@pytest.fixture
def ocr_client() -> ScriptedOcrClient:
  return ScriptedOcrClient()


@pytest.fixture
def clock() -> FixedClock:
  return FixedClock()


@pytest.fixture
def make_cron(memory_repo: InMemoryOcrRepo, ocr_client: ScriptedOcrClient, clock: FixedClock):
  """Build a TextractCron over the in-memory repository with sequential cron ids."""
  counter = {"value": 0}

  def _next_id() -> str:
    counter["value"] += 1
    return f"cron-{counter['value']}"

  def _make(*, repo: Any = None, **overrides: Any) -> TextractCron:
    kwargs: dict[str, Any] = {"bucket_name": "bucket", "clock": clock, "id_factory": _next_id, **overrides}
    return TextractCron(repo or memory_repo, ocr_client, **kwargs)

  return _make


@pytest.fixture
def settings() -> Settings:
  return Settings(
    environment="test",
    debug=False,
    log_max_bytes=1024 * 1024,
    log_backup_count=1,
    pg_dsn=None,
    pg_connect_timeout=5,
    scheduler_enabled=True,
    interval_seconds=30.0,
    job_kind="textract",
    force_reprocess=False,
    ocr_timeout_seconds=900.0,
    textract_poll_seconds=0.001,
    stale_after_seconds=None,
    max_error_chars=4000,
    bucket_name="bucket",
    aws_region="us-east-1",
    aws_access_key_id=None,
    aws_secret_access_key=None,
  )
