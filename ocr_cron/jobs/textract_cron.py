"""Single-flight OCR job: claim one backlog document per invocation and record the outcome."""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections.abc import Callable

from ocr_cron.config import Settings
from ocr_cron.core.exceptions import InvalidLocatorError, OcrTimeoutError, format_cron_error
from ocr_cron.jobs.models import CronOutcome, CronRecord, DocumentRef, OcrResult
from ocr_cron.services.ocr_interface import OcrClient
from ocr_cron.storage.ocr_repo import OcrRepository
from ocr_cron.utils.locators import parse_content_locator

logger = logging.getLogger(__name__)

DEFAULT_JOB_KIND = "textract"


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def _new_cron_id() -> str:
  return str(uuid.uuid4())


class TextractCron:
  """Run the OCR pipeline for at most one document per call to `run_once`.

  The ledger row is the lock: a run proceeds only when no row of the same
  `job_kind` is in flight, and the claim insert is rejected by the database if
  a concurrent run inserted first. Every claimed run ends with the row closed,
  either clean (results stored in the same transaction) or flagged with the
  error text, in which case the document stays eligible for the next tick.
  """

  def __init__(
    self,
    repo: OcrRepository,
    ocr_client: OcrClient,
    *,
    job_kind: str = DEFAULT_JOB_KIND,
    bucket_name: str | None = None,
    force_reprocess: bool = False,
    ocr_timeout_seconds: float | None = 900.0,
    max_error_chars: int = 4000,
    clock: Callable[[], datetime.datetime] = _utc_now,
    id_factory: Callable[[], str] = _new_cron_id,
  ) -> None:
    self._repo = repo
    self._ocr_client = ocr_client
    self._job_kind = job_kind
    self._bucket_name = bucket_name
    self._force_reprocess = force_reprocess
    self._ocr_timeout_seconds = ocr_timeout_seconds
    self._max_error_chars = max_error_chars
    self._clock = clock
    self._id_factory = id_factory
    # Failure records whose close write failed, retried before the next guard check.
    self._unrecorded_failures: dict[str, str] = {}

  @property
  def job_kind(self) -> str:
    return self._job_kind

  async def run_once(self) -> CronOutcome:
    """Process one backlog document; never raises except on cancellation."""
    try:
      await self._retry_unrecorded_failures()
      running = await self._repo.find_running(self._job_kind)
      if running is not None:
        logger.info("Previous %s cron %s is still running; skipping.", self._job_kind, running.cron_id)
        return CronOutcome.SKIPPED_RUNNING

      document = await self._repo.select_next_document()
      if document is None:
        logger.debug("No documents awaiting %s OCR.", self._job_kind)
        return CronOutcome.SKIPPED_NO_WORK

      record = CronRecord(cron_id=self._id_factory(), cron_feed=document.doc_number, cron_type=self._job_kind, cron_started_at=self._clock())
      claimed = await self._repo.open_cron(record)
    except Exception:  # noqa: BLE001
      # Nothing was committed to the ledger yet, so the log is the only trace.
      logger.error("%s cron failed before claiming a document.", self._job_kind, exc_info=True)
      return CronOutcome.ERRORED

    if not claimed:
      return CronOutcome.SKIPPED_RUNNING

    logger.info("Cron %s claimed document %s.", record.cron_id, document.doc_number)
    try:
      result = await self._extract(document)
      await self._repo.complete_document(cron_id=record.cron_id, doc_number=document.doc_number, result=result, stopped_at=self._clock())
    except asyncio.CancelledError:
      await asyncio.shield(self._record_failure(record.cron_id, "Cancelled: OCR cron stopped before the document was stored"))
      raise
    except Exception as exc:  # noqa: BLE001
      logger.error("CRON JOB ERROR cron_id=%s document=%s", record.cron_id, document.doc_number, exc_info=True)
      await self._record_failure(record.cron_id, format_cron_error(exc, max_chars=self._max_error_chars))
      return CronOutcome.FAILED

    logger.info("Content updated for document %s (%d pages).", document.doc_number, result.total_pages_processed)
    return CronOutcome.SUCCEEDED

  async def reap_stale(self, *, older_than_seconds: float) -> int:
    """Close in-flight rows older than the threshold, left behind by a process that died mid-run."""
    now = self._clock()
    cutoff = now - datetime.timedelta(seconds=older_than_seconds)
    error = f"Abandoned: no completion recorded within {older_than_seconds:g}s"
    reaped = await self._repo.reap_stale(cron_type=self._job_kind, started_before=cutoff, stopped_at=now, error=error)
    if reaped:
      logger.warning("Closed %d abandoned %s cron run(s) started before %s.", reaped, self._job_kind, cutoff.isoformat())
    return reaped

  async def _extract(self, document: DocumentRef) -> OcrResult:
    location = parse_content_locator(document.doc_pdf_link)
    bucket = self._bucket_name or location.bucket
    if not bucket:
      raise InvalidLocatorError(f"No bucket configured or present in locator for document {document.doc_number}")

    call = self._ocr_client.extract(bucket, location.path, self._force_reprocess)
    if self._ocr_timeout_seconds is None:
      return await call
    try:
      return await asyncio.wait_for(call, timeout=self._ocr_timeout_seconds)
    except TimeoutError as exc:
      raise OcrTimeoutError(f"OCR for s3://{bucket}/{location.path} exceeded {self._ocr_timeout_seconds:g}s") from exc

  async def _retry_unrecorded_failures(self) -> None:
    for cron_id, error in list(self._unrecorded_failures.items()):
      closed = await self._repo.fail_cron(cron_id=cron_id, error=error, stopped_at=self._clock())
      del self._unrecorded_failures[cron_id]
      if closed:
        logger.info("Recorded deferred failure for cron %s.", cron_id)
      else:
        logger.warning("Cron %s was already closed; deferred failure dropped.", cron_id)

  async def _record_failure(self, cron_id: str, error: str) -> None:
    try:
      closed = await self._repo.fail_cron(cron_id=cron_id, error=error, stopped_at=self._clock())
    except Exception:  # noqa: BLE001
      logger.error("Failed to record failure for cron %s; retrying on the next tick.", cron_id, exc_info=True)
      self._unrecorded_failures[cron_id] = error
      return
    if not closed:
      logger.warning("Cron %s was already closed; failure not recorded.", cron_id)


def build_textract_cron(settings: Settings, *, repo: OcrRepository | None = None, ocr_client: OcrClient | None = None) -> TextractCron:
  """Wire the cron against Postgres and Textract using the configured settings."""
  if repo is None:
    from ocr_cron.storage.postgres_ocr_repo import PostgresOcrRepository

    repo = PostgresOcrRepository()
  if ocr_client is None:
    from ocr_cron.services.textract_client import TextractClient

    ocr_client = TextractClient(settings)
  return TextractCron(
    repo,
    ocr_client,
    job_kind=settings.job_kind,
    bucket_name=settings.bucket_name,
    force_reprocess=settings.force_reprocess,
    ocr_timeout_seconds=settings.ocr_timeout_seconds,
    max_error_chars=settings.max_error_chars,
  )
