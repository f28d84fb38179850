"""Postgres-backed repository for the OCR cron using SQLAlchemy."""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import Select, Update, false, select, update
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ocr_cron.core.database import get_session_factory
from ocr_cron.core.exceptions import CronAlreadyClosedError, DocumentMissingError
from ocr_cron.jobs.models import CronRecord, DocumentRef, OcrResult
from ocr_cron.schema.ocr import Cron, DocStats, Document
from ocr_cron.storage.ocr_repo import OcrRepository

logger = logging.getLogger(__name__)


def running_cron_query(cron_type: str) -> Select:
  """Select the in-flight ledger row for a cron type."""
  return select(Cron).where(Cron.cron_type == cron_type, Cron.cron_status == false()).order_by(Cron.cron_started_at.asc()).limit(1)


def next_document_query() -> Select:
  """Select the oldest eligible document, ties broken by document number."""
  return select(Document.doc_number, Document.doc_pdf_link).where(Document.doc_ocr_status == false(), Document.doc_pdf_link.is_not(None)).order_by(Document.doc_created_at.asc(), Document.doc_number.asc()).limit(1)


def doc_stats_upsert(*, doc_folder: str, doc_site: str | None, pages: int) -> Insert:
  """Insert a folder's first contribution or accumulate onto the existing row."""
  stmt = insert(DocStats).values(doc_folder=doc_folder, doc_site=doc_site, doc_total_pages=pages, doc_total_doc=1)
  return stmt.on_conflict_do_update(index_elements=[DocStats.doc_folder], set_={"doc_total_pages": DocStats.doc_total_pages + stmt.excluded.doc_total_pages, "doc_total_doc": DocStats.doc_total_doc + 1})


def mark_document_processed(*, doc_number: str, result: OcrResult) -> Update:
  """Flip the document to processed and store its OCR output, only if still unprocessed."""
  return update(Document).where(Document.doc_number == doc_number, Document.doc_ocr_status == false()).values(doc_ocr_status=True, doc_ocr_pages=result.total_pages_processed, doc_ocr_content=result.textract_result)


def close_cron(*, cron_id: str, stopped_at: datetime.datetime, error: str | None = None) -> Update:
  """Close an in-flight ledger row; rows already closed are left untouched."""
  values: dict[str, object] = {"cron_stopped_at": stopped_at, "cron_status": True, "cron_flagged": error is not None}
  if error is not None:
    values["cron_error"] = error
  return update(Cron).where(Cron.cron_id == cron_id, Cron.cron_status == false()).values(**values)


class PostgresOcrRepository(OcrRepository):
  """Persist the cron ledger, document results and folder stats to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def find_running(self, cron_type: str) -> CronRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(running_cron_query(cron_type))).scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

  async def select_next_document(self) -> DocumentRef | None:
    async with self._session_factory() as session:
      row = (await session.execute(next_document_query())).first()
      if row is None:
        return None
      return DocumentRef(doc_number=str(row.doc_number), doc_pdf_link=str(row.doc_pdf_link))

  async def open_cron(self, record: CronRecord) -> bool:
    async with self._session_factory() as session:
      session.add(Cron(cron_id=record.cron_id, cron_feed=record.cron_feed, cron_type=record.cron_type, cron_started_at=record.cron_started_at, cron_status=False, cron_flagged=False))
      try:
        await session.commit()
      except IntegrityError:
        # The single-flight index rejected the insert: another invocation claimed first.
        await session.rollback()
        logger.info("Cron claim rejected for type=%s feed=%s; another run is in flight.", record.cron_type, record.cron_feed)
        return False
      return True

  async def complete_document(self, *, cron_id: str, doc_number: str, result: OcrResult, stopped_at: datetime.datetime) -> None:
    async with self._session_factory() as session:
      async with session.begin():
        routing = (await session.execute(select(Document.doc_folder, Document.doc_site).where(Document.doc_number == doc_number))).first()
        if routing is None:
          raise DocumentMissingError(f"Document {doc_number} no longer exists")
        # Update the document first so a document processed elsewhere is never counted twice.
        updated = await session.execute(mark_document_processed(doc_number=doc_number, result=result))
        if updated.rowcount != 1:
          raise DocumentMissingError(f"Document {doc_number} was already processed")
        await session.execute(doc_stats_upsert(doc_folder=routing.doc_folder, doc_site=routing.doc_site, pages=result.total_pages_processed))
        closed = await session.execute(close_cron(cron_id=cron_id, stopped_at=stopped_at))
        if closed.rowcount != 1:
          raise CronAlreadyClosedError(f"Cron {cron_id} is no longer in flight")

  async def fail_cron(self, *, cron_id: str, error: str, stopped_at: datetime.datetime) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(close_cron(cron_id=cron_id, stopped_at=stopped_at, error=error))
      await session.commit()
      return result.rowcount == 1

  async def reap_stale(self, *, cron_type: str, started_before: datetime.datetime, stopped_at: datetime.datetime, error: str) -> int:
    async with self._session_factory() as session:
      stmt = update(Cron).where(Cron.cron_type == cron_type, Cron.cron_status == false(), Cron.cron_started_at < started_before).values(cron_stopped_at=stopped_at, cron_status=True, cron_flagged=True, cron_error=error)
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)

  async def list_recent(self, *, cron_type: str, limit: int = 20) -> list[CronRecord]:
    async with self._session_factory() as session:
      stmt = select(Cron).where(Cron.cron_type == cron_type).order_by(Cron.cron_started_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  @staticmethod
  def _model_to_record(row: Cron) -> CronRecord:
    return CronRecord(
      cron_id=row.cron_id,
      cron_feed=row.cron_feed,
      cron_type=row.cron_type,
      cron_started_at=row.cron_started_at,
      cron_stopped_at=row.cron_stopped_at,
      cron_status=bool(row.cron_status),
      cron_flagged=bool(row.cron_flagged),
      cron_error=row.cron_error,
    )
