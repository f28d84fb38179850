from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ocr_cron.core.database import Base


class Document(Base):
  __tablename__ = "documents"
  __table_args__ = (Index("ix_documents_ocr_pending", "doc_created_at", "doc_number", postgresql_where=text("doc_ocr_status = false AND doc_pdf_link IS NOT NULL")),)

  doc_number: Mapped[str] = mapped_column(String, primary_key=True)
  doc_pdf_link: Mapped[str | None] = mapped_column(Text, nullable=True)
  doc_folder: Mapped[str] = mapped_column(String, nullable=False, index=True)
  doc_site: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  doc_ocr_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
  doc_ocr_pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
  doc_ocr_content: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  doc_created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DocStats(Base):
  __tablename__ = "doc_stats"

  doc_folder: Mapped[str] = mapped_column(String, primary_key=True)
  doc_site: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  doc_total_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  doc_total_doc: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))


class Cron(Base):
  __tablename__ = "crons"
  __table_args__ = (
    # At most one in-flight row per cron type; the claim insert loses with an integrity error otherwise.
    Index("ux_crons_single_flight", "cron_type", unique=True, postgresql_where=text("cron_status = false")),
    Index("ix_crons_type_started_at", "cron_type", "cron_started_at"),
  )

  cron_id: Mapped[str] = mapped_column(String, primary_key=True)
  cron_feed: Mapped[str] = mapped_column(String, nullable=False, index=True)
  cron_type: Mapped[str] = mapped_column(String, nullable=False)
  cron_started_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  cron_stopped_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  cron_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
  cron_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
  cron_error: Mapped[str | None] = mapped_column(Text, nullable=True)
