"""Create documents, doc_stats and crons tables for the OCR cron.

Revision ID: 4b8e2f1c9a70
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from ocr_cron.core.migration_guards import guarded_add_column, guarded_create_index, guarded_create_table

revision = "4b8e2f1c9a70"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  # The web application may already own `documents`; only fill in what the cron needs.
  guarded_create_table(
    "documents",
    sa.Column("doc_number", sa.String(), primary_key=True),
    sa.Column("doc_pdf_link", sa.Text(), nullable=True),
    sa.Column("doc_folder", sa.String(), nullable=False),
    sa.Column("doc_site", sa.String(), nullable=True),
    sa.Column("doc_ocr_status", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("doc_ocr_pages", sa.Integer(), nullable=True),
    sa.Column("doc_ocr_content", postgresql.JSONB(), nullable=True),
    sa.Column("doc_created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
  )
  guarded_add_column("documents", sa.Column("doc_ocr_status", sa.Boolean(), nullable=False, server_default=sa.text("false")))
  guarded_add_column("documents", sa.Column("doc_ocr_pages", sa.Integer(), nullable=True))
  guarded_add_column("documents", sa.Column("doc_ocr_content", postgresql.JSONB(), nullable=True))
  guarded_add_column("documents", sa.Column("doc_created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
  guarded_create_index("ix_documents_doc_folder", "documents", ["doc_folder"])
  guarded_create_index("ix_documents_doc_site", "documents", ["doc_site"])
  guarded_create_index("ix_documents_ocr_pending", "documents", ["doc_created_at", "doc_number"], postgresql_where=sa.text("doc_ocr_status = false AND doc_pdf_link IS NOT NULL"))

  guarded_create_table(
    "doc_stats",
    sa.Column("doc_folder", sa.String(), primary_key=True),
    sa.Column("doc_site", sa.String(), nullable=True),
    sa.Column("doc_total_pages", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("doc_total_doc", sa.Integer(), nullable=False, server_default=sa.text("0")),
  )
  guarded_create_index("ix_doc_stats_doc_site", "doc_stats", ["doc_site"])

  guarded_create_table(
    "crons",
    sa.Column("cron_id", sa.String(), primary_key=True),
    sa.Column("cron_feed", sa.String(), nullable=False),
    sa.Column("cron_type", sa.String(), nullable=False),
    sa.Column("cron_started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column("cron_stopped_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("cron_status", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("cron_flagged", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("cron_error", sa.Text(), nullable=True),
  )
  guarded_create_index("ix_crons_cron_feed", "crons", ["cron_feed"])
  guarded_create_index("ix_crons_type_started_at", "crons", ["cron_type", "cron_started_at"])
  # Close duplicate in-flight rows from before the index existed so it can be built.
  op.execute(
    """
    UPDATE crons SET cron_status = true, cron_flagged = true, cron_stopped_at = now(), cron_error = 'Abandoned: superseded by single-flight migration'
    WHERE cron_status = false
      AND cron_id NOT IN (
        SELECT DISTINCT ON (cron_type) cron_id FROM crons WHERE cron_status = false ORDER BY cron_type, cron_started_at DESC
      )
    """
  )
  guarded_create_index("ux_crons_single_flight", "crons", ["cron_type"], unique=True, postgresql_where=sa.text("cron_status = false"))


def downgrade() -> None:
  """Downgrade schema."""
  # `documents` belongs to the web application; only drop what the cron introduced.
  op.drop_index("ux_crons_single_flight", table_name="crons", if_exists=True)
  op.drop_index("ix_crons_type_started_at", table_name="crons", if_exists=True)
  op.drop_index("ix_crons_cron_feed", table_name="crons", if_exists=True)
  op.drop_table("crons", if_exists=True)
  op.drop_index("ix_doc_stats_doc_site", table_name="doc_stats", if_exists=True)
  op.drop_table("doc_stats", if_exists=True)
  op.drop_index("ix_documents_ocr_pending", table_name="documents", if_exists=True)
