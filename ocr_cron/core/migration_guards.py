"""Idempotent Alembic operations for tables shared with the web application.

`documents` is owned by the web application and may already exist with some or
all of the OCR columns; these helpers consult the Postgres catalog and only run
the DDL that is still missing.
"""

from __future__ import annotations

import logging
from typing import Any

from alembic import op
from sqlalchemy import text

logger = logging.getLogger("alembic.runtime.migration")

_CATALOG_QUERIES = {
  "table": "SELECT 1 FROM information_schema.tables WHERE table_schema = :schema AND table_name = :table_name AND table_type = 'BASE TABLE' LIMIT 1",
  "column": "SELECT 1 FROM information_schema.columns WHERE table_schema = :schema AND table_name = :table_name AND column_name = :column_name LIMIT 1",
  "index": "SELECT 1 FROM pg_indexes WHERE schemaname = :schema AND indexname = :index_name LIMIT 1",
}


def _catalog_has(kind: str, *, schema: str | None, **params: str) -> bool:
  result = op.get_bind().execute(text(_CATALOG_QUERIES[kind]), {"schema": schema or "public", **params})
  return result.first() is not None


def table_exists(table_name: str, *, schema: str | None = None) -> bool:
  return _catalog_has("table", schema=schema, table_name=table_name)


def column_exists(table_name: str, column_name: str, *, schema: str | None = None) -> bool:
  return _catalog_has("column", schema=schema, table_name=table_name, column_name=column_name)


def guarded_create_table(table_name: str, *columns: Any, **kwargs: Any) -> bool:
  """Create `table_name` unless it already exists; return True when created."""
  if table_exists(table_name, schema=kwargs.get("schema")):
    logger.info("Table %s already exists; skipping create.", table_name)
    return False
  op.create_table(table_name, *columns, **kwargs)
  return True


def guarded_add_column(table_name: str, column: Any, **kwargs: Any) -> bool:
  """Add `column` to an existing table that lacks it; return True when added."""
  schema = kwargs.get("schema")
  if not table_exists(table_name, schema=schema) or column_exists(table_name, column.name, schema=schema):
    return False
  op.add_column(table_name, column, **kwargs)
  logger.info("Added %s.%s.", table_name, column.name)
  return True


def guarded_create_index(index_name: str, table_name: str, columns: list[str], **kwargs: Any) -> bool:
  """Create an index once its table and columns exist; return True when created."""
  schema = kwargs.get("schema")
  if _catalog_has("index", schema=schema, index_name=index_name):
    return False
  if not table_exists(table_name, schema=schema):
    return False
  missing = [column for column in columns if not column_exists(table_name, column, schema=schema)]
  if missing:
    logger.warning("Skipping index %s: %s lacks column(s) %s.", index_name, table_name, ", ".join(missing))
    return False
  op.create_index(index_name, table_name, columns, **kwargs)
  return True
