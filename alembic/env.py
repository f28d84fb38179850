"""Alembic environment for the OCR cron tables.

The cron shares its database with the web application that owns `documents`,
so it keeps its own version table and only compares the tables it maps.
"""

import asyncio
import logging
import sys
from logging.config import fileConfig
from os.path import abspath, dirname
from time import perf_counter

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

sys.path.insert(0, dirname(dirname(abspath(__file__))))

config = context.config
if config.config_file_name is not None:
  fileConfig(config.config_file_name)

import ocr_cron.schema.ocr  # noqa: E402, F401
from ocr_cron.core.database import Base, _database_url  # noqa: E402

target_metadata = Base.metadata

VERSION_TABLE = "alembic_version_ocr_cron"

_log = logging.getLogger("alembic.runtime.migration")
_step_started: list[float] = []


def _include_object(obj: object, name: str | None, type_: str, reflected: bool, compare_to: object) -> bool:
  """Ignore reflected tables the cron does not map (the web application's schema)."""
  if type_ == "table" and reflected and compare_to is None:
    return name in target_metadata.tables
  return True


def _on_version_apply(*, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
  revision = getattr(step, "up_revision_id", None) or "unknown"
  now = perf_counter()
  if _step_started:
    _log.info("Applied OCR cron migration %s in %.3fs", revision, now - _step_started[-1])
  else:
    _log.info("Applied OCR cron migration %s", revision)
  _step_started[:] = [now]


def _context_options() -> dict[str, object]:
  return {"target_metadata": target_metadata, "version_table": VERSION_TABLE, "include_object": _include_object, "compare_type": True}


def _require_database_url() -> str:
  url = _database_url()
  if not url:
    raise RuntimeError("OCR_CRON_PG_DSN (or DATABASE_URL) must be set to run migrations.")
  return url


def run_migrations_offline() -> None:
  """Render migration SQL for review without connecting."""
  context.configure(url=_require_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"}, **_context_options())
  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, on_version_apply=_on_version_apply, **_context_options())
  migration_context = context.get_context()
  heads = migration_context.script.get_heads() if migration_context.script else []
  _log.info("Migrating OCR cron schema from %s to %s", migration_context.get_current_revision() or "base", ", ".join(heads) or "none")
  _step_started[:] = [perf_counter()]

  with context.begin_transaction():
    context.run_migrations()

  _log.info("OCR cron schema at %s", ", ".join(migration_context.get_current_heads()) or "none")


async def run_async_migrations() -> None:
  """Migrate through asyncpg, the same driver the cron uses at runtime."""
  section = config.get_section(config.config_ini_section) or {}
  section["sqlalchemy.url"] = _require_database_url()
  connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
  try:
    async with connectable.connect() as connection:
      await connection.run_sync(do_run_migrations)
  finally:
    await connectable.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_async_migrations())
