from __future__ import annotations

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

import pytest

_REVISION = Path(__file__).resolve().parents[2] / "alembic" / "versions" / "4b8e2f1c9a70_create_ocr_cron_tables.py"


@pytest.fixture
def revision(monkeypatch):
  spec = importlib.util.spec_from_file_location("ocr_cron_tables_revision", _REVISION)
  module = importlib.util.module_from_spec(spec)
  spec.loader.exec_module(module)
  fake_op = MagicMock()
  monkeypatch.setattr(module, "op", fake_op)
  return module, fake_op


def test_downgrade_tolerates_objects_the_guarded_upgrade_skipped(revision):
  module, fake_op = revision

  module.downgrade()

  dropped_indexes = {call.args[0] for call in fake_op.drop_index.call_args_list}
  assert {"ux_crons_single_flight", "ix_crons_type_started_at", "ix_documents_ocr_pending"} <= dropped_indexes
  assert all(call.kwargs.get("if_exists") is True for call in fake_op.drop_index.call_args_list)
  assert all(call.kwargs.get("if_exists") is True for call in fake_op.drop_table.call_args_list)
  assert "documents" not in {call.args[0] for call in fake_op.drop_table.call_args_list}
