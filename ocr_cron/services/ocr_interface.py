from __future__ import annotations

from typing import Protocol

from ocr_cron.jobs.models import OcrResult


class OcrClient(Protocol):
  """Interface for the external OCR service."""

  async def extract(self, bucket: str, path: str, force: bool = False) -> OcrResult:
    """Run OCR over one stored object; `force` bypasses any cached result."""
    ...
