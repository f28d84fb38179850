"""Error types raised by the OCR cron and helpers for recording them in the ledger."""

from __future__ import annotations


class OcrCronError(RuntimeError):
  """Base class for OCR cron failures."""


class OcrError(OcrCronError):
  """Raised when the OCR service cannot produce a result for a document."""


class OcrTimeoutError(OcrError):
  """Raised when the OCR call exceeds its deadline."""


class InvalidLocatorError(OcrCronError, ValueError):
  """Raised when a document's content locator cannot be resolved to a bucket and object path."""


class DocumentMissingError(OcrCronError):
  """Raised when a claimed document disappears or was processed elsewhere before results are stored."""


class CronAlreadyClosedError(OcrCronError):
  """Raised when a ledger row is no longer in flight at close time."""


def format_cron_error(exc: BaseException, *, max_chars: int = 4000) -> str:
  """Render an exception the way it is stored in `crons.cron_error`."""
  message = str(exc)
  # Prefix the type name so ledger readers can tell timeouts from service errors.
  rendered = f"{type(exc).__name__}: {message}" if message else type(exc).__name__
  if len(rendered) <= max_chars:
    return rendered
  # Limits too small for the ellipsis get a plain cut.
  if max_chars <= 3:
    return rendered[:max_chars]
  return rendered[: max_chars - 3] + "..."
