"""Resolve document content locators to S3 bucket/object pairs."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import unquote, urlparse

from ocr_cron.core.exceptions import InvalidLocatorError


@dataclass(frozen=True)
class ContentLocation:
  """Bucket and object key addressed by a content locator."""

  bucket: str | None
  path: str


def parse_content_locator(raw: str) -> ContentLocation:
  """Parse `s3://bucket/key` and S3 HTTPS object URLs.

  Virtual-hosted URLs (`https://bucket.s3.region.amazonaws.com/key`) carry the
  bucket in the host; path-style URLs (`https://s3.region.amazonaws.com/bucket/key`)
  carry it in the first path segment. Any other HTTPS host yields the full path
  as the key and no bucket.
  """
  parsed = urlparse((raw or "").strip())
  if not parsed.scheme:
    raise InvalidLocatorError(f"Content locator has no scheme: {raw!r}")

  # Object keys are stored URL-encoded in links; Textract expects the raw key.
  path = unquote(parsed.path.lstrip("/"))

  if parsed.scheme == "s3":
    bucket = parsed.netloc or None
  elif parsed.scheme in {"http", "https"}:
    host = (parsed.hostname or "").lower()
    bucket, path = _split_http_bucket(host, path)
  else:
    raise InvalidLocatorError(f"Unsupported content locator scheme {parsed.scheme!r}: {raw!r}")

  if not path:
    raise InvalidLocatorError(f"Content locator has no object path: {raw!r}")

  return ContentLocation(bucket=bucket, path=path)


def _split_http_bucket(host: str, path: str) -> tuple[str | None, str]:
  if host.startswith("s3.") or host.startswith("s3-"):
    bucket, _, key = path.partition("/")
    return (bucket or None), key

  if ".s3." in host or ".s3-" in host:
    return host.split(".s3", 1)[0], path

  return None, path
