"""AWS Textract wrapper that turns a stored PDF into page counts and extracted lines."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from ocr_cron.config import Settings
from ocr_cron.core.exceptions import OcrError
from ocr_cron.jobs.models import OcrResult
from ocr_cron.services.ocr_interface import OcrClient

logger = logging.getLogger(__name__)

CACHE_SUFFIX = ".textract.json"
_MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


class TextractClient(OcrClient):
  """Run asynchronous Textract text detection over S3 objects, caching results beside the source."""

  def __init__(self, settings: Settings, *, textract: Any = None, s3: Any = None) -> None:
    client_kwargs: dict[str, Any] = {"region_name": settings.aws_region}
    # Fall back to the default boto3 credential chain when no explicit keys are configured.
    if settings.aws_access_key_id and settings.aws_secret_access_key:
      client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
      client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    self._textract = textract or boto3.client("textract", **client_kwargs)
    self._s3 = s3 or boto3.client("s3", **client_kwargs)
    self._poll_seconds = settings.textract_poll_seconds

  async def extract(self, bucket: str, path: str, force: bool = False) -> OcrResult:
    """Return the OCR result for `s3://bucket/path`, reusing the cached result unless forced."""
    cache_key = f"{path}{CACHE_SUFFIX}"
    if not force:
      cached = await self._read_cache(bucket, cache_key)
      if cached is not None:
        logger.info("Reusing cached Textract result for s3://%s/%s", bucket, path)
        return cached

    job_id = await self._start_job(bucket, path)
    logger.info("Started Textract job %s for s3://%s/%s", job_id, bucket, path)
    pages, blocks = await self._collect_blocks(job_id)
    result = OcrResult(total_pages_processed=pages, textract_result=build_textract_content(blocks))
    await self._write_cache(bucket, cache_key, result)
    return result

  async def _start_job(self, bucket: str, path: str) -> str:
    try:
      response = await run_in_threadpool(self._textract.start_document_text_detection, DocumentLocation={"S3Object": {"Bucket": bucket, "Name": path}})
    except (BotoCoreError, ClientError) as exc:
      raise OcrError(f"Textract rejected s3://{bucket}/{path}: {exc}") from exc
    job_id = response.get("JobId")
    if not job_id:
      raise OcrError(f"Textract returned no job id for s3://{bucket}/{path}")
    return str(job_id)

  async def _collect_blocks(self, job_id: str) -> tuple[int, list[dict[str, Any]]]:
    """Poll the Textract job until it finishes, then follow pagination."""
    while True:
      response = await self._get_results(job_id)
      status = response.get("JobStatus")
      if status != "IN_PROGRESS":
        break
      await asyncio.sleep(self._poll_seconds)

    if status != "SUCCEEDED":
      message = response.get("StatusMessage") or "no status message"
      raise OcrError(f"Textract job {job_id} finished with status {status}: {message}")

    pages = int((response.get("DocumentMetadata") or {}).get("Pages") or 0)
    blocks = list(response.get("Blocks") or [])
    next_token = response.get("NextToken")
    while next_token:
      page = await self._get_results(job_id, next_token=next_token)
      blocks.extend(page.get("Blocks") or [])
      next_token = page.get("NextToken")
    return pages, blocks

  async def _get_results(self, job_id: str, *, next_token: str | None = None) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"JobId": job_id}
    if next_token:
      kwargs["NextToken"] = next_token
    try:
      return await run_in_threadpool(self._textract.get_document_text_detection, **kwargs)
    except (BotoCoreError, ClientError) as exc:
      raise OcrError(f"Failed to fetch Textract job {job_id}: {exc}") from exc

  async def _read_cache(self, bucket: str, cache_key: str) -> OcrResult | None:
    try:
      response = await run_in_threadpool(self._s3.get_object, Bucket=bucket, Key=cache_key)
      payload = json.loads(await run_in_threadpool(response["Body"].read))
      return OcrResult(total_pages_processed=int(payload["totalPagesProcessed"]), textract_result=payload["textractResult"])
    except ClientError as exc:
      code = exc.response.get("Error", {}).get("Code")
      if code not in _MISSING_OBJECT_CODES:
        logger.warning("Failed to read Textract cache s3://%s/%s: %s", bucket, cache_key, exc)
      return None
    except (BotoCoreError, KeyError, TypeError, ValueError) as exc:
      logger.warning("Ignoring unreadable Textract cache s3://%s/%s: %s", bucket, cache_key, exc)
      return None

  async def _write_cache(self, bucket: str, cache_key: str, result: OcrResult) -> None:
    body = json.dumps({"totalPagesProcessed": result.total_pages_processed, "textractResult": result.textract_result}).encode("utf-8")
    try:
      await run_in_threadpool(self._s3.put_object, Bucket=bucket, Key=cache_key, Body=body, ContentType="application/json")
    except (BotoCoreError, ClientError) as exc:
      logger.warning("Failed to write Textract cache s3://%s/%s: %s", bucket, cache_key, exc)


def build_textract_content(blocks: list[dict[str, Any]]) -> dict[str, Any]:
  """Group LINE blocks by page into the structure stored in `documents.doc_ocr_content`."""
  lines_by_page: dict[int, list[str]] = {}
  for block in blocks:
    if block.get("BlockType") != "LINE":
      continue
    page_number = int(block.get("Page") or 1)
    lines_by_page.setdefault(page_number, []).append(str(block.get("Text") or ""))

  pages = [{"page": number, "lines": lines_by_page[number]} for number in sorted(lines_by_page)]
  text = "\n".join(line for page in pages for line in page["lines"])
  return {"pages": pages, "text": text}
