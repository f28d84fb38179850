from __future__ import annotations

from fastapi import FastAPI

from ocr_cron.core.lifespan import get_scheduler, lifespan

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str | None]:
  """Return process health and the scheduler state."""
  scheduler = get_scheduler()
  running = scheduler is not None and scheduler.running
  last_outcome = scheduler.last_outcome.value if scheduler is not None and scheduler.last_outcome is not None else None
  return {"status": "ok", "scheduler": "running" if running else "stopped", "last_outcome": last_outcome}
