import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the host process; the OCR cron starts from the app lifespan."""
  # Migrations run in the deploy pipeline (alembic upgrade head), not here.
  logger.info("Starting OCR cron service (run alembic upgrade head in deploy pipeline)...")
  port = os.getenv("PORT", "8003")
  # Replace the current process with uvicorn so it receives SIGTERM directly.
  args = ["uvicorn", "ocr_cron.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"]
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
