"""Schema package exports."""

from .ocr import Cron, DocStats, Document

__all__ = ["Cron", "DocStats", "Document"]
