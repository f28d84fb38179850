"""Scheduled single-flight OCR processing for the document backlog."""
