"""Structured logging infrastructure for the API and workers.

Provides JSON-formatted logging for production and human-readable
logging for development, plus a GenerationLogger helper for pipeline events.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

# Structured fields lifted from `extra` into the JSON payload
STRUCTURED_FIELDS = (
    "book_id",
    "job_id",
    "job_kind",
    "stage",
    "page_number",
    "status",
    "duration",
    "attempt",
    "error_type",
    "raw_result",
    "json_string",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Configure structured logging for the application."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create console handler
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)


class GenerationLogger:
    """Logger for story and illustration generation events with structured fields."""

    def __init__(self):
        self.logger = logging.getLogger("photobook.generation")

    def job_started(self, job_kind: str, book_id: str, job_id: str) -> None:
        self.logger.info(
            f"{job_kind} job started",
            extra={"book_id": book_id, "job_id": job_id, "job_kind": job_kind, "stage": "started"},
        )

    def status_changed(self, book_id: str, status: str, phase: str) -> None:
        self.logger.info(
            f"Book status updated to {status} ({phase})",
            extra={"book_id": book_id, "status": status, "stage": phase},
        )

    def stage_completed(self, book_id: str, stage: str, duration: Optional[float] = None) -> None:
        extra = {"book_id": book_id, "stage": stage}
        if duration:
            extra["duration"] = round(duration, 2)
        self.logger.info(f"Stage completed: {stage}", extra=extra)

    def page_skipped(self, book_id: str, page_number: int, reason: str) -> None:
        self.logger.warning(
            f"Skipping page {page_number}: {reason}",
            extra={"book_id": book_id, "page_number": page_number},
        )

    def page_illustrated(self, book_id: str, page_number: int, url: str) -> None:
        self.logger.info(
            f"Illustrated page {page_number}: {url}",
            extra={"book_id": book_id, "page_number": page_number, "stage": "illustration"},
        )

    def page_failed(self, book_id: str, page_number: int, error: Exception) -> None:
        self.logger.error(
            f"Illustration failed for page {page_number}: {error}",
            extra={
                "book_id": book_id,
                "page_number": page_number,
                "error_type": type(error).__name__,
            },
        )

    def generation_completed(self, book_id: str, job_kind: str, duration: float) -> None:
        self.logger.info(
            f"{job_kind} generation completed",
            extra={
                "book_id": book_id,
                "job_kind": job_kind,
                "stage": "completed",
                "duration": round(duration, 2),
            },
        )

    def generation_failed(self, book_id: str, job_kind: str, error: Exception) -> None:
        self.logger.error(
            f"{job_kind} generation failed: {error}",
            extra={
                "book_id": book_id,
                "job_kind": job_kind,
                "stage": "failed",
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )

    def retry_scheduled(self, book_id: str, job_kind: str, attempt: int, defer: float) -> None:
        self.logger.warning(
            f"{job_kind} attempt {attempt} failed, retrying in {defer:g}s",
            extra={"book_id": book_id, "job_kind": job_kind, "attempt": attempt},
        )


# Global generation logger instance
story_logger = GenerationLogger()
