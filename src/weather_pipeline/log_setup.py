"""JSON logging for the producer, consumer and query processes."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from .redaction import sanitize_for_logging, sanitize_text

# Optional `extra=` fields copied onto the JSON line when a call site sets them.
CONTEXT_FIELDS = ("city", "country", "date", "topic", "partition", "offset")


class JsonConsoleFormatter(logging.Formatter):
    """One JSON object per line, tagged with the emitting process role."""

    def __init__(self, process: str | None = None) -> None:
        super().__init__()
        self.process = process

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_text(record.getMessage()),
        }
        if self.process:
            event["process"] = self.process
        context = {
            field: getattr(record, field)
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        }
        if context:
            event["context"] = sanitize_for_logging(context)
        if record.exc_info:
            event["exception"] = sanitize_text(self.formatException(record.exc_info))
        return json.dumps(event, default=str)


def setup_logger(
    name: str = "weather_pipeline",
    level: int | str = logging.INFO,
    process: str | None = None,
) -> logging.Logger:
    """Configure the process logger; log lines go to stderr, tables to stdout."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonConsoleFormatter(process=process))
    logger.addHandler(handler)
    return logger
