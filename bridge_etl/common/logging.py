"""Run logging: JSON lines with a stable schema, or plain progress text."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from bridge_etl.common.constants import JSON_LOG_FIELDS
from bridge_etl.common.fs import ensure_dir
from bridge_etl.common.time_utils import utc_timestamp_iso

LOG_FORMATS = ("text", "json")
_TEXT_FIELDS = ("stage", "unit", "fetched", "rejected", "unique", "error_code")


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": utc_timestamp_iso(),
            "level": record.levelname,
            "run_id": getattr(record, "run_id", None),
            "stage": getattr(record, "stage", None),
            "event": getattr(record, "event", None),
            "status": getattr(record, "status", None),
            "unit": getattr(record, "unit", None),
            "attempt": getattr(record, "attempt", None),
            "fetched": getattr(record, "fetched", None),
            "rejected": getattr(record, "rejected", None),
            "unique": getattr(record, "unique", None),
            "error_code": getattr(record, "error_code", None),
            "message": record.getMessage(),
        }
        for field in JSON_LOG_FIELDS:
            payload.setdefault(field, None)
        return json.dumps(payload, ensure_ascii=False)


class ProgressTextFormatter(logging.Formatter):
    """One human-readable line per event, with the counters appended."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [f"{record.levelname:<7}", record.getMessage()]
        extras = []
        for field in _TEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                extras.append(f"{field}={value}")
        if extras:
            parts.append("[" + " ".join(extras) + "]")
        return " ".join(parts)


def _formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonLineFormatter()
    if log_format == "text":
        return ProgressTextFormatter()
    raise ValueError(f"Unsupported log format: {log_format}")


def build_logger(
    run_id: str,
    level: str = "INFO",
    log_format: str = "text",
    log_path: Path | None = None,
) -> logging.Logger:
    logger = logging.getLogger(f"bridge_etl.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(_formatter(log_format))
    logger.addHandler(stream)

    if log_path is not None:
        ensure_dir(log_path.parent)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)
