"""Structured logging setup (JSON lines via python-json-logger)."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from timeoff.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname


def setup_logging() -> None:
    root = logging.getLogger()
    # Idempotent: create_app() may run more than once (tests).
    if any(getattr(h, "_timeoff_handler", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler._timeoff_handler = True  # type: ignore[attr-defined]
    if settings.LOG_JSON:
        handler.setFormatter(
            CustomJsonFormatter("%(timestamp) %(level) %(name) %(message)")
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())

    # Suppress verbose logs from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
