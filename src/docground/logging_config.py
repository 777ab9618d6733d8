"""JSON logging for the service plus the ingestion and query audit trail."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

AUDIT_LOGGER_NAME = "docground.ingest.audit"
AUDIT_LOG_FILENAME = "ingest_audit.log"
AUDIT_SCHEMA_VERSION = 1
SERVICE_NAME = "docground"

# attributes every LogRecord carries; anything else was passed via ``extra``
_STANDARD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class MinimalJSONFormatter(logging.Formatter):
    """One JSON object per line; dict messages are merged into the payload."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                payload["message"] = message

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRIBUTES and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


class AuditRecordFilter(logging.Filter):
    """Stamps audit entries with the service name and schema version.

    Audit entries are structured dicts carrying an ``event``; plain string
    messages sent to the audit logger are dropped from the trail.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not isinstance(record.msg, dict) or "event" not in record.msg:
            return False
        record.service = SERVICE_NAME
        record.audit_version = AUDIT_SCHEMA_VERSION
        return True


def build_logging_config(log_dir: Path | str = "logs", level: str = "INFO") -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "filters": {"audit": {"()": AuditRecordFilter}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
            "ingest_audit": {
                "class": "logging.FileHandler",
                "filename": str(Path(log_dir) / AUDIT_LOG_FILENAME),
                "mode": "a",
                "encoding": "utf-8",
                "formatter": "json",
                "filters": ["audit"],
            },
        },
        "root": {"level": level.upper(), "handlers": ["default"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {
                "level": "INFO",
                "handlers": ["ingest_audit"],
                "propagate": False,
            }
        },
    }


def configure_logging(log_dir: Path | str = "logs", level: str = "INFO") -> None:
    """Configure JSON logging and the audit trail file under *log_dir*."""

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_dir, level))


__all__ = [
    "AUDIT_LOGGER_NAME",
    "AUDIT_LOG_FILENAME",
    "AuditRecordFilter",
    "MinimalJSONFormatter",
    "build_logging_config",
    "configure_logging",
]
