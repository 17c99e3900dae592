"""Structured logging for the Traefik health checker.

Records carry optional probe context (which upstream, which check, what
status) passed through ``extra`` or a ``with_context`` adapter:

    logger = get_logger(__name__)
    logger.with_context(target="10.0.0.5:8080", probe="providers").warning(
        "No backends found in Traefik (%d < %d)", 0, 1
    )

Both formatters render the same fields; ``setup_logging`` picks one.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

# Record attributes rendered as context, in output order
CONTEXT_FIELDS = ("target", "probe", "status_code", "error_type")


def _component(record: logging.LogRecord) -> str:
    # "traefik_healthcheck.consul" -> "consul"
    return record.name.rsplit(".", 1)[-1]


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class StructuredFormatter(logging.Formatter):
    """One line per record: time, level, component, context, message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC)
        parts = [
            timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"[{record.levelname:8}]",
            f"[{_component(record):10}]",
        ]

        context = _context(record)
        if context:
            parts.append("[" + " ".join(f"{key}={value}" for key, value in context.items()) + "]")

        parts.append(record.getMessage())
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " ".join(parts)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Adds fixed context fields to every record, merged with any call-site ``extra``."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **(self.extra or {})}
        return msg, kwargs


class HealthcheckLogger(logging.Logger):
    """Logger class installed for the whole process; adds ``with_context``."""

    def with_context(self, **context: Any) -> ContextAdapter:
        return ContextAdapter(self, context)


logging.setLoggerClass(HealthcheckLogger)


def get_logger(name: str) -> HealthcheckLogger:
    """Get a logger with the custom HealthcheckLogger class.

    Args:
        name: Logger name (typically __name__).
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Route all logging to stderr with the chosen format.

    Existing root handlers are replaced, so calling this again after the
    configuration is loaded switches level and format in place.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        json_format: Emit JSON lines instead of the human-readable format.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    logging.getLogger("traefik_healthcheck").setLevel(numeric_level)
    # httpx logs every request at INFO; one poll would flood the output
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))


__all__ = [
    "ContextAdapter",
    "HealthcheckLogger",
    "JSONFormatter",
    "StructuredFormatter",
    "get_logger",
    "setup_logging",
]
