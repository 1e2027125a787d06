"""
Logging setup for the gateway.

Records pass through two filters before any formatter sees them: one stamps
the request's correlation id on the record, the other scrubs API keys and
bearer tokens out of the message. Production writes one JSON object per
line; development writes tab-separated text.

Usage:
    from grounded_qa.logging_config import get_logger
    logger = get_logger(__name__)

    logger.info("Selected provider", extra={"data": {"model": model}})
"""

import json
import logging
import logging.handlers
import os
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "grounded_qa"

CORRELATION_HEADER = "x-correlation-id"

LOG_RETENTION_HOURS = 48

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(cid: str) -> None:
    _correlation_id.set(cid)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def _environment() -> str:
    return os.environ.get("APP_ENV", os.environ.get("ENV", "development")).lower()


def is_production() -> bool:
    return _environment() == "production"


# Provider credentials that may end up in exception text or upstream URLs
_SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key\s*[:=]\s*)['\"]?[\w\-]{10,}['\"]?", re.IGNORECASE),
    re.compile(r"([?&]key=)[\w\-]{10,}", re.IGNORECASE),
    re.compile(r"(x-goog-api-key\s*[:=]\s*)['\"]?[\w\-]{10,}['\"]?", re.IGNORECASE),
    re.compile(r"(Bearer\s+)[\w\-\.]{10,}", re.IGNORECASE),
    re.compile(r"()\bsk-[\w\-]{16,}"),
    re.compile(r"()\bAIza[\w\-]{20,}"),
]

_SECRET_ENV_KEYS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY")


def redact_secrets(message: str) -> str:
    """Replace provider keys in ``message`` with ``[REDACTED]``."""
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(r"\1[REDACTED]", message)
    for name in _SECRET_ENV_KEYS:
        value = os.environ.get(name)
        if value and len(value) > 4:
            message = message.replace(value, "[REDACTED]")
    return message


class CorrelationIdFilter(logging.Filter):
    """Adds ``correlation_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


class RedactionFilter(logging.Filter):
    """Freezes the formatted message with secrets removed.

    The stack trace is redacted too, so formatters can use
    ``record.exc_text`` as is.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(record.getMessage())
        record.args = None
        if record.exc_info and record.exc_info[1] is not None and not record.exc_text:
            record.exc_text = redact_secrets(
                logging.Formatter().formatException(record.exc_info)
            )
        return True


def _record_data(record: logging.LogRecord) -> Optional[dict]:
    data = getattr(record, "data", None)
    return data if isinstance(data, dict) else None


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, service, context, correlationId, message, plus
    ``data`` for ``extra={"data": ...}`` and ``stackTrace`` for exceptions.
    """

    LEVELS = {"WARNING": "warn", "CRITICAL": "fatal"}

    def __init__(self, service: str = ROOT_LOGGER):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": self.LEVELS.get(record.levelname, record.levelname.lower()),
            "service": self.service,
            "context": record.name,
            "correlationId": getattr(record, "correlation_id", "") or None,
            "message": record.getMessage(),
        }
        data = _record_data(record)
        if data is not None:
            entry["data"] = data
        if record.exc_text:
            entry["stackTrace"] = record.exc_text
        return json.dumps(entry, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """``LEVEL  time  logger [cid]  message  {data}`` with the traceback below."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        cid = getattr(record, "correlation_id", "")
        line = f"{record.levelname}:\t{ts}\t{record.name}{f' [{cid[:8]}]' if cid else ''}\t{record.getMessage()}"

        data = _record_data(record)
        if data is not None:
            line += "\t" + json.dumps(data, default=str, ensure_ascii=False)
        if record.exc_text:
            line += "\n" + record.exc_text
        return line


def _retention_file_handler(service: str) -> logging.Handler:
    """Hourly-rotated JSON log file keeping LOG_RETENTION_HOURS of history."""
    log_dir = Path(os.environ.get("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / "gateway.log",
        when="h",
        interval=1,
        backupCount=LOG_RETENTION_HOURS,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(StructuredJsonFormatter(service=service))
    return handler


_configured = False


def configure_logging(
    log_level: str = "INFO",
    service: str = ROOT_LOGGER,
    enable_file_logging: bool = False,
) -> None:
    """Install handlers on the ``grounded_qa`` logger.

    Args:
        log_level: Minimum level name
        service: Service name in structured entries
        enable_file_logging: Also write JSON lines to ``$LOG_DIR/gateway.log``
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.filters.clear()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        StructuredJsonFormatter(service=service) if is_production() else DevelopmentFormatter()
    )
    handlers = [console]

    if enable_file_logging:
        try:
            handlers.append(_retention_file_handler(service))
        except OSError as e:
            print(f"File logging disabled: {e}", file=sys.stderr)

    for handler in handlers:
        handler.addFilter(CorrelationIdFilter())
        handler.addFilter(RedactionFilter())
        root.addHandler(handler)

    _configured = True


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger under the ``grounded_qa`` hierarchy, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
