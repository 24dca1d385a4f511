"""Structured logging with correlation IDs.

Every webhook delivery and outbound gateway call is logged with the
correlation ID of the request that triggered it, so a single payment
can be followed across prepare/complete or create/perform callbacks.
Credentials and signatures passed as extra fields are masked.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Gateway serving the current webhook, if any
gateway_var: ContextVar[Optional[str]] = ContextVar("gateway", default=None)

# LogRecord attributes that are not user supplied extras
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "correlation_id", "gateway"}

SENSITIVE_FIELDS = frozenset((
    "authorization", "secret_key", "sign_string", "signature", "password",
))
REDACTED = "***"


def get_correlation_id() -> str:
    """Get the current correlation ID, generating one on first use."""
    cid = correlation_id_var.get()
    if cid is None:
        cid = uuid.uuid4().hex
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)
    gateway_var.set(None)


def set_gateway(provider: Optional[str]) -> None:
    """Tag subsequent log records with the gateway being served."""
    gateway_var.set(provider)


def redact(fields: dict) -> dict:
    """Mask values of credential and signature fields.

    Args:
        fields: Log context fields

    Returns:
        Copy with sensitive values replaced
    """
    return {
        key: REDACTED if key.lower() in SENSITIVE_FIELDS else value
        for key, value in fields.items()
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Output keys: timestamp, level, logger, message, correlation_id,
    gateway (when set), source, exception (when present) and extra.
    """

    def __init__(
        self,
        include_stack_trace: bool = True,
        include_extra_fields: bool = True,
    ):
        super().__init__()
        self.include_stack_trace = include_stack_trace
        self.include_extra_fields = include_extra_fields

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

        gateway = gateway_var.get()
        if gateway:
            entry["gateway"] = gateway

        entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info and self.include_stack_trace:
            entry["exception"] = self._exception_fields(record.exc_info)

        if self.include_extra_fields:
            extra = self._extra_fields(record)
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, default=str)

    @staticmethod
    def _exception_fields(exc_info) -> dict:
        exc_type, exc_value, exc_tb = exc_info
        return {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "stack_trace": traceback.format_exception(*exc_info) if exc_tb else None,
        }

    @staticmethod
    def _extra_fields(record: logging.LogRecord) -> dict:
        extra = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            extra[key] = value
        return redact(extra)


class CorrelationIdFilter(logging.Filter):
    """Stamp records with the correlation ID and gateway of the context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.gateway = gateway_var.get() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level name
        json_format: Emit JSON lines instead of plain text
        include_stack_trace: Include stack traces in error records
    """
    log_level = logging.getLevelName(level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s %(gateway)s] %(message)s"
        ))
    root_logger.addHandler(handler)

    # Request logging of the HTTP stack would repeat ours
    for name in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _log(logger: logging.Logger, level: int, message: str, exception: Optional[BaseException], extra: dict) -> None:
    context = redact(extra)
    context["correlation_id"] = get_correlation_id()
    logger.log(level, message, exc_info=exception, extra=context)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error with correlation ID and optional exception.

    Args:
        logger: Logger instance
        message: Error message
        exception: Exception whose traceback is attached
        **extra: Context fields, credentials are masked
    """
    _log(logger, logging.ERROR, message, exception, extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    """Log a warning with correlation ID."""
    _log(logger, logging.WARNING, message, None, extra)
