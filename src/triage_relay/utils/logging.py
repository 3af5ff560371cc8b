"""Structured logging configuration with secret sanitization.

The relay logs through structlog. Records from other libraries, such as
uvicorn and httpx, go through the standard library and are rendered by
the same ``ProcessorFormatter``, so every line has one format and passes
the same secret filter.

Each webhook delivery binds its ``delivery_id`` and GitHub event name to
the context; triage processing then binds ``repository`` and
``issue_number``.
Background tasks copy the context when they are created, so log lines
from a triage run carry the delivery that started it.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterable, MutableMapping
from enum import StrEnum
from pathlib import Path
from typing import Any

import structlog

from triage_relay._version import __version__
from triage_relay.utils.security import SecretRedactor

SERVICE_NAME = "triage-relay"

# Configured secrets shorter than this are not registered as literals
MIN_LITERAL_SECRET_LENGTH = 8


class LogFormat(StrEnum):
    """Log output format options."""

    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_redactor = SecretRedactor()


def register_secrets(values: Iterable[str]) -> None:
    """Redact the exact configured secret values from all log output.

    The webhook secret in particular has no recognizable shape, so the
    pattern list alone would never catch it.

    Args:
        values: Secret strings from the loaded configuration. Empty and
            very short values are skipped.
    """
    global _redactor
    literals = sorted({v for v in values if v and len(v) >= MIN_LITERAL_SECRET_LENGTH})
    _redactor = SecretRedactor(
        custom_patterns=[("Configured secret", re.escape(v)) for v in literals],
    )


def sanitize_log_value(value: Any) -> Any:
    """Recursively sanitize secrets from log values.

    Args:
        value: Value to sanitize (can be nested dict/list/str)

    Returns:
        Sanitized value with secrets redacted
    """
    if isinstance(value, str):
        return _redactor.redact(value)
    if isinstance(value, dict):
        return {k: sanitize_log_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_log_value(v) for v in value)
    return value


def secret_sanitizer(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor that redacts secrets from every field."""
    for key, value in event_dict.items():
        event_dict[key] = sanitize_log_value(value)
    return event_dict


def add_service_context(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Add the service name and version to all log entries."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _shared_processors() -> list[Any]:
    # Applied to structlog events and to foreign stdlib records alike
    return [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        secret_sanitizer,
    ]


def _build_formatter(log_format: LogFormat) -> structlog.stdlib.ProcessorFormatter:
    renderer: Any
    if log_format == LogFormat.JSON:
        final: list[Any] = [structlog.processors.format_exc_info]
        renderer = structlog.processors.JSONRenderer()
    else:
        final = []
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
    )


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: LogFormat | str = LogFormat.JSON,
    file_path: Path | str | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structured logging for the relay and the libraries it uses.

    Can be called more than once; the second call (after the config file
    is loaded) replaces the handlers installed by the first.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        file_path: Path to log file (if file logging enabled)
        file_enabled: Whether to enable file logging

    Example:
        # Local development
        configure_logging(level="DEBUG", log_format="console")

        # Behind a log shipper
        configure_logging(level="INFO", log_format="json")
    """
    level = LogLevel(level.upper()) if isinstance(level, str) else level
    log_format = LogFormat(log_format.lower()) if isinstance(log_format, str) else log_format
    numeric_level = getattr(logging, level.value)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = _build_formatter(log_format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: OSError | None = None

    if file_enabled and file_path:
        file_path = Path(file_path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(file_path))
        except OSError as e:
            file_error = e

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(numeric_level)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    if file_error is not None:
        # Console output still works
        structlog.get_logger(__name__).warning(
            "log_file_unavailable", path=str(file_path), error=str(file_error)
        )


def bind_delivery(delivery_id: str | None, github_event: str | None) -> None:
    """Start a fresh log context for one webhook delivery.

    Example:
        bind_delivery(request.headers["X-GitHub-Delivery"], "issues")
        log.info("webhook_received")  # Includes delivery_id and github_event
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(delivery_id=delivery_id, github_event=github_event)


def bind_issue(repository: str, issue_number: int) -> None:
    """Add the issue being handled to the current log context."""
    structlog.contextvars.bind_contextvars(repository=repository, issue_number=issue_number)
