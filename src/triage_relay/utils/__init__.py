"""Utility functions and helpers.

This module provides various utilities for the triage relay:
- security: Webhook signatures, secret redaction, input validation
- async_helpers: Error hierarchy, timeouts, rate limiting
- logging: Structured logging with secret sanitization
- health: Health check utilities
- metrics: Application metrics collection
"""

from triage_relay.utils.health import (
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from triage_relay.utils.logging import (
    LogFormat,
    LogLevel,
    bind_delivery,
    bind_issue,
    configure_logging,
    register_secrets,
)
from triage_relay.utils.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    Timer,
    get_metrics,
)
from triage_relay.utils.security import (
    RedactionError,
    SecretRedactor,
    SecurityError,
)

__all__ = [
    # Metrics
    "Counter",
    "Gauge",
    # Health
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "Histogram",
    # Logging
    "LogFormat",
    "LogLevel",
    "MetricsRegistry",
    # Security
    "RedactionError",
    "SecretRedactor",
    "SecurityError",
    "Timer",
    "bind_delivery",
    "bind_issue",
    "configure_logging",
    "get_metrics",
    "register_secrets",
]
