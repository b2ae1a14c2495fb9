"""Observability - Logging and metrics."""

from .logger import LogContext, clear_all_context, configure_logging
from .metrics import MetricsCollector

__all__ = [
    "MetricsCollector",
    "configure_logging",
    "clear_all_context",
    "LogContext",
]
