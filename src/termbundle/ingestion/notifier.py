"""User-facing notifications emitted during ingestion.

The orchestrator never prints or logs user messages itself; it calls the
notifier it was given. The CLI passes one that prints with rich, library
callers get ``log_notifier`` by default.
"""

from collections.abc import Callable
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


Notifier = Callable[[NotificationLevel, str], None]


def log_notifier(level: NotificationLevel, message: str) -> None:
    """Default notifier: forward to structlog at a matching level."""
    if level is NotificationLevel.ERROR:
        logger.error(message, notification=level.value)
    elif level is NotificationLevel.WARNING:
        logger.warning(message, notification=level.value)
    else:
        logger.info(message, notification=level.value)


class CollectingNotifier:
    """Notifier that keeps every message, in order."""

    def __init__(self) -> None:
        self.messages: list[tuple[NotificationLevel, str]] = []

    def __call__(self, level: NotificationLevel, message: str) -> None:
        self.messages.append((level, message))

    def at_level(self, level: NotificationLevel) -> list[str]:
        return [message for lvl, message in self.messages if lvl is level]
