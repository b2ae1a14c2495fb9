"""Ingestion pipeline: artifacts in, bundle and outcomes out."""

from .artifacts import Artifact
from .notifier import CollectingNotifier, NotificationLevel, Notifier, log_notifier
from .orchestrator import IngestionOrchestrator

__all__ = [
    "Artifact",
    "IngestionOrchestrator",
    "NotificationLevel",
    "Notifier",
    "CollectingNotifier",
    "log_notifier",
]
