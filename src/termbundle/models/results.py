"""Result types for ingestion and submission."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .bundle import Bundle


class OutcomeStatus(str, Enum):
    """Settlement of one artifact or resource."""

    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class SubmissionStatus(str, Enum):
    """Outcome of a bundle submission."""

    ACCEPTED = "accepted"
    ACCEPTED_WITH_ISSUES = "accepted_with_issues"
    REJECTED = "rejected"


@dataclass
class ResourceOutcome:
    """
    Result of adding one resource taken from an expandable artifact.

    Attributes:
        label: Resource name (or id/url when unnamed)
        resource_type: ValueSet or CodeSystem
        status: fulfilled or rejected
        added_resource_ids: Keys of resources appended (resource first, then dependencies)
        error_detail: Error message if rejected, or the dependency failure if fulfilled
        error_type: Exception class name of error_detail
    """

    label: str
    resource_type: str
    status: OutcomeStatus
    added_resource_ids: list[str] = field(default_factory=list)
    error_detail: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "resource_type": self.resource_type,
            "status": self.status.value,
            "added_resource_ids": list(self.added_resource_ids),
            "error_detail": self.error_detail,
            "error_type": self.error_type,
        }


@dataclass
class IngestionOutcome:
    """
    Result of ingesting one top-level artifact.

    Attributes:
        source_label: Artifact name as given by the caller
        status: fulfilled or rejected
        format: Classified format (json/csv/zip), None if unsupported
        added_resource_ids: Every resource appended because of this artifact
        error_detail: Error message if rejected, or the dependency failure of a
            fulfilled single-resource artifact
        error_type: Exception class name of error_detail
        resources: Per-resource outcomes for composite bundles, CSV and ZIP artifacts
    """

    source_label: str
    status: OutcomeStatus
    format: str | None = None
    added_resource_ids: list[str] = field(default_factory=list)
    error_detail: str | None = None
    error_type: str | None = None
    resources: list[ResourceOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.FULFILLED

    @property
    def failed_resources(self) -> list[ResourceOutcome]:
        return [r for r in self.resources if r.status is OutcomeStatus.REJECTED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_label": self.source_label,
            "status": self.status.value,
            "format": self.format,
            "added_resource_ids": list(self.added_resource_ids),
            "error_detail": self.error_detail,
            "error_type": self.error_type,
            "resources": [r.to_dict() for r in self.resources],
        }


@dataclass
class IngestionReport:
    """
    Overall result of an ingestion run.

    Attributes:
        bundle: Bundle after every artifact was folded in
        outcomes: One outcome per artifact, in input order
        duration_seconds: Wall-clock duration of the run
    """

    bundle: Bundle
    outcomes: list[IngestionOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def added_count(self) -> int:
        return sum(len(o.added_resource_ids) for o in self.outcomes)

    @property
    def is_complete_success(self) -> bool:
        """
        Check if every artifact and every resource inside it succeeded.

        Returns:
            bool: True if nothing was rejected, False otherwise.
        """
        return all(o.succeeded and not o.failed_resources for o in self.outcomes)

    def get_summary(self) -> str:
        """
        Get a human-readable summary.

        Returns:
            str: Summary string with artifact counts and bundle size.
        """
        return (
            f"{self.succeeded}/{len(self.outcomes)} artifacts ingested, "
            f"{self.failed} rejected, {self.added_count} resources added "
            f"(bundle now has {len(self.bundle)} entries)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "artifacts": len(self.outcomes),
                "succeeded": self.succeeded,
                "failed": self.failed,
                "resources_added": self.added_count,
                "bundle_entries": len(self.bundle),
                "duration_seconds": round(self.duration_seconds, 3),
            },
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class SubmissionResult:
    """
    Result of submitting a bundle to a terminology server.

    Attributes:
        status: accepted, accepted_with_issues or rejected
        response: Decoded response body (kept for rejected submissions too)
        issues: Problems reported by the server, in entry order
        status_code: HTTP status of a rejected submission
    """

    status: SubmissionStatus
    response: dict[str, Any] | None = None
    issues: list[str] = field(default_factory=list)
    status_code: int | None = None

    @property
    def accepted(self) -> bool:
        return self.status is not SubmissionStatus.REJECTED
