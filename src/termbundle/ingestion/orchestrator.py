"""Ingestion orchestrator: many artifacts in, one bundle out.

Execution Flow:
--------------
1. Classify every artifact. Unsupported ones are rejected before any adapter
   runs, and the notifier receives a single warning listing them.
2. Prepare all supported artifacts concurrently: read, parse, then prepare
   every resource concurrently against the starting bundle (dependency
   resolution happens here). ``IngestConfig.max_concurrency`` bounds both the
   artifacts in flight and the resource preparations in flight across the run.
3. Fold sequentially, in artifact-then-resource order, through
   ``BundleMutator.apply``. The bundle is only ever touched by this loop.

Failure Isolation:
-----------------
- An artifact that cannot be read, classified or parsed is rejected; the
  others are unaffected.
- Inside expandable artifacts (composite bundles, CSV, ZIP) each resource has
  its own outcome; the artifact itself is fulfilled. A bundle entry that does
  not parse is a rejected resource outcome, not a rejected artifact.
- A single-resource artifact is rejected when its only resource fails.
- Dependency resolution failures never reject a value set: it is added and
  the failure is reported next to it.
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from ..adapters import (
    ArtifactFormat,
    DocumentKind,
    EntryFailure,
    FormatAdapter,
    build_adapters,
    classify_artifact,
)
from ..config import IngestConfig
from ..constants import VALUE_SET
from ..core.mutator import BundleMutator, PreparedAddition
from ..fhir.connection import TerminologyConnection
from ..models.bundle import Bundle
from ..models.resources import TerminologyResource
from ..models.results import IngestionOutcome, IngestionReport, OutcomeStatus, ResourceOutcome
from ..observability.logger import LogContext
from ..observability.metrics import MetricsCollector
from ..utils.exceptions import UnsupportedFormatError
from .artifacts import Artifact
from .notifier import NotificationLevel, Notifier, log_notifier

logger = structlog.get_logger(__name__)


@dataclass
class _PreparedArtifact:
    """Parsed artifact with one preparation result per resource."""

    format: ArtifactFormat
    kind: DocumentKind
    resources: list[TerminologyResource] = field(default_factory=list)
    items: list[PreparedAddition | BaseException] = field(default_factory=list)
    failures: list[EntryFailure] = field(default_factory=list)


def describe_error(error: BaseException) -> str:
    if isinstance(error, asyncio.CancelledError):
        return "Cancelled"
    return str(error) or type(error).__name__


class IngestionOrchestrator:
    """
    Ingest a batch of artifacts into a bundle.

    Holds no bundle state: ``ingest`` takes the starting bundle and returns
    the final one inside the report.
    """

    def __init__(
        self,
        mutator: BundleMutator | None = None,
        notifier: Notifier | None = None,
        config: IngestConfig | None = None,
        collector: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            mutator: Bundle mutator (a default one resolves transitively)
            notifier: Callback receiving user-facing messages
            config: Ingestion settings (archive member, concurrency)
            collector: Metrics collector for artifact and resource counters
        """
        self.mutator = mutator or BundleMutator()
        self.notifier = notifier or log_notifier
        self.config = config or IngestConfig()
        self.collector = collector or MetricsCollector()
        self.adapters: dict[ArtifactFormat, FormatAdapter] = build_adapters(self.config)

    async def ingest(
        self,
        artifacts: Sequence[Artifact],
        bundle: Bundle,
        connection: TerminologyConnection | None = None,
    ) -> IngestionReport:
        """
        Ingest artifacts into ``bundle``.

        Args:
            artifacts: Inputs, in the order their resources should be folded
            bundle: Starting bundle (not modified)
            connection: Source server for dependency resolution; None disables it

        Returns:
            IngestionReport with the final bundle and one outcome per artifact
        """
        started = time.monotonic()
        logger.info(
            "Ingestion started",
            artifacts=len(artifacts),
            bundle_entries=len(bundle),
            source=connection.name if connection else None,
        )

        formats: list[ArtifactFormat | UnsupportedFormatError] = []
        for artifact in artifacts:
            try:
                formats.append(classify_artifact(artifact.name, artifact.media_type))
            except UnsupportedFormatError as e:
                formats.append(e)

        unsupported = [
            a.name for a, f in zip(artifacts, formats, strict=True) if isinstance(f, Exception)
        ]
        if unsupported:
            logger.warning("Unsupported files skipped", files=unsupported)
            self.notifier(
                NotificationLevel.WARNING,
                "The following files are not supported: " + ", ".join(unsupported),
            )

        artifact_slots = asyncio.Semaphore(max(1, self.config.max_concurrency))
        # Shared by every resource of every artifact in this run
        resource_slots = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def prepare(artifact: Artifact, artifact_format: ArtifactFormat) -> _PreparedArtifact:
            async with artifact_slots:
                return await self._prepare_artifact(
                    artifact, artifact_format, bundle, connection, resource_slots
                )

        supported = [
            (index, artifact, artifact_format)
            for index, (artifact, artifact_format) in enumerate(zip(artifacts, formats, strict=True))
            if isinstance(artifact_format, ArtifactFormat)
        ]
        results = await asyncio.gather(
            *(prepare(artifact, artifact_format) for _, artifact, artifact_format in supported),
            return_exceptions=True,
        )
        prepared_by_index = {
            index: result for (index, _, _), result in zip(supported, results, strict=True)
        }

        outcomes: list[IngestionOutcome] = []
        current = bundle
        for index, (artifact, artifact_format) in enumerate(zip(artifacts, formats, strict=True)):
            if isinstance(artifact_format, UnsupportedFormatError):
                outcome = self._reject(artifact, None, artifact_format, notify=False)
            else:
                prepared = prepared_by_index[index]
                if isinstance(prepared, BaseException):
                    outcome = self._reject(artifact, artifact_format, prepared)
                else:
                    current, outcome = self._fold(current, artifact, prepared)

            self.collector.count_artifact(outcome.format or "unsupported", outcome.status.value)
            outcomes.append(outcome)

        report = IngestionReport(
            bundle=current, outcomes=outcomes, duration_seconds=time.monotonic() - started
        )
        logger.info(
            "Ingestion complete",
            succeeded=report.succeeded,
            failed=report.failed,
            added=report.added_count,
            bundle_entries=len(current),
            duration_seconds=round(report.duration_seconds, 3),
        )
        return report

    async def _prepare_artifact(
        self,
        artifact: Artifact,
        artifact_format: ArtifactFormat,
        bundle: Bundle,
        connection: TerminologyConnection | None,
        resource_slots: asyncio.Semaphore,
    ) -> _PreparedArtifact:
        """Read, parse and prepare every resource of one artifact."""
        with LogContext(artifact=artifact.name):
            content = await artifact.read()
            adapter = self.adapters[artifact_format]
            parsed = await asyncio.to_thread(adapter.parse, content, artifact.name)
            logger.debug(
                "Artifact parsed",
                format=artifact_format.value,
                kind=parsed.kind.value,
                resources=len(parsed.resources),
            )

            async def prepare_resource(resource: TerminologyResource) -> PreparedAddition:
                async with resource_slots:
                    return await self.mutator.prepare(bundle, resource, connection)

            items = await asyncio.gather(
                *(prepare_resource(r) for r in parsed.resources),
                return_exceptions=True,
            )
            return _PreparedArtifact(
                format=artifact_format,
                kind=parsed.kind,
                resources=parsed.resources,
                items=list(items),
                failures=parsed.failures,
            )

    def _fold(
        self, bundle: Bundle, artifact: Artifact, prepared: _PreparedArtifact
    ) -> tuple[Bundle, IngestionOutcome]:
        """Apply one artifact's prepared additions in resource order."""
        resource_outcomes: list[ResourceOutcome] = []
        failures = sorted(prepared.failures, key=lambda f: f.position)

        for position, (resource, item) in enumerate(
            zip(prepared.resources, prepared.items, strict=True)
        ):
            while failures and failures[0].position <= position:
                resource_outcomes.append(self._reject_entry(failures.pop(0)))
            bundle, resource_outcome = self._fold_resource(bundle, resource, item)
            resource_outcomes.append(resource_outcome)

        resource_outcomes.extend(self._reject_entry(f) for f in failures)

        added = [rid for r in resource_outcomes for rid in r.added_resource_ids]

        if not prepared.kind.expandable:
            single = resource_outcomes[0]
            outcome = IngestionOutcome(
                source_label=artifact.name,
                status=single.status,
                format=prepared.format.value,
                added_resource_ids=added,
                error_detail=single.error_detail,
                error_type=single.error_type,
            )
        else:
            outcome = IngestionOutcome(
                source_label=artifact.name,
                status=OutcomeStatus.FULFILLED,
                format=prepared.format.value,
                added_resource_ids=added,
                resources=resource_outcomes,
            )

        logger.info(
            "Artifact ingested",
            artifact=artifact.name,
            status=outcome.status.value,
            resources=len(resource_outcomes),
            added=len(added),
        )
        return bundle, outcome

    def _fold_resource(
        self,
        bundle: Bundle,
        resource: TerminologyResource,
        item: PreparedAddition | BaseException,
    ) -> tuple[Bundle, ResourceOutcome]:
        label = resource.label

        if isinstance(item, BaseException):
            detail = describe_error(item)
            logger.warning(
                "Resource preparation failed",
                resource=label,
                error=detail,
                error_type=type(item).__name__,
            )
            self.notifier(NotificationLevel.ERROR, f"Failed to import {label}: {detail}.")
            self.collector.count_resource(resource.resource_type, OutcomeStatus.REJECTED.value)
            return bundle, ResourceOutcome(
                label=label,
                resource_type=resource.resource_type,
                status=OutcomeStatus.REJECTED,
                error_detail=detail,
                error_type=type(item).__name__,
            )

        result = self.mutator.apply(bundle, item)
        outcome = ResourceOutcome(
            label=label,
            resource_type=resource.resource_type,
            status=OutcomeStatus.FULFILLED,
            added_resource_ids=[str(key) for key in result.added],
        )

        if resource.resource_type == VALUE_SET:
            self.notifier(NotificationLevel.SUCCESS, f'Successfully imported value set "{label}"')
            self.collector.count_dependencies(max(0, len(result.added) - 1))

        if result.dependency_error is not None:
            outcome.error_detail = describe_error(result.dependency_error)
            outcome.error_type = type(result.dependency_error).__name__
            self.notifier(
                NotificationLevel.ERROR,
                f'Failed to resolve dependencies of "{label}": {outcome.error_detail}.',
            )

        self.collector.count_resource(resource.resource_type, OutcomeStatus.FULFILLED.value)
        return result.bundle, outcome

    def _reject_entry(self, failure: EntryFailure) -> ResourceOutcome:
        """Outcome for an entry the adapter could not turn into a resource."""
        detail = describe_error(failure.error)
        self.notifier(NotificationLevel.ERROR, f"Failed to import {failure.label}: {detail}.")
        self.collector.count_resource(failure.resource_type, OutcomeStatus.REJECTED.value)
        return ResourceOutcome(
            label=failure.label,
            resource_type=failure.resource_type,
            status=OutcomeStatus.REJECTED,
            error_detail=detail,
            error_type=type(failure.error).__name__,
        )

    def _reject(
        self,
        artifact: Artifact,
        artifact_format: ArtifactFormat | None,
        error: BaseException,
        notify: bool = True,
    ) -> IngestionOutcome:
        detail = describe_error(error)
        logger.warning(
            "Artifact rejected",
            artifact=artifact.name,
            error=detail,
            error_type=type(error).__name__,
        )
        if notify:
            self.notifier(NotificationLevel.ERROR, f"Failed to import {artifact.name}: {detail}.")
        return IngestionOutcome(
            source_label=artifact.name,
            status=OutcomeStatus.REJECTED,
            format=artifact_format.value if artifact_format else None,
            error_detail=detail,
            error_type=type(error).__name__,
        )
