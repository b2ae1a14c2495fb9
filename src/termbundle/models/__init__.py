"""Data models for termbundle."""

from .bundle import Bundle, BundleEntry
from .references import (
    CodeSystemReference,
    DependencyReference,
    UnknownReference,
    ValueSetReference,
    classify_reference,
)
from .resources import (
    CanonicalResource,
    CodeSystem,
    Compose,
    ConceptSetComponent,
    Identifier,
    TerminologyResource,
    ValueSet,
    parse_resource,
)
from .results import (
    IngestionOutcome,
    IngestionReport,
    OutcomeStatus,
    ResourceOutcome,
    SubmissionResult,
    SubmissionStatus,
)

__all__ = [
    # Resources
    "CanonicalResource",
    "ValueSet",
    "CodeSystem",
    "Compose",
    "ConceptSetComponent",
    "Identifier",
    "TerminologyResource",
    "parse_resource",
    # Bundle
    "Bundle",
    "BundleEntry",
    # References
    "DependencyReference",
    "ValueSetReference",
    "CodeSystemReference",
    "UnknownReference",
    "classify_reference",
    # Results
    "OutcomeStatus",
    "ResourceOutcome",
    "IngestionOutcome",
    "IngestionReport",
    "SubmissionStatus",
    "SubmissionResult",
]
