"""Format adapters: turn input artifacts into terminology resources."""

from ..config import IngestConfig
from .archive import ArchiveAdapter
from .base import (
    ArtifactFormat,
    DocumentKind,
    EntryFailure,
    FormatAdapter,
    ParsedArtifact,
    classify_artifact,
)
from .documents import CompositeBundleAdapter, JsonDocumentAdapter, SingleResourceAdapter
from .tabular import ConceptSetCsvAdapter, ConceptSetRow


def build_adapters(config: IngestConfig | None = None) -> dict[ArtifactFormat, FormatAdapter]:
    """Adapter registry keyed by artifact format."""
    config = config or IngestConfig()
    csv_adapter = ConceptSetCsvAdapter()
    return {
        ArtifactFormat.JSON: JsonDocumentAdapter(),
        ArtifactFormat.CSV: csv_adapter,
        ArtifactFormat.ZIP: ArchiveAdapter(member=config.archive_member, csv_adapter=csv_adapter),
    }


__all__ = [
    "ArtifactFormat",
    "DocumentKind",
    "EntryFailure",
    "FormatAdapter",
    "ParsedArtifact",
    "classify_artifact",
    "build_adapters",
    "SingleResourceAdapter",
    "CompositeBundleAdapter",
    "JsonDocumentAdapter",
    "ConceptSetCsvAdapter",
    "ConceptSetRow",
    "ArchiveAdapter",
]
