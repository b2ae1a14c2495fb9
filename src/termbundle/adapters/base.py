"""Artifact classification and the adapter interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath

from ..constants import (
    CSV_EXTENSIONS,
    CSV_MEDIA_TYPES,
    JSON_EXTENSIONS,
    JSON_MEDIA_TYPES,
    ZIP_EXTENSIONS,
    ZIP_MEDIA_TYPES,
)
from ..models.resources import TerminologyResource
from ..utils.exceptions import FormatError, MalformedDocumentError, UnsupportedFormatError


class ArtifactFormat(str, Enum):
    """Input formats accepted by the ingestion pipeline."""

    JSON = "json"
    CSV = "csv"
    ZIP = "zip"


class DocumentKind(str, Enum):
    """
    Shape of a parsed artifact.

    SINGLE_RESOURCE artifacts succeed or fail as a whole. The other kinds are
    expandable: each resource inside gets its own outcome.
    """

    SINGLE_RESOURCE = "single_resource"
    COMPOSITE_BUNDLE = "composite_bundle"
    TABULAR = "tabular"
    ARCHIVE = "archive"

    @property
    def expandable(self) -> bool:
        return self is not DocumentKind.SINGLE_RESOURCE


@dataclass
class EntryFailure:
    """
    One entry of an expandable artifact that could not become a resource.

    Attributes:
        position: Number of resources parsed before this entry; places the
            failure among the resource outcomes
        label: Name, title or id of the entry, else its location
        resource_type: Declared resourceType of the entry
        error: Why the entry was refused
    """

    position: int
    label: str
    resource_type: str
    error: FormatError


@dataclass
class ParsedArtifact:
    """Resources produced from one artifact, in document order."""

    kind: DocumentKind
    resources: list[TerminologyResource] = field(default_factory=list)
    failures: list[EntryFailure] = field(default_factory=list)


def _normalize_media_type(media_type: str | None) -> str | None:
    """Strip parameters ("; charset=utf-8") and case."""
    if not media_type:
        return None
    return media_type.split(";", 1)[0].strip().lower() or None


def classify_artifact(name: str, media_type: str | None = None) -> ArtifactFormat:
    """
    Classify an artifact by declared media type, then by file extension.

    Args:
        name: File name (only its suffix is used)
        media_type: Declared media type, if any

    Returns:
        The artifact format

    Raises:
        UnsupportedFormatError: If neither media type nor extension is recognized
    """
    declared = _normalize_media_type(media_type)
    if declared in ZIP_MEDIA_TYPES:
        return ArtifactFormat.ZIP
    if declared in CSV_MEDIA_TYPES:
        return ArtifactFormat.CSV
    if declared in JSON_MEDIA_TYPES:
        return ArtifactFormat.JSON

    suffix = PurePath(name).suffix.lower()
    if suffix in ZIP_EXTENSIONS:
        return ArtifactFormat.ZIP
    if suffix in CSV_EXTENSIONS:
        return ArtifactFormat.CSV
    if suffix in JSON_EXTENSIONS:
        return ArtifactFormat.JSON

    raise UnsupportedFormatError(name, media_type)


class FormatAdapter(ABC):
    """Turns the raw bytes of one artifact into terminology resources."""

    format: ArtifactFormat

    @abstractmethod
    def parse(self, content: bytes, source: str) -> ParsedArtifact:
        """
        Parse an artifact.

        Args:
            content: Raw artifact bytes
            source: Artifact label used in errors and logs

        Returns:
            ParsedArtifact

        Raises:
            FormatError: If the artifact cannot be parsed
        """
        ...


def decode_text(content: bytes, source: str) -> str:
    """Decode UTF-8 text, tolerating a byte order mark."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(
            f"File is not valid UTF-8: {e}", source=source, original_error=e
        ) from e
