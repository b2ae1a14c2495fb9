"""JSON document adapters (single resources and composite bundles)."""

import json
from typing import Any

import structlog

from ..constants import BUNDLE, TERMINOLOGY_RESOURCE_TYPES
from ..models.resources import TerminologyResource, parse_resource
from ..utils.exceptions import FormatError, MalformedDocumentError, UnrecognizedResourceTypeError
from .base import (
    ArtifactFormat,
    DocumentKind,
    EntryFailure,
    FormatAdapter,
    ParsedArtifact,
    decode_text,
)

logger = structlog.get_logger(__name__)


def _entry_label(resource: dict[str, Any], index: int) -> str:
    for key in ("name", "title", "id", "url"):
        value = resource.get(key)
        if isinstance(value, str) and value:
            return value
    return f"Bundle.entry[{index}]"


class SingleResourceAdapter:
    """A JSON document that is itself a ValueSet or CodeSystem."""

    def parse_document(self, data: dict[str, Any], source: str) -> ParsedArtifact:
        return ParsedArtifact(
            kind=DocumentKind.SINGLE_RESOURCE,
            resources=[parse_resource(data, source=source)],
        )


class CompositeBundleAdapter:
    """
    A FHIR Bundle whose entries may hold ValueSets and CodeSystems.

    Entries of any other resource type are skipped. A bundle without entries
    is valid and yields nothing. A terminology entry that does not fit the
    resource model becomes an EntryFailure; its siblings are still returned.
    """

    def parse_document(self, data: dict[str, Any], source: str) -> ParsedArtifact:
        """
        Extract terminology resources from ``data["entry"]``.

        Args:
            data: Decoded Bundle document
            source: Artifact label

        Returns:
            ParsedArtifact in entry order

        Raises:
            MalformedDocumentError: If ``entry`` is not a list
        """
        entries = data.get("entry")
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise MalformedDocumentError("Bundle.entry must be a list", source=source)

        resources: list[TerminologyResource] = []
        failures: list[EntryFailure] = []
        skipped = 0

        for index, entry in enumerate(entries):
            resource = entry.get("resource") if isinstance(entry, dict) else None
            resource_type = resource.get("resourceType") if isinstance(resource, dict) else None

            if resource_type not in TERMINOLOGY_RESOURCE_TYPES:
                skipped += 1
                continue

            try:
                resources.append(parse_resource(resource, source=source))
            except FormatError as e:
                logger.warning("Invalid bundle entry", source=source, index=index, error=str(e))
                failures.append(
                    EntryFailure(
                        position=len(resources),
                        label=_entry_label(resource, index),
                        resource_type=resource_type,
                        error=MalformedDocumentError(
                            f"Bundle.entry[{index}]: {e}", source=source, original_error=e
                        ),
                    )
                )

        logger.debug(
            "Parsed composite bundle",
            source=source,
            entries=len(entries),
            resources=len(resources),
            skipped=skipped,
            failed=len(failures),
        )
        return ParsedArtifact(
            kind=DocumentKind.COMPOSITE_BUNDLE, resources=resources, failures=failures
        )


class JsonDocumentAdapter(FormatAdapter):
    """Dispatches a JSON artifact by its top-level ``resourceType``."""

    format = ArtifactFormat.JSON

    def __init__(self) -> None:
        self.single = SingleResourceAdapter()
        self.composite = CompositeBundleAdapter()

    def parse(self, content: bytes, source: str) -> ParsedArtifact:
        """
        Parse a JSON artifact.

        Raises:
            MalformedDocumentError: Invalid JSON, or not a JSON object
            UnrecognizedResourceTypeError: Missing or non-terminology resourceType
        """
        try:
            data = json.loads(decode_text(content, source))
        except json.JSONDecodeError as e:
            raise MalformedDocumentError(
                f"Invalid JSON: {e}", source=source, original_error=e
            ) from e

        if not isinstance(data, dict):
            raise MalformedDocumentError(
                f"Expected a JSON object, got {type(data).__name__}", source=source
            )

        resource_type = data.get("resourceType")
        if resource_type == BUNDLE:
            return self.composite.parse_document(data, source)
        if resource_type in TERMINOLOGY_RESOURCE_TYPES:
            return self.single.parse_document(data, source)

        raise UnrecognizedResourceTypeError(
            resource_type if isinstance(resource_type, str) else None, source=source
        )
