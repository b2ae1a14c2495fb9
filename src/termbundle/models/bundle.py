"""Immutable bundle value.

A Bundle is never modified in place. Every mutation in ``core.store`` returns
a new Bundle built with ``with_entries``; callers keep the old and the new
version side by side.
"""

from typing import Any, Literal

from pydantic import ConfigDict, Field, ValidationError

from ..utils.exceptions import MalformedDocumentError
from .resources import CodeSystem, FHIRModel, ValueSet, format_validation_error


class BundleEntry(FHIRModel):
    """One bundle entry wrapping a ValueSet or CodeSystem."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    resource: ValueSet | CodeSystem

    def to_fhir(self) -> dict[str, Any]:
        extra = self.model_dump(
            by_alias=True, exclude_unset=True, exclude={"resource"}, mode="json"
        )
        return {**extra, "resource": self.resource.to_fhir()}


class Bundle(FHIRModel):
    """Ordered collection of terminology entries."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    resource_type: Literal["Bundle"] = Field(default="Bundle", alias="resourceType")
    type: str = "collection"
    entries: tuple[BundleEntry, ...] = Field(default=(), alias="entry")

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def resources(self) -> list[ValueSet | CodeSystem]:
        return [entry.resource for entry in self.entries]

    def with_entries(self, entries: list[BundleEntry] | tuple[BundleEntry, ...]) -> "Bundle":
        """Return a new version of this bundle holding ``entries``."""
        return self.model_copy(update={"entries": tuple(entries)})

    def to_fhir(self) -> dict[str, Any]:
        """Serialize to a FHIR Bundle document."""
        extra = self.model_dump(
            by_alias=True,
            exclude_unset=True,
            exclude={"resource_type", "type", "entries"},
            mode="json",
        )
        return {
            "resourceType": "Bundle",
            "type": self.type,
            **extra,
            "entry": [entry.to_fhir() for entry in self.entries],
        }

    @classmethod
    def from_fhir(cls, data: Any, source: str | None = None) -> "Bundle":
        """
        Load a previously exported terminology bundle.

        Args:
            data: Decoded JSON document
            source: Optional label for error messages

        Raises:
            MalformedDocumentError: If the document is not a terminology bundle
        """
        if not isinstance(data, dict) or data.get("resourceType") != "Bundle":
            raise MalformedDocumentError("Not a FHIR Bundle document", source=source)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedDocumentError(
                f"Invalid terminology bundle: {format_validation_error(e)}",
                source=source,
                original_error=e,
            ) from e
