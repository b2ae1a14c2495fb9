"""Pydantic models for FHIR terminology resources.

Only the fields the engine reads are modelled. Everything else is kept as
extra data (``extra="allow"``) so a document survives parse → bundle →
export without loss.

Serialization uses ``exclude_unset`` so that defaults introduced by the
models (empty ``identifier`` lists, empty ``valueSet`` lists) never leak into
exported documents.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..constants import CODE_SYSTEM, VALUE_SET
from ..utils.exceptions import MalformedDocumentError, UnrecognizedResourceTypeError


class FHIRModel(BaseModel):
    """Base model: unknown FHIR elements are preserved, fields accept their JSON names."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_fhir(self) -> dict[str, Any]:
        """Serialize to the FHIR JSON representation."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class Identifier(FHIRModel):
    """FHIR Identifier (system + value)."""

    system: str | None = None
    value: str | None = None


class ConceptSetComponent(FHIRModel):
    """
    One ``compose.include`` / ``compose.exclude`` rule.

    ``system`` references a code system, ``valueSet`` references other value
    sets. ``concept`` and ``filter`` stay opaque.
    """

    system: str | None = None
    version: str | None = None
    value_set: list[str] = Field(default_factory=list, alias="valueSet")


class Compose(FHIRModel):
    """ValueSet.compose."""

    include: list[ConceptSetComponent] = Field(default_factory=list)
    exclude: list[ConceptSetComponent] = Field(default_factory=list)


class CanonicalResource(FHIRModel):
    """Fields shared by ValueSet and CodeSystem."""

    resource_type: str = Field(alias="resourceType")
    id: str | None = None
    url: str | None = None
    identifier: list[Identifier] = Field(default_factory=list)
    name: str | None = None
    title: str | None = None
    version: str | None = None
    publisher: str | None = None
    status: str | None = None

    @property
    def label(self) -> str:
        """Human-readable name used in outcomes and notifications."""
        return self.name or self.title or self.id or self.url or "(unnamed)"

    def to_fhir(self) -> dict[str, Any]:
        """Serialize with ``resourceType`` first, as FHIR documents are usually written."""
        data = super().to_fhir()
        data.pop("resourceType", None)
        return {"resourceType": self.resource_type, **data}


class ValueSet(CanonicalResource):
    """FHIR ValueSet."""

    resource_type: Literal["ValueSet"] = Field(default="ValueSet", alias="resourceType")
    compose: Compose | None = None


class CodeSystem(CanonicalResource):
    """FHIR CodeSystem. A terminal node in the dependency graph."""

    resource_type: Literal["CodeSystem"] = Field(default="CodeSystem", alias="resourceType")
    content: str | None = None


TerminologyResource = ValueSet | CodeSystem

RESOURCE_MODELS: dict[str, type[CanonicalResource]] = {
    VALUE_SET: ValueSet,
    CODE_SYSTEM: CodeSystem,
}


def format_validation_error(error: ValidationError) -> str:
    """
    Format Pydantic validation error into human-readable message.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message
    """
    errors = error.errors()
    if not errors:
        return str(error)

    first_error = errors[0]
    field = ".".join(str(loc) for loc in first_error["loc"])
    msg = first_error["msg"]

    if len(errors) > 1:
        return f"{field}: {msg} (and {len(errors) - 1} more errors)"
    return f"{field}: {msg}"


def parse_resource(data: Any, source: str | None = None) -> TerminologyResource:
    """
    Convert a JSON object into a ValueSet or CodeSystem model.

    Args:
        data: Decoded JSON document
        source: Optional artifact label for error messages

    Returns:
        ValueSet or CodeSystem instance

    Raises:
        UnrecognizedResourceTypeError: If resourceType is missing or not terminology
        MalformedDocumentError: If the document does not fit the model
    """
    if not isinstance(data, dict):
        raise MalformedDocumentError(
            f"Expected a JSON object, got {type(data).__name__}", source=source
        )

    resource_type = data.get("resourceType")
    model = RESOURCE_MODELS.get(resource_type) if isinstance(resource_type, str) else None
    if model is None:
        raise UnrecognizedResourceTypeError(
            resource_type if isinstance(resource_type, str) else None, source=source
        )

    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise MalformedDocumentError(
            f"Invalid {resource_type}: {format_validation_error(e)}",
            source=source,
            original_error=e,
        ) from e
