"""Custom exceptions for termbundle.

Exception Hierarchy:
-------------------
TerminologyBundleError (base)
├── FormatError
│   ├── UnsupportedFormatError          # Artifact matches no known media type or extension
│   ├── UnrecognizedResourceTypeError   # JSON document is not a ValueSet, CodeSystem or Bundle
│   ├── MalformedDocumentError          # Invalid JSON, corrupt ZIP archive
│   ├── MalformedRowError               # Concept-set CSV missing required columns or values
│   └── RequiredMemberMissingError      # Archive lacks the concept CSV member
├── ResolutionError
│   ├── UnknownDependencyTypeError      # Reference is neither a ValueSet nor a CodeSystem
│   └── DependencyNotFoundError         # Canonical reference has no match on the server
├── NetworkFailure (wraps transport failures)
│   ├── ResourceNotFoundError           # HTTP 404
│   └── FHIRServerError                 # Any other HTTP error, with parsed OperationOutcome
├── DuplicateResourceError              # add_entry called for a resource already present
├── IndexOutOfRangeError                # remove_entry called with an invalid index
└── ConfigurationError                  # Unknown server name, invalid configuration

Usage Guidelines:
----------------
1. Format and resolution errors are caught by the ingestion orchestrator at the
   smallest enclosing unit (one artifact, one resource) and turned into a
   rejected outcome. They never abort sibling units.

2. NetworkFailure keeps the server's reply in ``response`` when there was one,
   so callers can tell a partial rejection from a total transport failure.

3. DuplicateResourceError and IndexOutOfRangeError are programmer errors and
   are raised immediately.
"""

from typing import Any


class TerminologyBundleError(Exception):
    """Base exception for all termbundle errors."""

    pass


class FormatError(TerminologyBundleError):
    """Raised when an input artifact cannot be parsed."""

    def __init__(self, message: str, source: str | None = None) -> None:
        """
        Initialize FormatError.

        Args:
            message: Error message.
            source: Optional label of the artifact being parsed.
        """
        super().__init__(message)
        self.source = source


class UnsupportedFormatError(FormatError):
    """Raised when no adapter accepts an artifact."""

    def __init__(self, source: str, media_type: str | None = None) -> None:
        detail = f" (media type {media_type})" if media_type else ""
        super().__init__(f"Unsupported file format: {source}{detail}", source=source)
        self.media_type = media_type


class UnrecognizedResourceTypeError(FormatError):
    """Raised when a document is not a 'Bundle', 'ValueSet', or 'CodeSystem' resource."""

    def __init__(self, resource_type: str | None, source: str | None = None) -> None:
        found = f"'{resource_type}'" if resource_type else "no resourceType"
        super().__init__(
            f"Not a 'Bundle', 'ValueSet', or 'CodeSystem' resource (found {found})",
            source=source,
        )
        self.resource_type = resource_type


class MalformedDocumentError(FormatError):
    """Raised when a JSON document or archive cannot be decoded."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, source=source)
        self.original_error = original_error


class MalformedRowError(FormatError):
    """Raised when a concept-set CSV lacks required columns or values."""

    def __init__(
        self,
        message: str,
        line_number: int | None = None,
        source: str | None = None,
    ) -> None:
        """
        Initialize MalformedRowError.

        Args:
            message: Error message.
            line_number: Optional line number where the error occurred.
            source: Optional label of the CSV being parsed.
        """
        super().__init__(message, source=source)
        self.line_number = line_number

    def __str__(self) -> str:
        """
        Return string representation with line number if available.

        Returns:
            str: Error message prefixed with line number if set.
        """
        if self.line_number:
            return f"Line {self.line_number}: {self.args[0]}"
        return str(self.args[0]) if self.args else "Malformed row"


class RequiredMemberMissingError(FormatError):
    """Raised when an archive does not contain the required member file."""

    def __init__(self, member: str, source: str | None = None) -> None:
        super().__init__(f"'{member}' not found in ZIP file", source=source)
        self.member = member


class ResolutionError(TerminologyBundleError):
    """Base exception for dependency resolution failures."""

    pass


class UnknownDependencyTypeError(ResolutionError):
    """
    Raised when a value set references something that is neither a ValueSet
    nor a CodeSystem.

    Aborts dependency resolution for the referencing value set only. The value
    set itself is still added to the bundle.
    """

    def __init__(self, declared_type: str | None, reference: str) -> None:
        """
        Initialize UnknownDependencyTypeError.

        Args:
            declared_type: The resource type the reference declared or resolved to.
            reference: The raw reference string.
        """
        super().__init__(
            f"Unknown dependency type '{declared_type or 'unknown'}' for reference {reference}"
        )
        self.declared_type = declared_type
        self.reference = reference


class DependencyNotFoundError(ResolutionError):
    """Raised when a canonical reference has no match on the source server."""

    def __init__(self, resource_type: str, reference: str) -> None:
        super().__init__(f"{resource_type} not found on source server: {reference}")
        self.resource_type = resource_type
        self.reference = reference


class NetworkFailure(TerminologyBundleError):
    """
    Raised when a fetch or submit against a terminology server fails.

    Attributes:
        response: Parsed server reply, if the server answered at all.
    """

    def __init__(
        self,
        message: str,
        response: dict[str, Any] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.response = response
        self.original_error = original_error

    @property
    def has_response(self) -> bool:
        """True when the server replied (partial failure) rather than the transport failing."""
        return self.response is not None


class ResourceNotFoundError(NetworkFailure):
    """Raised when the server answers 404 for a resource lookup."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        """
        Initialize ResourceNotFoundError.

        Args:
            resource_type: Type of resource that wasn't found.
            identifier: Identifier used to look the resource up.
        """
        super().__init__(f"{resource_type} not found: {identifier}")
        self.resource_type = resource_type
        self.identifier = identifier


class FHIRServerError(NetworkFailure):
    """Raised for HTTP error responses other than 404."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict[str, Any] | None = None,
        issues: list[str] | None = None,
    ) -> None:
        """
        Initialize FHIRServerError.

        Args:
            message: Error message.
            status_code: Optional HTTP status code.
            response: Parsed JSON body, typically an OperationOutcome.
            issues: Human-readable issue messages extracted from the body.
        """
        super().__init__(message, response=response)
        self.status_code = status_code
        self.issues = issues or []


class DuplicateResourceError(TerminologyBundleError):
    """Raised when appending a resource whose identity is already in the bundle."""

    def __init__(self, resource_type: str, identity: str) -> None:
        super().__init__(f"{resource_type} already in bundle: {identity}")
        self.resource_type = resource_type
        self.identity = identity


class IndexOutOfRangeError(TerminologyBundleError, IndexError):
    """Raised when removing an entry with an invalid index."""

    def __init__(self, index: int, size: int) -> None:
        super().__init__(f"Bundle entry index {index} out of range (bundle has {size} entries)")
        self.index = index
        self.size = size


class ConfigurationError(TerminologyBundleError):
    """Raised for invalid or incomplete configuration."""

    pass
