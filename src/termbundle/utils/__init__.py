"""Utility functions and exceptions."""

from .exceptions import (
    ConfigurationError,
    DependencyNotFoundError,
    DuplicateResourceError,
    FHIRServerError,
    FormatError,
    IndexOutOfRangeError,
    MalformedDocumentError,
    MalformedRowError,
    NetworkFailure,
    RequiredMemberMissingError,
    ResolutionError,
    ResourceNotFoundError,
    TerminologyBundleError,
    UnknownDependencyTypeError,
    UnrecognizedResourceTypeError,
    UnsupportedFormatError,
)

__all__ = [
    "TerminologyBundleError",
    "FormatError",
    "UnsupportedFormatError",
    "UnrecognizedResourceTypeError",
    "MalformedDocumentError",
    "MalformedRowError",
    "RequiredMemberMissingError",
    "ResolutionError",
    "UnknownDependencyTypeError",
    "DependencyNotFoundError",
    "NetworkFailure",
    "ResourceNotFoundError",
    "FHIRServerError",
    "DuplicateResourceError",
    "IndexOutOfRangeError",
    "ConfigurationError",
]
