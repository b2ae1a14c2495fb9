"""Bundle membership tests and pure entry operations."""

import structlog

from ..constants import CODE_SYSTEM, VALUE_SET
from ..models.bundle import Bundle, BundleEntry
from ..models.resources import CanonicalResource, TerminologyResource
from ..utils.exceptions import DuplicateResourceError, IndexOutOfRangeError
from .identity import resource_identity, resource_key, same_resource

logger = structlog.get_logger(__name__)


def _contains(bundle: Bundle, candidate: CanonicalResource, resource_type: str) -> bool:
    if candidate.resource_type != resource_type or resource_identity(candidate) is None:
        return False
    return any(same_resource(entry.resource, candidate) for entry in bundle.entries)


def contains_value_set(bundle: Bundle, candidate: CanonicalResource) -> bool:
    """True iff the bundle holds a ValueSet with the candidate's identity."""
    return _contains(bundle, candidate, VALUE_SET)


def contains_code_system(bundle: Bundle, candidate: CanonicalResource) -> bool:
    """True iff the bundle holds a CodeSystem with the candidate's identity."""
    return _contains(bundle, candidate, CODE_SYSTEM)


def contains(bundle: Bundle, candidate: CanonicalResource) -> bool:
    """Membership test dispatching on the candidate's resourceType."""
    return _contains(bundle, candidate, candidate.resource_type)


def find_entry(
    bundle: Bundle, resource_type: str, canonical_url: str
) -> TerminologyResource | None:
    """
    Find an entry by type and canonical URL.

    Args:
        bundle: Bundle to search
        resource_type: VALUE_SET or CODE_SYSTEM
        canonical_url: Canonical URL without version suffix

    Returns:
        The matching resource, or None
    """
    for entry in bundle.entries:
        resource = entry.resource
        if resource.resource_type == resource_type and resource.url == canonical_url:
            return resource
    return None


def add_entry(bundle: Bundle, resource: TerminologyResource) -> Bundle:
    """
    Append a resource, returning a new bundle.

    Args:
        bundle: Current bundle (not modified)
        resource: ValueSet or CodeSystem to append

    Returns:
        New bundle with the resource as its last entry

    Raises:
        DuplicateResourceError: If the bundle already holds this resource
    """
    if contains(bundle, resource):
        raise DuplicateResourceError(resource.resource_type, str(resource_key(resource)))
    return bundle.with_entries([*bundle.entries, BundleEntry(resource=resource)])


def remove_entry(bundle: Bundle, index: int) -> Bundle:
    """
    Remove the entry at ``index``, returning a new bundle.

    Raises:
        IndexOutOfRangeError: If index is negative or past the end
    """
    if not 0 <= index < len(bundle.entries):
        raise IndexOutOfRangeError(index, len(bundle.entries))

    removed = bundle.entries[index].resource
    logger.debug("Removing bundle entry", index=index, resource=str(resource_key(removed)))
    return bundle.with_entries(bundle.entries[:index] + bundle.entries[index + 1 :])
