"""Canonical identity of terminology resources.

Two representations denote the same resource when they have the same
resourceType and the same identity, where identity is, in order of
preference:

1. ``url``                      -> ("url", url)
2. the first ``identifier``     -> ("identifier", system, value)
3. ``id``                       -> ("id", id)

A resource with none of these is anonymous: it has no identity and is never
considered equal to anything, so anonymous resources are never collapsed.
"""

from dataclasses import dataclass, field

from ..models.resources import CanonicalResource

Identity = tuple[str, ...]


def resource_identity(resource: CanonicalResource) -> Identity | None:
    """
    Compute the canonical identity of a resource.

    Args:
        resource: ValueSet or CodeSystem

    Returns:
        Identity tuple, or None for anonymous resources
    """
    if resource.url:
        return ("url", resource.url)
    if resource.identifier:
        first = resource.identifier[0]
        if first.system or first.value:
            return ("identifier", first.system or "", first.value or "")
    if resource.id:
        return ("id", resource.id)
    return None


def same_resource(left: CanonicalResource, right: CanonicalResource) -> bool:
    """True iff both resources have the same type and the same non-empty identity."""
    if left.resource_type != right.resource_type:
        return False
    identity = resource_identity(left)
    return identity is not None and identity == resource_identity(right)


@dataclass(frozen=True)
class ResourceKey:
    """Type plus identity, with a display string for outcomes and logs."""

    resource_type: str
    identity: Identity | None
    display: str = field(compare=False)

    def __str__(self) -> str:
        return f"{self.resource_type}/{self.display}"


def resource_key(resource: CanonicalResource) -> ResourceKey:
    """Build the ResourceKey of a resource."""
    first_value = resource.identifier[0].value if resource.identifier else None
    display = resource.id or resource.url or first_value or resource.label
    return ResourceKey(
        resource_type=resource.resource_type,
        identity=resource_identity(resource),
        display=display,
    )
