"""Dependency references extracted from ValueSet.compose.

A reference is classified exactly once, when it is extracted, into one of
three variants. Consumers dispatch over the variants exhaustively; the
``UnknownReference`` variant is how an unsupported dependency kind reaches
the resolver, which turns it into ``UnknownDependencyTypeError``.

Reference shapes:
- Canonical URL, optionally versioned: ``http://loinc.org``,
  ``http://cts.nlm.nih.gov/fhir/ValueSet/2.16.840.1.113883.3.464|20210220``
- Literal reference: ``ValueSet/abc``, ``CodeSystem/xyz`` (typed by prefix)
"""

import re
from dataclasses import dataclass

from ..constants import CODE_SYSTEM, VALUE_SET

LITERAL_REFERENCE = re.compile(r"^([A-Z][A-Za-z]+)/([A-Za-z0-9\-.]{1,64})$")


@dataclass(frozen=True)
class ValueSetReference:
    """Reference to a ValueSet by canonical URL or literal id."""

    raw: str
    canonical: str | None = None
    version: str | None = None
    resource_id: str | None = None

    resource_type = VALUE_SET


@dataclass(frozen=True)
class CodeSystemReference:
    """Reference to a CodeSystem by canonical URL or literal id."""

    raw: str
    canonical: str | None = None
    version: str | None = None
    resource_id: str | None = None

    resource_type = CODE_SYSTEM


@dataclass(frozen=True)
class UnknownReference:
    """Reference whose declared type is neither ValueSet nor CodeSystem."""

    raw: str
    declared_type: str | None = None


DependencyReference = ValueSetReference | CodeSystemReference | UnknownReference


def split_canonical(value: str) -> tuple[str, str | None]:
    """
    Split a versioned canonical (``url|version``) into its parts.

    Args:
        value: Canonical reference

    Returns:
        Tuple of (url, version or None)
    """
    url, _, version = value.partition("|")
    return url, version or None


def classify_reference(raw: str, default_type: str) -> DependencyReference:
    """
    Classify one reference string.

    Literal references are typed by their prefix; canonical URLs take the type
    of the compose field they were found in.

    Args:
        raw: Reference as written in the value set
        default_type: VALUE_SET for ``valueSet[]`` items, CODE_SYSTEM for ``system``

    Returns:
        The matching reference variant
    """
    value = raw.strip()
    literal = LITERAL_REFERENCE.match(value)
    if literal:
        declared_type, resource_id = literal.groups()
        if declared_type == VALUE_SET:
            return ValueSetReference(raw=value, resource_id=resource_id)
        if declared_type == CODE_SYSTEM:
            return CodeSystemReference(raw=value, resource_id=resource_id)
        return UnknownReference(raw=value, declared_type=declared_type)

    url, version = split_canonical(value)
    if default_type == VALUE_SET:
        return ValueSetReference(raw=value, canonical=url, version=version)
    if default_type == CODE_SYSTEM:
        return CodeSystemReference(raw=value, canonical=url, version=version)
    return UnknownReference(raw=value, declared_type=default_type)
