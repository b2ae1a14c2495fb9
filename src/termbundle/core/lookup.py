"""Server-side lookups: search, expand, and add a value set by id."""

from typing import Any

import structlog

from ..constants import VALUE_SET
from ..fhir.connection import TerminologyConnection
from ..models.bundle import Bundle
from ..models.resources import ValueSet, parse_resource
from ..utils.exceptions import FormatError, UnrecognizedResourceTypeError
from .mutator import BundleMutator, MutationResult

logger = structlog.get_logger(__name__)


async def search_value_sets(
    connection: TerminologyConnection,
    url: str | None = None,
    name: str | None = None,
    identifier: str | None = None,
) -> list[ValueSet]:
    """
    Search value sets on ``connection``.

    Results that do not parse as ValueSets are skipped with a warning.

    Args:
        connection: Server to search
        url: Canonical URL
        name: Name (servers usually match it as a prefix)
        identifier: ``system|value`` or bare value

    Returns:
        Matching value sets in server order
    """
    documents = await connection.search_value_sets(url=url, name=name, identifier=identifier)

    value_sets: list[ValueSet] = []
    for document in documents:
        try:
            resource = parse_resource(document, source=connection.name)
        except FormatError as e:
            logger.warning("Skipping unparseable search result", error=str(e))
            continue
        if isinstance(resource, ValueSet):
            value_sets.append(resource)

    logger.debug(
        "Value set search complete",
        source=connection.name,
        url=url,
        name=name,
        identifier=identifier,
        results=len(value_sets),
    )
    return value_sets


async def expand_value_set(connection: TerminologyConnection, value_set_id: str) -> dict[str, Any]:
    """Run ``$expand`` and return the expanded ValueSet document."""
    return await connection.expand(value_set_id)


async def add_from_server(
    mutator: BundleMutator,
    connection: TerminologyConnection,
    bundle: Bundle,
    value_set_id: str,
) -> MutationResult:
    """
    Fetch a value set by id and add it with its dependencies.

    Args:
        mutator: Bundle mutator
        connection: Server holding the value set
        bundle: Current bundle
        value_set_id: Logical id on the server

    Returns:
        MutationResult of the add

    Raises:
        ResourceNotFoundError: If the server has no such value set
        UnrecognizedResourceTypeError: If the server returned something else
    """
    document = await connection.fetch_by_id(VALUE_SET, value_set_id)
    resource = parse_resource(document, source=connection.name)
    if not isinstance(resource, ValueSet):
        raise UnrecognizedResourceTypeError(resource.resource_type, source=connection.name)

    return await mutator.add_value_set(bundle, resource, connection)
