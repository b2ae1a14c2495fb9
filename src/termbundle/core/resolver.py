"""Value set dependency resolver.

Given a value set and the connection it came from, returns every resource it
references (code systems through ``compose.*.system``, value sets through
``compose.*.valueSet``) that is not already in the bundle.

Resolution Contract:
-------------------
1. References are extracted once and classified into ValueSetReference,
   CodeSystemReference or UnknownReference.
2. An UnknownReference aborts the whole resolution with
   UnknownDependencyTypeError. Nothing is fetched for that level.
3. References already satisfied by a bundle entry with the same canonical URL
   are skipped without a round trip.
4. The remaining references of one level are fetched concurrently. If any
   fetch fails, the whole call fails; callers never see a partial
   dependency set.
5. Fetched resources already in the bundle (by identity) are dropped, as are
   duplicates discovered twice in the same call.
6. With ``transitive`` enabled, value sets discovered at one level are
   resolved at the next, breadth-first, until nothing new is found. Reference
   and identity tracking make cycles terminate.

The bundle is only read. It is the state the caller had when the add started.
"""

import asyncio
import dataclasses
from typing import Any

import structlog

from ..config import ResolverConfig
from ..constants import CODE_SYSTEM, TERMINOLOGY_RESOURCE_TYPES, VALUE_SET
from ..fhir.connection import TerminologyConnection
from ..models.bundle import Bundle
from ..models.references import (
    CodeSystemReference,
    DependencyReference,
    UnknownReference,
    ValueSetReference,
    classify_reference,
)
from ..models.resources import TerminologyResource, ValueSet, parse_resource
from ..utils.exceptions import (
    DependencyNotFoundError,
    NetworkFailure,
    TerminologyBundleError,
    UnknownDependencyTypeError,
)
from .identity import ResourceKey, resource_key
from .store import contains, find_entry

logger = structlog.get_logger(__name__)

KnownReference = ValueSetReference | CodeSystemReference


def extract_references(value_set: ValueSet) -> list[DependencyReference]:
    """
    Extract every dependency reference from a value set's composition.

    Args:
        value_set: Value set to inspect

    Returns:
        References in discovery order, without duplicates
    """
    if value_set.compose is None:
        return []

    references: list[DependencyReference] = []
    seen: set[DependencyReference] = set()

    def add(reference: DependencyReference) -> None:
        if reference not in seen:
            seen.add(reference)
            references.append(reference)

    for component in [*value_set.compose.include, *value_set.compose.exclude]:
        if component.system:
            reference = classify_reference(component.system, CODE_SYSTEM)
            # include.version pins the code system version when the URL does not
            if (
                isinstance(reference, CodeSystemReference)
                and reference.canonical
                and component.version
                and not reference.version
            ):
                reference = dataclasses.replace(reference, version=component.version)
            add(reference)

        for value_set_ref in component.value_set:
            add(classify_reference(value_set_ref, VALUE_SET))

    return references


class DependencyResolver:
    """
    Discover the not-yet-present dependencies of a value set.

    Stateless between calls; one instance can serve concurrent resolutions.
    """

    def __init__(self, config: ResolverConfig | None = None) -> None:
        """
        Initialize resolver.

        Args:
            config: Resolution settings (transitive closure, fetch concurrency)
        """
        self.config = config or ResolverConfig()

    async def resolve(
        self,
        connection: TerminologyConnection,
        value_set: ValueSet,
        bundle: Bundle,
    ) -> list[TerminologyResource]:
        """
        Resolve the missing dependencies of ``value_set``.

        Args:
            connection: Server the value set came from
            value_set: Value set being added
            bundle: Bundle state at the start of the add

        Returns:
            Missing resources in discovery order

        Raises:
            UnknownDependencyTypeError: A reference is neither ValueSet nor CodeSystem
            DependencyNotFoundError: A canonical reference has no match on the server
            NetworkFailure: Any fetch failed or was cancelled
        """
        discovered: list[TerminologyResource] = []
        seen_references: set[KnownReference] = set()
        known_keys: set[ResourceKey] = set()

        own_key = resource_key(value_set)
        if own_key.identity is not None:
            known_keys.add(own_key)

        frontier = extract_references(value_set)
        depth = 0

        while frontier:
            depth += 1
            pending = self._select_pending(frontier, bundle, seen_references, known_keys)
            fetched = await self._fetch_all(connection, pending)

            next_frontier: list[DependencyReference] = []
            for reference, resource in zip(pending, fetched, strict=True):
                key = resource_key(resource)
                if contains(bundle, resource) or key in known_keys:
                    logger.debug(
                        "Dependency already present", reference=reference.raw, resource=str(key)
                    )
                    continue

                if key.identity is not None:
                    known_keys.add(key)
                discovered.append(resource)
                logger.debug(
                    "Discovered dependency",
                    reference=reference.raw,
                    resource=str(key),
                    depth=depth,
                )

                if self.config.transitive and isinstance(resource, ValueSet):
                    next_frontier.extend(extract_references(resource))

            frontier = next_frontier

        logger.debug(
            "Dependency resolution complete",
            value_set=str(own_key),
            discovered=len(discovered),
            depth=depth,
            source=connection.name,
        )
        return discovered

    def _select_pending(
        self,
        frontier: list[DependencyReference],
        bundle: Bundle,
        seen_references: set[KnownReference],
        known_keys: set[ResourceKey],
    ) -> list[KnownReference]:
        """Classify one level of references and keep the ones that need a fetch."""
        pending: list[KnownReference] = []

        for reference in frontier:
            if isinstance(reference, UnknownReference):
                logger.warning(
                    "Unknown dependency type",
                    reference=reference.raw,
                    declared_type=reference.declared_type,
                )
                raise UnknownDependencyTypeError(reference.declared_type, reference.raw)

            if reference in seen_references:
                continue
            seen_references.add(reference)

            if reference.canonical:
                url_key = ResourceKey(reference.resource_type, ("url", reference.canonical), "")
                if url_key in known_keys or find_entry(
                    bundle, reference.resource_type, reference.canonical
                ):
                    logger.debug("Reference already satisfied", reference=reference.raw)
                    continue

            pending.append(reference)

        return pending

    async def _fetch_all(
        self,
        connection: TerminologyConnection,
        references: list[KnownReference],
    ) -> list[TerminologyResource]:
        """
        Fetch references concurrently.

        Every fetch settles before the first failure is raised, so no request is
        left running after the resolution has failed.
        """
        if not references:
            return []

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def fetch(reference: KnownReference) -> TerminologyResource:
            async with semaphore:
                return await self._fetch(connection, reference)

        results = await asyncio.gather(*(fetch(r) for r in references), return_exceptions=True)

        resources: list[TerminologyResource] = []
        for reference, result in zip(references, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise NetworkFailure(
                    f"Fetching {reference.raw} was cancelled", original_error=result
                )
            if isinstance(result, TerminologyBundleError):
                raise result
            if isinstance(result, BaseException):
                raise NetworkFailure(
                    f"Fetching {reference.raw} failed: {result}", original_error=result
                ) from result
            resources.append(result)

        return resources

    async def _fetch(
        self, connection: TerminologyConnection, reference: KnownReference
    ) -> TerminologyResource:
        """Fetch one reference by literal id or canonical URL."""
        if reference.resource_id:
            data = await connection.fetch_by_id(reference.resource_type, reference.resource_id)
        else:
            params = {"url": reference.canonical or ""}
            if reference.version:
                params["version"] = reference.version
            matches = await connection.search(reference.resource_type, params)
            if not matches:
                raise DependencyNotFoundError(reference.resource_type, reference.raw)
            if len(matches) > 1:
                logger.debug(
                    "Multiple matches for canonical reference, using the first",
                    reference=reference.raw,
                    matches=len(matches),
                )
            data = matches[0]

        return self._to_resource(reference, data, connection.name)

    def _to_resource(
        self, reference: KnownReference, data: Any, source: str
    ) -> TerminologyResource:
        """Classify a fetched document by its resourceType."""
        actual_type = data.get("resourceType") if isinstance(data, dict) else None
        if actual_type not in TERMINOLOGY_RESOURCE_TYPES:
            raise UnknownDependencyTypeError(actual_type, reference.raw)

        if actual_type != reference.resource_type:
            logger.warning(
                "Dependency resolved to a different resource type",
                reference=reference.raw,
                expected=reference.resource_type,
                actual=actual_type,
            )
        return parse_resource(data, source=source)
