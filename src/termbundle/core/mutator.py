"""Bundle mutator: the single entry point for changing a bundle.

Adding a value set happens in two steps so that the ingestion orchestrator can
run the network part concurrently and still fold results one at a time:

1. ``prepare_value_set`` (async): resolve dependencies against the bundle as it
   was before the append. Resolution errors are captured, not raised.
2. ``apply`` (sync, pure): append the resource unless already present, then
   append each dependency, re-checking every one for duplicates.

``add_value_set`` runs both steps back to back.
"""

from dataclasses import dataclass, field

import structlog

from ..constants import VALUE_SET
from ..fhir.connection import TerminologyConnection
from ..models.bundle import Bundle
from ..models.resources import CodeSystem, TerminologyResource, ValueSet
from ..utils.exceptions import TerminologyBundleError
from .identity import ResourceKey, resource_key
from .resolver import DependencyResolver
from .store import add_entry, contains, contains_code_system, contains_value_set, remove_entry

logger = structlog.get_logger(__name__)


@dataclass
class PreparedAddition:
    """
    A resource ready to be folded into a bundle.

    Attributes:
        resource: ValueSet or CodeSystem being added
        dependencies: Missing resources discovered by the resolver
        dependency_error: Why resolution failed, if it did
        already_present: The resource was in the bundle when preparation started
    """

    resource: TerminologyResource
    dependencies: list[TerminologyResource] = field(default_factory=list)
    dependency_error: TerminologyBundleError | None = None
    already_present: bool = False


@dataclass
class MutationResult:
    """
    Result of one add.

    Attributes:
        bundle: New bundle version (the input bundle when nothing changed)
        added: Keys of every appended resource, the requested one first
        dependency_error: Resolution failure; the requested resource is still added
    """

    bundle: Bundle
    added: list[ResourceKey] = field(default_factory=list)
    dependency_error: TerminologyBundleError | None = None

    @property
    def changed(self) -> bool:
        return bool(self.added)


class BundleMutator:
    """
    Idempotent add/remove operations over immutable bundles.

    The mutator holds no bundle state; every call takes the current bundle and
    returns the next one.
    """

    def __init__(self, resolver: DependencyResolver | None = None) -> None:
        self.resolver = resolver or DependencyResolver()

    async def prepare_value_set(
        self,
        bundle: Bundle,
        value_set: ValueSet,
        connection: TerminologyConnection | None = None,
    ) -> PreparedAddition:
        """
        Resolve the dependencies of ``value_set`` against ``bundle``.

        Without a connection nothing is fetched (the value set came from a local
        file and its dependencies are the user's responsibility).

        Args:
            bundle: Bundle before the append
            value_set: Value set to add
            connection: Server to fetch dependencies from

        Returns:
            PreparedAddition, with dependency_error set if resolution failed
        """
        if contains_value_set(bundle, value_set):
            return PreparedAddition(resource=value_set, already_present=True)

        if connection is None:
            return PreparedAddition(resource=value_set)

        try:
            dependencies = await self.resolver.resolve(connection, value_set, bundle)
        except TerminologyBundleError as e:
            logger.warning(
                "Dependency resolution failed",
                value_set=str(resource_key(value_set)),
                error=str(e),
                error_type=type(e).__name__,
            )
            return PreparedAddition(resource=value_set, dependency_error=e)

        return PreparedAddition(resource=value_set, dependencies=dependencies)

    def prepare_code_system(self, bundle: Bundle, code_system: CodeSystem) -> PreparedAddition:
        """Code systems are terminal nodes: nothing to resolve."""
        return PreparedAddition(
            resource=code_system, already_present=contains_code_system(bundle, code_system)
        )

    def apply(self, bundle: Bundle, prepared: PreparedAddition) -> MutationResult:
        """
        Fold a prepared addition into ``bundle``.

        Args:
            bundle: Current bundle (may already differ from the one used to prepare)
            prepared: Output of a prepare_* call

        Returns:
            MutationResult with the new bundle
        """
        if contains(bundle, prepared.resource):
            logger.debug("Resource already in bundle", resource=str(resource_key(prepared.resource)))
            return MutationResult(bundle=bundle, dependency_error=prepared.dependency_error)

        new_bundle = add_entry(bundle, prepared.resource)
        added = [resource_key(prepared.resource)]

        for dependency in prepared.dependencies:
            if contains(new_bundle, dependency):
                continue
            new_bundle = add_entry(new_bundle, dependency)
            added.append(resource_key(dependency))

        logger.debug(
            "Added resource to bundle",
            resource=str(added[0]),
            dependencies=len(added) - 1,
            entries=len(new_bundle),
        )
        return MutationResult(
            bundle=new_bundle, added=added, dependency_error=prepared.dependency_error
        )

    async def add_value_set(
        self,
        bundle: Bundle,
        value_set: ValueSet,
        connection: TerminologyConnection | None = None,
    ) -> MutationResult:
        """
        Add a value set and, when a connection is given, everything it references.

        Adding a value set already in the bundle returns the bundle unchanged.
        """
        prepared = await self.prepare_value_set(bundle, value_set, connection)
        return self.apply(bundle, prepared)

    def add_code_system(self, bundle: Bundle, code_system: CodeSystem) -> MutationResult:
        """Add a code system if it is not already present."""
        return self.apply(bundle, self.prepare_code_system(bundle, code_system))

    async def prepare(
        self,
        bundle: Bundle,
        resource: TerminologyResource,
        connection: TerminologyConnection | None = None,
    ) -> PreparedAddition:
        """Dispatch to prepare_value_set or prepare_code_system."""
        if resource.resource_type == VALUE_SET:
            return await self.prepare_value_set(bundle, resource, connection)  # type: ignore[arg-type]
        return self.prepare_code_system(bundle, resource)  # type: ignore[arg-type]

    async def add_resource(
        self,
        bundle: Bundle,
        resource: TerminologyResource,
        connection: TerminologyConnection | None = None,
    ) -> MutationResult:
        """Add a ValueSet or CodeSystem."""
        return self.apply(bundle, await self.prepare(bundle, resource, connection))

    def remove(self, bundle: Bundle, index: int) -> Bundle:
        """Remove the entry at ``index``."""
        return remove_entry(bundle, index)
