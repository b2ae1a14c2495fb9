"""The terminology server capability consumed by the engine."""

from typing import Any, Protocol


class TerminologyConnection(Protocol):
    """Protocol for terminology server connections.

    The engine only ever talks to a server through these methods. All of them
    return decoded FHIR JSON. Failures are raised as ``NetworkFailure`` (or a
    subclass); cancellation of a pending call propagates as
    ``asyncio.CancelledError`` and is converted by the caller.

    ``FHIRClient`` is the HTTP implementation; tests use in-memory fakes.
    """

    @property
    def name(self) -> str:
        """Display name used in logs and notifications."""
        ...

    async def fetch_by_id(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        """GET [base]/{resource_type}/{resource_id}."""
        ...

    async def search(self, resource_type: str, params: dict[str, str]) -> list[dict[str, Any]]:
        """GET [base]/{resource_type}?params, returning every matching resource."""
        ...

    async def search_value_sets(
        self,
        url: str | None = None,
        name: str | None = None,
        identifier: str | None = None,
    ) -> list[dict[str, Any]]:
        """Search ValueSets by canonical url, name and/or identifier."""
        ...

    async def expand(self, value_set_id: str) -> dict[str, Any]:
        """GET [base]/ValueSet/{value_set_id}/$expand."""
        ...

    async def submit(self, bundle: dict[str, Any]) -> dict[str, Any]:
        """POST a batch/transaction Bundle to [base], returning the response Bundle."""
        ...
