"""Pytest configuration and shared fixtures.

Fixtures are organized by category:
- Resource fixtures: factories for ValueSet / CodeSystem documents
- Server fixtures: an in-memory terminology server
- File fixtures: sample CSV and ZIP artifacts
"""

import io
import zipfile
from typing import Any

import pytest

from src.termbundle.utils.exceptions import ResourceNotFoundError

# =============================================================================
# Resource Factories
# =============================================================================


def value_set_doc(
    resource_id: str | None = None,
    url: str | None = None,
    systems: list[str] | None = None,
    value_sets: list[str] | None = None,
    name: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a ValueSet document including the given systems and value sets."""
    doc: dict[str, Any] = {"resourceType": "ValueSet"}
    if resource_id:
        doc["id"] = resource_id
    if url:
        doc["url"] = url
    if name:
        doc["name"] = name
    doc.update(extra)

    include: list[dict[str, Any]] = [
        {"system": system, "concept": [{"code": "x"}]} for system in systems or []
    ]
    if value_sets:
        include.append({"valueSet": list(value_sets)})
    if include:
        doc["compose"] = {"include": include}
    return doc


def code_system_doc(
    resource_id: str | None = None, url: str | None = None, **extra: Any
) -> dict[str, Any]:
    doc: dict[str, Any] = {"resourceType": "CodeSystem", "content": "not-present"}
    if resource_id:
        doc["id"] = resource_id
    if url:
        doc["url"] = url
    doc.update(extra)
    return doc


@pytest.fixture
def make_value_set():
    """Factory fixture for ValueSet documents."""
    return value_set_doc


@pytest.fixture
def make_code_system():
    """Factory fixture for CodeSystem documents."""
    return code_system_doc


# =============================================================================
# In-Memory Terminology Server
# =============================================================================


class FakeTerminologyServer:
    """
    In-memory TerminologyConnection.

    Holds raw documents, records every call, and can be told to fail for a
    given id or canonical URL.
    """

    def __init__(self, resources: list[dict[str, Any]] | None = None, name: str = "fake") -> None:
        self._name = name
        self.resources: list[dict[str, Any]] = list(resources or [])
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, BaseException] = {}
        self.submitted: list[dict[str, Any]] = []
        self.submit_response: dict[str, Any] | None = None
        self.submit_error: BaseException | None = None

    @property
    def name(self) -> str:
        return self._name

    def add(self, *documents: dict[str, Any]) -> None:
        self.resources.extend(documents)

    def fail_on(self, key: str, error: BaseException) -> None:
        """Make lookups of ``key`` (an id or a canonical URL) raise ``error``."""
        self.failures[key] = error

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    async def fetch_by_id(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        self.calls.append(("fetch_by_id", resource_type, resource_id))
        if resource_id in self.failures:
            raise self.failures[resource_id]
        for doc in self.resources:
            if doc.get("resourceType") == resource_type and doc.get("id") == resource_id:
                return doc
        raise ResourceNotFoundError(resource_type, resource_id)

    async def search(self, resource_type: str, params: dict[str, str]) -> list[dict[str, Any]]:
        self.calls.append(("search", resource_type, dict(params)))
        url = params.get("url")
        if url in self.failures:
            raise self.failures[url]
        return [
            doc
            for doc in self.resources
            if doc.get("resourceType") == resource_type
            and (url is None or doc.get("url") == url)
            and ("version" not in params or doc.get("version") == params["version"])
        ]

    async def search_value_sets(
        self,
        url: str | None = None,
        name: str | None = None,
        identifier: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(("search_value_sets", url, name, identifier))
        results = []
        for doc in self.resources:
            if doc.get("resourceType") != "ValueSet":
                continue
            if url and doc.get("url") != url:
                continue
            if name and not (doc.get("name") or "").lower().startswith(name.lower()):
                continue
            if identifier and not any(
                identifier in (i.get("value"), f"{i.get('system')}|{i.get('value')}")
                for i in doc.get("identifier", [])
            ):
                continue
            results.append(doc)
        return results

    async def expand(self, value_set_id: str) -> dict[str, Any]:
        self.calls.append(("expand", value_set_id))
        doc = await self.fetch_by_id("ValueSet", value_set_id)
        return {**doc, "expansion": {"total": 0, "contains": []}}

    async def submit(self, bundle: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("submit",))
        self.submitted.append(bundle)
        if self.submit_error is not None:
            raise self.submit_error
        if self.submit_response is not None:
            return self.submit_response
        return {
            "resourceType": "Bundle",
            "type": "batch-response",
            "entry": [{"response": {"status": "201 Created"}} for _ in bundle.get("entry", [])],
        }


@pytest.fixture
def fake_server() -> FakeTerminologyServer:
    """Empty in-memory terminology server."""
    return FakeTerminologyServer()


@pytest.fixture
def loinc_server() -> FakeTerminologyServer:
    """
    Server holding a small dependency graph:

        vs-parent -> vs-child -> CodeSystem loinc
                  -> CodeSystem snomed
    """
    return FakeTerminologyServer(
        [
            value_set_doc(
                "vs-parent",
                url="http://example.org/ValueSet/parent",
                systems=["http://snomed.info/sct"],
                value_sets=["http://example.org/ValueSet/child"],
                name="Parent",
            ),
            value_set_doc(
                "vs-child",
                url="http://example.org/ValueSet/child",
                systems=["http://loinc.org"],
                name="Child",
            ),
            code_system_doc("snomed", url="http://snomed.info/sct", name="SNOMED CT"),
            code_system_doc("loinc", url="http://loinc.org", name="LOINC"),
        ],
        name="loinc-server",
    )


# =============================================================================
# File Fixtures
# =============================================================================

CONCEPT_SET_CSV = (
    "Concept Set ID,Name,Concept ID,Concept Code,Concept Name,Vocabulary\n"
    "1234,Diabetes,201826,44054006,Type 2 diabetes mellitus,SNOMED\n"
    "1234,Diabetes,1567956,E11,Type 2 diabetes mellitus,ICD10CM\n"
    "1234,Diabetes,201826,44054006,Type 2 diabetes mellitus,SNOMED\n"
    "5678,Hypertension,320128,38341003,Hypertensive disorder,SNOMED\n"
)


@pytest.fixture
def concept_set_csv() -> bytes:
    """Atlas concept-set export with two concept sets and one duplicate row."""
    return CONCEPT_SET_CSV.encode("utf-8")


def build_zip(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as z:
        for name, data in members.items():
            z.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def make_zip():
    """Factory fixture building ZIP archives from {name: bytes}."""
    return build_zip


@pytest.fixture
def concept_set_zip(concept_set_csv: bytes) -> bytes:
    """Atlas exportedConceptSet archive."""
    return build_zip(
        {
            "mappedConcepts.csv": concept_set_csv,
            "includedConcepts.csv": concept_set_csv,
            "conceptSetExpression.json": b"{}",
        }
    )
