"""Integration tests for the full ingestion workflow.

These tests drive the orchestrator end to end: artifacts in, bundle out,
with dependency resolution against an in-memory server or a FHIRClient
talking to a mocked HTTP server.
"""

import json
import random

import pytest
import respx
from httpx import Response

from src.termbundle.config import ServerConfig
from src.termbundle.core.exporter import bundle_to_json, read_bundle, write_bundle
from src.termbundle.core.identity import resource_key
from src.termbundle.core.resolver import extract_references
from src.termbundle.core.store import find_entry
from src.termbundle.fhir.client import FHIRClient
from src.termbundle.ingestion import Artifact, CollectingNotifier, IngestionOrchestrator
from src.termbundle.ingestion.notifier import NotificationLevel
from src.termbundle.models.bundle import Bundle
from src.termbundle.models.references import CodeSystemReference, ValueSetReference
from src.termbundle.models.resources import ValueSet
from src.termbundle.models.results import OutcomeStatus


def json_artifact(name, document):
    return Artifact.from_bytes(name, json.dumps(document).encode("utf-8"))


@pytest.fixture
def notifier():
    return CollectingNotifier()


@pytest.fixture
def orchestrator(notifier):
    return IngestionOrchestrator(notifier=notifier)


@pytest.mark.asyncio
async def test_ingest_is_idempotent(orchestrator, loinc_server, concept_set_csv):
    """Ingesting the same artifacts twice leaves the bundle unchanged."""
    artifacts = [
        json_artifact("parent.json", loinc_server.resources[0]),
        Artifact.from_bytes("concepts.csv", concept_set_csv),
    ]

    first = await orchestrator.ingest(artifacts, Bundle(), loinc_server)
    second = await orchestrator.ingest(artifacts, first.bundle, loinc_server)

    assert first.added_count == 6
    assert second.added_count == 0
    assert second.bundle.to_fhir() == first.bundle.to_fhir()


@pytest.mark.asyncio
async def test_transitive_closure_is_complete(orchestrator, loinc_server):
    """Every canonical reference of every bundled value set resolves inside the bundle."""
    report = await orchestrator.ingest(
        [json_artifact("parent.json", loinc_server.resources[0])], Bundle(), loinc_server
    )

    bundle = report.bundle
    for resource in bundle.resources:
        if not isinstance(resource, ValueSet):
            continue
        for reference in extract_references(resource):
            assert isinstance(reference, (ValueSetReference, CodeSystemReference))
            assert find_entry(bundle, reference.resource_type, reference.canonical) is not None


@pytest.mark.asyncio
async def test_no_duplicate_identities(orchestrator, loinc_server, make_value_set):
    """Resources sharing a canonical URL are stored once, whatever their ids."""
    artifacts = [
        json_artifact("parent.json", loinc_server.resources[0]),
        json_artifact(
            "child-copy.json",
            make_value_set("local-child", url="http://example.org/ValueSet/child"),
        ),
    ]

    report = await orchestrator.ingest(artifacts, Bundle(), loinc_server)

    keys = [resource_key(r) for r in report.bundle.resources]
    assert len(keys) == len(set(keys))
    assert report.outcomes[1].added_resource_ids == []


@pytest.mark.asyncio
async def test_partial_failure_isolated(orchestrator, notifier, make_zip, concept_set_csv):
    """A broken artifact in the middle of a batch does not affect its neighbours."""
    artifacts = [
        json_artifact(
            "asthma.json",
            {"resourceType": "ValueSet", "id": "asthma", "name": "Asthma"},
        ),
        Artifact.from_bytes(
            "exportedConceptSet.zip", make_zip({"includedConcepts.csv": concept_set_csv})
        ),
        Artifact.from_bytes("concepts.csv", concept_set_csv),
    ]

    report = await orchestrator.ingest(artifacts, Bundle())

    assert [o.status for o in report.outcomes] == [
        OutcomeStatus.FULFILLED,
        OutcomeStatus.REJECTED,
        OutcomeStatus.FULFILLED,
    ]
    rejected = report.outcomes[1]
    assert rejected.error_type == "RequiredMemberMissingError"
    assert rejected.error_detail == "'mappedConcepts.csv' not found in ZIP file"
    assert [r.id for r in report.bundle.resources] == [
        "asthma",
        "ohdsi-concept-set-1234",
        "ohdsi-concept-set-5678",
    ]
    assert notifier.at_level(NotificationLevel.ERROR) == [
        "Failed to import exportedConceptSet.zip: 'mappedConcepts.csv' not found in ZIP file."
    ]


@pytest.mark.asyncio
async def test_unknown_dependency_type(orchestrator, fake_server, make_value_set):
    """A value set referencing a non-terminology resource is kept, its dependencies are not."""
    fake_server.add(make_value_set("child", url="http://x/child"))
    document = make_value_set(
        "odd", value_sets=["http://x/child", "Questionnaire/q-1"], name="Odd"
    )

    report = await orchestrator.ingest([json_artifact("odd.json", document)], Bundle(), fake_server)

    (outcome,) = report.outcomes
    assert outcome.status is OutcomeStatus.FULFILLED
    assert outcome.error_type == "UnknownDependencyTypeError"
    assert [r.id for r in report.bundle.resources] == ["odd"]
    assert fake_server.calls == []


@pytest.mark.asyncio
async def test_export_and_reingest(orchestrator, loinc_server, tmp_path):
    """An exported bundle ingested into an empty bundle reproduces it."""
    report = await orchestrator.ingest(
        [json_artifact("parent.json", loinc_server.resources[0])], Bundle(), loinc_server
    )
    path = write_bundle(report.bundle, tmp_path / "Terminology.bundle.json")

    again = await orchestrator.ingest([Artifact.from_path(path)], Bundle())

    assert again.outcomes[0].format == "json"
    assert len(again.outcomes[0].resources) == 4
    assert bundle_to_json(again.bundle) == bundle_to_json(report.bundle)
    assert read_bundle(path).to_fhir() == report.bundle.to_fhir()


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_reingest_ignores_entry_order(orchestrator, loinc_server, concept_set_csv, seed):
    """Re-ingesting an exported bundle in any entry order yields the same resources."""
    report = await orchestrator.ingest(
        [
            json_artifact("parent.json", loinc_server.resources[0]),
            Artifact.from_bytes("concepts.csv", concept_set_csv),
        ],
        Bundle(),
        loinc_server,
    )
    document = json.loads(bundle_to_json(report.bundle))
    random.Random(seed).shuffle(document["entry"])

    again = await orchestrator.ingest([json_artifact("shuffled.json", document)], Bundle())

    assert again.is_complete_success
    assert {resource_key(r) for r in again.bundle.resources} == {
        resource_key(r) for r in report.bundle.resources
    }
    assert len(again.bundle) == len(report.bundle)


@pytest.mark.asyncio
async def test_empty_composite_bundle(orchestrator):
    """A Bundle without entries is accepted and changes nothing."""
    report = await orchestrator.ingest(
        [json_artifact("empty.json", {"resourceType": "Bundle", "type": "collection", "entry": []})],
        Bundle(),
    )

    assert report.is_complete_success
    assert len(report.bundle) == 0


@pytest.mark.asyncio
async def test_resolution_over_http(orchestrator, make_value_set, make_code_system):
    """Dependencies are fetched through FHIRClient using canonical search."""
    base = "https://tx.example.org/fhir"
    searchset = {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [{"resource": make_code_system("loinc", url="http://loinc.org", name="LOINC")}],
    }
    document = make_value_set("glucose", name="Glucose", systems=["http://loinc.org"])

    with respx.mock() as respx_mock:
        route = respx_mock.get(url__startswith=f"{base}/CodeSystem").mock(
            return_value=Response(200, json=searchset)
        )
        async with FHIRClient(ServerConfig(name="tx", base_url=base)) as client:
            report = await orchestrator.ingest(
                [json_artifact("glucose.json", document)], Bundle(), client
            )

    assert route.calls.last.request.url.params["url"] == "http://loinc.org"
    assert report.outcomes[0].added_resource_ids == ["ValueSet/glucose", "CodeSystem/loinc"]
