"""Unit tests for the JSON document adapters."""

import json

import pytest

from src.termbundle.adapters.base import DocumentKind
from src.termbundle.adapters.documents import JsonDocumentAdapter
from src.termbundle.models.resources import CodeSystem, ValueSet
from src.termbundle.utils.exceptions import MalformedDocumentError, UnrecognizedResourceTypeError


def encode(document) -> bytes:
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def adapter():
    return JsonDocumentAdapter()


class TestSingleResource:
    """Test ValueSet / CodeSystem documents."""

    def test_value_set(self, adapter, make_value_set):
        parsed = adapter.parse(encode(make_value_set("a", url="http://x/a")), "a.json")

        assert parsed.kind is DocumentKind.SINGLE_RESOURCE
        assert not parsed.kind.expandable
        (vs,) = parsed.resources
        assert isinstance(vs, ValueSet)
        assert vs.url == "http://x/a"

    def test_code_system(self, adapter, make_code_system):
        parsed = adapter.parse(encode(make_code_system("loinc")), "loinc.json")
        assert isinstance(parsed.resources[0], CodeSystem)

    def test_unknown_fields_survive(self, adapter, make_value_set):
        document = make_value_set("a", experimental=True, jurisdiction=[{"text": "US"}])

        (vs,) = adapter.parse(encode(document), "a.json").resources

        assert vs.to_fhir() == document

    def test_other_resource_type(self, adapter):
        with pytest.raises(UnrecognizedResourceTypeError) as exc_info:
            adapter.parse(encode({"resourceType": "Patient", "id": "p"}), "patient.json")

        assert exc_info.value.resource_type == "Patient"
        assert "'Bundle', 'ValueSet', or 'CodeSystem'" in str(exc_info.value)

    def test_missing_resource_type(self, adapter):
        with pytest.raises(UnrecognizedResourceTypeError):
            adapter.parse(encode({"id": "x"}), "x.json")

    def test_invalid_json(self, adapter):
        with pytest.raises(MalformedDocumentError, match="Invalid JSON"):
            adapter.parse(b"{not json", "broken.json")

    def test_top_level_array(self, adapter):
        with pytest.raises(MalformedDocumentError, match="Expected a JSON object"):
            adapter.parse(b"[]", "array.json")


class TestCompositeBundle:
    """Test Bundle documents."""

    def test_terminology_entries_in_order(self, adapter, make_value_set, make_code_system):
        document = {
            "resourceType": "Bundle",
            "type": "collection",
            "entry": [
                {"resource": make_code_system("loinc")},
                {"resource": {"resourceType": "Patient", "id": "p"}},
                {"resource": make_value_set("a")},
            ],
        }

        parsed = adapter.parse(encode(document), "bundle.json")

        assert parsed.kind is DocumentKind.COMPOSITE_BUNDLE
        assert parsed.kind.expandable
        assert [(r.resource_type, r.id) for r in parsed.resources] == [
            ("CodeSystem", "loinc"),
            ("ValueSet", "a"),
        ]

    @pytest.mark.parametrize("entries", [None, []])
    def test_empty_bundle(self, adapter, entries):
        document = {"resourceType": "Bundle", "type": "collection"}
        if entries is not None:
            document["entry"] = entries

        parsed = adapter.parse(encode(document), "empty.json")

        assert parsed.kind is DocumentKind.COMPOSITE_BUNDLE
        assert parsed.resources == []

    def test_entry_not_a_list(self, adapter):
        with pytest.raises(MalformedDocumentError, match="must be a list"):
            adapter.parse(encode({"resourceType": "Bundle", "entry": {}}), "bad.json")

    def test_malformed_entry_kept_apart(self, adapter, make_value_set):
        document = {
            "resourceType": "Bundle",
            "entry": [
                {"resource": {"resourceType": "ValueSet", "id": "bad", "url": 42}},
                {"resource": make_value_set("good")},
                {"resource": {"resourceType": "CodeSystem", "url": ["http://x"]}},
            ],
        }

        parsed = adapter.parse(encode(document), "mixed.json")

        assert [r.id for r in parsed.resources] == ["good"]
        assert [(f.position, f.label, f.resource_type) for f in parsed.failures] == [
            (0, "bad", "ValueSet"),
            (1, "Bundle.entry[2]", "CodeSystem"),
        ]
        assert isinstance(parsed.failures[0].error, MalformedDocumentError)
        assert str(parsed.failures[0].error).startswith("Bundle.entry[0]: ")
