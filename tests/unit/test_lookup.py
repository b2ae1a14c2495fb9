"""Unit tests for server lookups."""

import pytest

from src.termbundle.core.lookup import add_from_server, expand_value_set, search_value_sets
from src.termbundle.core.mutator import BundleMutator
from src.termbundle.models.bundle import Bundle
from src.termbundle.utils.exceptions import ResourceNotFoundError


class TestSearchValueSets:
    """Test search_value_sets."""

    @pytest.mark.asyncio
    async def test_by_name(self, loinc_server):
        results = await search_value_sets(loinc_server, name="par")

        assert [vs.id for vs in results] == ["vs-parent"]
        assert loinc_server.calls_to("search_value_sets") == [
            ("search_value_sets", None, "par", None)
        ]

    @pytest.mark.asyncio
    async def test_by_identifier(self, fake_server, make_value_set):
        fake_server.add(
            make_value_set(
                "oid-vs", identifier=[{"system": "urn:ietf:rfc:3986", "value": "urn:oid:1.2.3"}]
            )
        )

        results = await search_value_sets(fake_server, identifier="urn:oid:1.2.3")

        assert [vs.id for vs in results] == ["oid-vs"]

    @pytest.mark.asyncio
    async def test_unparseable_results_skipped(self, fake_server, make_value_set):
        fake_server.add(
            make_value_set("ok", name="Good"),
            make_value_set("broken", name="Gone", url=["not", "a", "string"]),
        )

        results = await search_value_sets(fake_server, name="Go")

        assert [vs.id for vs in results] == ["ok"]


class TestExpandValueSet:
    """Test expand_value_set."""

    @pytest.mark.asyncio
    async def test_returns_expansion(self, loinc_server):
        expansion = await expand_value_set(loinc_server, "vs-child")

        assert expansion["id"] == "vs-child"
        assert "expansion" in expansion


class TestAddFromServer:
    """Test add_from_server."""

    @pytest.mark.asyncio
    async def test_adds_value_set_with_dependencies(self, loinc_server):
        result = await add_from_server(BundleMutator(), loinc_server, Bundle(), "vs-child")

        assert [str(k) for k in result.added] == ["ValueSet/vs-child", "CodeSystem/loinc"]

    @pytest.mark.asyncio
    async def test_unknown_id(self, loinc_server):
        with pytest.raises(ResourceNotFoundError):
            await add_from_server(BundleMutator(), loinc_server, Bundle(), "nope")
