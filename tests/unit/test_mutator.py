"""Unit tests for BundleMutator."""

import pytest

from src.termbundle.core.mutator import BundleMutator, PreparedAddition
from src.termbundle.core.store import add_entry
from src.termbundle.models.bundle import Bundle
from src.termbundle.models.resources import CodeSystem, ValueSet
from src.termbundle.utils.exceptions import UnknownDependencyTypeError


@pytest.fixture
def mutator():
    return BundleMutator()


class TestAddValueSet:
    """Test adding value sets."""

    @pytest.mark.asyncio
    async def test_without_connection_adds_only_the_value_set(self, mutator, make_value_set):
        vs = ValueSet.model_validate(make_value_set("a", systems=["http://loinc.org"]))

        result = await mutator.add_value_set(Bundle(), vs)

        assert result.changed
        assert [str(k) for k in result.added] == ["ValueSet/a"]
        assert len(result.bundle) == 1
        assert result.dependency_error is None

    @pytest.mark.asyncio
    async def test_with_connection_adds_dependencies_after_value_set(self, mutator, loinc_server):
        parent = ValueSet.model_validate(loinc_server.resources[0])

        result = await mutator.add_value_set(Bundle(), parent, loinc_server)

        assert [str(k) for k in result.added] == [
            "ValueSet/vs-parent",
            "CodeSystem/snomed",
            "ValueSet/vs-child",
            "CodeSystem/loinc",
        ]
        assert [r.id for r in result.bundle.resources] == [
            "vs-parent",
            "snomed",
            "vs-child",
            "loinc",
        ]

    @pytest.mark.asyncio
    async def test_adding_twice_is_a_no_op(self, mutator, loinc_server):
        parent = ValueSet.model_validate(loinc_server.resources[0])
        first = await mutator.add_value_set(Bundle(), parent, loinc_server)
        calls_before = len(loinc_server.calls)

        second = await mutator.add_value_set(first.bundle, parent, loinc_server)

        assert not second.changed
        assert second.bundle is first.bundle
        assert len(loinc_server.calls) == calls_before

    @pytest.mark.asyncio
    async def test_dependency_error_still_adds_value_set(
        self, mutator, fake_server, make_value_set
    ):
        vs = ValueSet.model_validate(make_value_set("a", value_sets=["Observation/o-1"]))

        result = await mutator.add_value_set(Bundle(), vs, fake_server)

        assert [str(k) for k in result.added] == ["ValueSet/a"]
        assert isinstance(result.dependency_error, UnknownDependencyTypeError)

    @pytest.mark.asyncio
    async def test_input_bundle_unchanged(self, mutator, loinc_server):
        original = Bundle()
        parent = ValueSet.model_validate(loinc_server.resources[0])

        await mutator.add_value_set(original, parent, loinc_server)

        assert len(original) == 0


class TestApply:
    """Test folding prepared additions."""

    def test_rechecks_dependencies_against_current_bundle(self, mutator):
        loinc = CodeSystem(id="loinc", url="http://loinc.org")
        first = PreparedAddition(resource=ValueSet(id="a"), dependencies=[loinc])
        second = PreparedAddition(resource=ValueSet(id="b"), dependencies=[loinc])

        bundle = mutator.apply(Bundle(), first).bundle
        result = mutator.apply(bundle, second)

        assert [str(k) for k in result.added] == ["ValueSet/b"]
        assert [r.id for r in result.bundle.resources] == ["a", "loinc", "b"]

    def test_resource_added_since_preparation_is_skipped(self, mutator):
        vs = ValueSet(id="a", url="http://x/a")
        prepared = PreparedAddition(resource=vs)
        bundle = add_entry(Bundle(), ValueSet(id="other-copy", url="http://x/a"))

        result = mutator.apply(bundle, prepared)

        assert not result.changed
        assert result.bundle is bundle


class TestCodeSystemsAndRemoval:
    """Test add_code_system, add_resource and remove."""

    def test_add_code_system(self, mutator):
        result = mutator.add_code_system(Bundle(), CodeSystem(id="loinc", url="http://loinc.org"))
        assert [str(k) for k in result.added] == ["CodeSystem/loinc"]

    def test_add_code_system_twice(self, mutator):
        cs = CodeSystem(id="loinc", url="http://loinc.org")
        bundle = mutator.add_code_system(Bundle(), cs).bundle

        result = mutator.add_code_system(bundle, cs)

        assert not result.changed
        assert len(result.bundle) == 1

    @pytest.mark.asyncio
    async def test_add_resource_dispatches_on_type(self, mutator, loinc_server):
        cs = CodeSystem(id="loinc", url="http://loinc.org")

        result = await mutator.add_resource(Bundle(), cs, loinc_server)

        assert len(result.bundle) == 1
        assert loinc_server.calls == []

    def test_remove(self, mutator):
        bundle = mutator.add_code_system(Bundle(), CodeSystem(id="loinc")).bundle
        assert len(mutator.remove(bundle, 0)) == 0
