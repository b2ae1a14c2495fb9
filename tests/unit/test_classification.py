"""Unit tests for artifact classification and the adapter registry."""

import pytest

from src.termbundle.adapters import (
    ArchiveAdapter,
    ArtifactFormat,
    ConceptSetCsvAdapter,
    JsonDocumentAdapter,
    build_adapters,
    classify_artifact,
)
from src.termbundle.config import IngestConfig
from src.termbundle.utils.exceptions import UnsupportedFormatError


class TestClassifyArtifact:
    """Test media type and extension classification."""

    @pytest.mark.parametrize(
        "name,media_type,expected",
        [
            ("vs.json", None, ArtifactFormat.JSON),
            ("VS.JSON", None, ArtifactFormat.JSON),
            ("concepts.csv", None, ArtifactFormat.CSV),
            ("export.zip", None, ArtifactFormat.ZIP),
            ("upload", "application/fhir+json", ArtifactFormat.JSON),
            ("upload", "application/json; charset=utf-8", ArtifactFormat.JSON),
            ("upload", "text/csv", ArtifactFormat.CSV),
            ("upload", "application/x-zip-compressed", ArtifactFormat.ZIP),
        ],
    )
    def test_supported(self, name, media_type, expected):
        assert classify_artifact(name, media_type) is expected

    def test_media_type_wins_over_extension(self):
        assert classify_artifact("data.json", "application/zip") is ArtifactFormat.ZIP

    def test_unknown_media_type_falls_back_to_extension(self):
        assert classify_artifact("data.csv", "application/octet-stream") is ArtifactFormat.CSV

    @pytest.mark.parametrize("name", ["notes.txt", "README", "image.png"])
    def test_unsupported(self, name):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            classify_artifact(name)

        assert exc_info.value.source == name
        assert name in str(exc_info.value)


class TestBuildAdapters:
    """Test the adapter registry."""

    def test_one_adapter_per_format(self):
        adapters = build_adapters()

        assert isinstance(adapters[ArtifactFormat.JSON], JsonDocumentAdapter)
        assert isinstance(adapters[ArtifactFormat.CSV], ConceptSetCsvAdapter)
        assert isinstance(adapters[ArtifactFormat.ZIP], ArchiveAdapter)

    def test_archive_member_from_config(self):
        adapters = build_adapters(IngestConfig(archive_member="includedConcepts.csv"))

        assert adapters[ArtifactFormat.ZIP].member == "includedConcepts.csv"
        assert adapters[ArtifactFormat.ZIP].csv_adapter is adapters[ArtifactFormat.CSV]
