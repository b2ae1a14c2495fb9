"""Unit tests for artifacts and notifiers."""

import pytest

from src.termbundle.ingestion import Artifact, CollectingNotifier, NotificationLevel, log_notifier


class TestArtifact:
    """Test Artifact construction and reading."""

    def test_requires_content_or_path(self):
        with pytest.raises(ValueError, match="needs content or a path"):
            Artifact(name="empty")

    def test_from_path_guesses_media_type(self, tmp_path):
        artifact = Artifact.from_path(tmp_path / "export.zip")

        assert artifact.name == "export.zip"
        assert artifact.media_type == "application/zip"

    def test_explicit_media_type_kept(self, tmp_path):
        artifact = Artifact.from_path(tmp_path / "upload", media_type="text/csv")
        assert artifact.media_type == "text/csv"

    @pytest.mark.asyncio
    async def test_read_in_memory(self):
        assert await Artifact.from_bytes("a.json", b"{}").read() == b"{}"

    @pytest.mark.asyncio
    async def test_read_from_disk(self, tmp_path):
        path = tmp_path / "a.csv"
        path.write_bytes(b"a,b\n")

        assert await Artifact.from_path(path).read() == b"a,b\n"


class TestNotifiers:
    """Test notifier implementations."""

    def test_collecting_notifier_keeps_order(self):
        notifier = CollectingNotifier()
        notifier(NotificationLevel.WARNING, "first")
        notifier(NotificationLevel.ERROR, "second")
        notifier(NotificationLevel.WARNING, "third")

        assert notifier.at_level(NotificationLevel.WARNING) == ["first", "third"]
        assert [level for level, _ in notifier.messages] == [
            NotificationLevel.WARNING,
            NotificationLevel.ERROR,
            NotificationLevel.WARNING,
        ]

    @pytest.mark.parametrize("level", list(NotificationLevel))
    def test_log_notifier_accepts_every_level(self, level):
        log_notifier(level, "message")
