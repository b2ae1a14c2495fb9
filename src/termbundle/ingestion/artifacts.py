"""Input artifacts: named blobs of bytes with an optional media type."""

import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Artifact:
    """
    One input to the ingestion pipeline.

    Either ``content`` or ``path`` must be set. In-memory artifacts are used
    by library callers and tests, path artifacts by the CLI.

    Attributes:
        name: Label shown in outcomes and notifications
        media_type: Declared media type, if known
        content: Raw bytes
        path: File to read lazily
    """

    name: str
    media_type: str | None = None
    content: bytes | None = None
    path: Path | None = None

    def __post_init__(self) -> None:
        if self.content is None and self.path is None:
            raise ValueError(f"Artifact '{self.name}' needs content or a path")

    @classmethod
    def from_path(cls, path: Path, media_type: str | None = None) -> "Artifact":
        """Build an artifact for a file; the media type is guessed when not given."""
        if media_type is None:
            media_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, media_type=media_type, path=path)

    @classmethod
    def from_bytes(cls, name: str, content: bytes, media_type: str | None = None) -> "Artifact":
        return cls(name=name, media_type=media_type, content=content)

    async def read(self) -> bytes:
        """Return the artifact bytes; files are read in a worker thread."""
        if self.content is not None:
            return self.content
        assert self.path is not None
        return await asyncio.to_thread(self.path.read_bytes)
