"""ZIP archive adapter (Atlas "exportedConceptSet" downloads)."""

import dataclasses
import io
import zipfile
from pathlib import PurePosixPath

import structlog

from ..constants import DEFAULT_ARCHIVE_MEMBER
from ..utils.exceptions import MalformedDocumentError, RequiredMemberMissingError
from .base import ArtifactFormat, DocumentKind, FormatAdapter, ParsedArtifact, decode_text
from .tabular import ConceptSetCsvAdapter

logger = structlog.get_logger(__name__)


class ArchiveAdapter(FormatAdapter):
    """
    Delegate the concept CSV inside a ZIP archive to the CSV adapter.

    Only ``member`` is read; every other file in the archive is ignored. The
    member may sit in a sub-folder (archives re-zipped by hand usually gain
    one); a root-level member wins over nested ones.
    """

    format = ArtifactFormat.ZIP

    def __init__(
        self,
        member: str = DEFAULT_ARCHIVE_MEMBER,
        csv_adapter: ConceptSetCsvAdapter | None = None,
    ) -> None:
        self.member = member
        self.csv_adapter = csv_adapter or ConceptSetCsvAdapter()

    def parse(self, content: bytes, source: str) -> ParsedArtifact:
        """
        Parse a ZIP archive.

        Raises:
            MalformedDocumentError: If the archive is corrupt
            RequiredMemberMissingError: If the archive lacks ``member``
            MalformedRowError: If the member is not a valid concept-set CSV
        """
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as z:
                name = self._find_member(z.namelist())
                if name is None:
                    raise RequiredMemberMissingError(self.member, source=source)
                data = z.read(name)
        except zipfile.BadZipFile as e:
            raise MalformedDocumentError(
                f"Invalid ZIP file: {e}", source=source, original_error=e
            ) from e

        member_source = f"{source}:{name}"
        logger.debug("Archive member found", source=source, member=name, size=len(data))

        parsed = self.csv_adapter.parse_text(decode_text(data, member_source), member_source)
        return dataclasses.replace(parsed, kind=DocumentKind.ARCHIVE)

    def _find_member(self, names: list[str]) -> str | None:
        candidates = [
            name
            for name in names
            if not name.endswith("/")
            and not name.startswith("__MACOSX/")
            and PurePosixPath(name).name == self.member
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda name: name.count("/"))
