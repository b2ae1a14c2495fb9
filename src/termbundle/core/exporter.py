"""Read and write bundle documents."""

import json
from pathlib import Path

import structlog

from ..models.bundle import Bundle
from ..utils.exceptions import MalformedDocumentError

logger = structlog.get_logger(__name__)


def bundle_to_json(bundle: Bundle) -> str:
    """Serialize a bundle as pretty-printed FHIR JSON."""
    return json.dumps(bundle.to_fhir(), indent=2, ensure_ascii=False) + "\n"


def write_bundle(bundle: Bundle, path: Path) -> Path:
    """
    Write a bundle document to ``path``.

    Args:
        bundle: Bundle to export
        path: Destination file; parent directories are created

    Returns:
        The path written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(bundle_to_json(bundle), encoding="utf-8")
    logger.info("Bundle exported", path=str(path), entries=len(bundle))
    return path


def read_bundle(path: Path) -> Bundle:
    """
    Load a bundle previously written by ``write_bundle``.

    A missing file is an empty bundle, so a fresh working file needs no setup.

    Raises:
        MalformedDocumentError: If the file is not a terminology bundle
    """
    if not path.exists():
        logger.debug("Bundle file not found, starting empty", path=str(path))
        return Bundle()

    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(
            f"Invalid JSON: {e}", source=str(path), original_error=e
        ) from e

    return Bundle.from_fhir(data, source=str(path))
