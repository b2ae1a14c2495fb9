"""termbundle - Assemble portable FHIR terminology bundles."""

from .cli import app
from .config import TerminologyConfig
from .constants import VERSION

__version__ = VERSION
__all__ = ["app", "TerminologyConfig"]
