"""FHIR terminology server access."""

from .client import FHIRClient
from .connection import TerminologyConnection

__all__ = ["FHIRClient", "TerminologyConnection"]
