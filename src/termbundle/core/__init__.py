"""Core bundle assembly logic."""

from .exporter import bundle_to_json, read_bundle, write_bundle
from .identity import ResourceKey, resource_identity, resource_key, same_resource
from .lookup import add_from_server, expand_value_set, search_value_sets
from .mutator import BundleMutator, MutationResult, PreparedAddition
from .resolver import DependencyResolver, extract_references
from .store import (
    add_entry,
    contains,
    contains_code_system,
    contains_value_set,
    find_entry,
    remove_entry,
)
from .submission import submit_bundle, to_submission_bundle

__all__ = [
    "ResourceKey",
    "resource_identity",
    "resource_key",
    "same_resource",
    "contains",
    "contains_value_set",
    "contains_code_system",
    "find_entry",
    "add_entry",
    "remove_entry",
    "DependencyResolver",
    "extract_references",
    "BundleMutator",
    "MutationResult",
    "PreparedAddition",
    "bundle_to_json",
    "read_bundle",
    "write_bundle",
    "submit_bundle",
    "to_submission_bundle",
    "search_value_sets",
    "expand_value_set",
    "add_from_server",
]
