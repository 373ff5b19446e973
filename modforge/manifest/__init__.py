"""Manifest hydration: definition loading, merge precedence, validation, checks."""

from modforge.manifest.checks import normalize_route_path, route_key, run_consistency_checks
from modforge.manifest.hydrator import ManifestHydrator, read_package_descriptor
from modforge.manifest.loader import (
    DefinitionLoader,
    LoadError,
    Loaded,
    NodeDefinitionLoader,
    NotFound,
    load_module_definition,
    summarize_built_manifest,
)
from modforge.manifest.merge import MERGE_TABLE, build_candidate, merge_definition

__all__ = [
    "MERGE_TABLE",
    "DefinitionLoader",
    "LoadError",
    "Loaded",
    "ManifestHydrator",
    "NodeDefinitionLoader",
    "NotFound",
    "build_candidate",
    "load_module_definition",
    "merge_definition",
    "normalize_route_path",
    "read_package_descriptor",
    "route_key",
    "run_consistency_checks",
    "summarize_built_manifest",
]
