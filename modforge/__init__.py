"""Backend module build pipeline — type-check, bundle, collect, hydrate, diff.

Public API
----------
Building::

    BackendProvider, build, default_provider,
    BuildOptions, BuildResult, BuildManifest, BuildMode,

Contracts (Pydantic models)::

    ArtifactRecord, Diagnostic, ModuleManifest, ModuleDefinition,
    RouteDefinition, ViewDefinition, JobDefinition,
    ResolvedWorkspace, ScaffoldAsset,

Configuration::

    BuildSettings  — env-map driven knobs (MODFORGE_*)

Errors::

    BuildError, TypeCheckFailure, BundleFailure,
    ToolNotFound, WatchStartError,

Toolchain boundary::

    Bundler, BundleSession, EsbuildBundler,
    DefinitionLoader, NodeDefinitionLoader,
    TypeCheckRunner, BuildSessionOwner,

Workspace & scaffolding::

    resolve_workspace, get_scaffold_assets,

Watch mode::

    start_watch, WatchHandle,

Logging::

    setup_logging
"""

from modforge.bundler import Bundler, BundleSession, EsbuildBundler
from modforge.config import BuildSettings
from modforge.contracts import (
    ArtifactRecord,
    BuildManifest,
    BuildMode,
    BuildOptions,
    BuildResult,
    Diagnostic,
    JobDefinition,
    ModuleDefinition,
    ModuleManifest,
    ResolvedWorkspace,
    RouteDefinition,
    ScaffoldAsset,
    ViewDefinition,
)
from modforge.errors import (
    BuildError,
    BundleFailure,
    ToolNotFound,
    TypeCheckFailure,
    WatchStartError,
)
from modforge.logging_config import setup_logging
from modforge.manifest import DefinitionLoader, NodeDefinitionLoader
from modforge.provider import BackendProvider, build, default_provider
from modforge.scaffold import get_scaffold_assets
from modforge.sessions import BuildSessionOwner
from modforge.typecheck import TypeCheckRunner
from modforge.watch import WatchHandle, start_watch
from modforge.workspace import resolve_workspace

__all__ = [
    "ArtifactRecord",
    "BackendProvider",
    "BuildError",
    "BuildManifest",
    "BuildMode",
    "BuildOptions",
    "BuildResult",
    "BuildSessionOwner",
    "BuildSettings",
    "BundleFailure",
    "BundleSession",
    "Bundler",
    "DefinitionLoader",
    "Diagnostic",
    "EsbuildBundler",
    "JobDefinition",
    "ModuleDefinition",
    "ModuleManifest",
    "NodeDefinitionLoader",
    "ResolvedWorkspace",
    "RouteDefinition",
    "ScaffoldAsset",
    "ToolNotFound",
    "TypeCheckFailure",
    "TypeCheckRunner",
    "ViewDefinition",
    "WatchHandle",
    "WatchStartError",
    "build",
    "default_provider",
    "get_scaffold_assets",
    "resolve_workspace",
    "setup_logging",
    "start_watch",
]
