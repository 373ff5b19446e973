"""Backend module provider — the caller-facing build surface.

``BackendProvider.build`` runs the phases in order::

    type-check → entry discovery → bundle → definition compile
      → artifact collection → support-file compile → manifest hydration
      → build manifest → cache diffs → severity filter

Every collaborator (bundler, session owner, definition loader, type
checker) is injectable; defaults drive the real ``esbuild`` / ``node`` /
``tsc`` binaries.  Fatal failures (``TypeCheckFailure``, ``BundleFailure``)
propagate carrying every diagnostic recorded so far (``exc.diagnostics``);
everything else ends up in the returned diagnostics.
"""

from __future__ import annotations

import logging
from importlib import metadata as importlib_metadata
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from modforge.artifacts import collect_artifacts, create_build_manifest
from modforge.bundler import Bundler, EsbuildBundler
from modforge.cache import CacheDiffReporter
from modforge.config import BuildSettings
from modforge.contracts import BuildOptions, BuildResult, ResolvedWorkspace, ScaffoldAsset
from modforge.diagnostics import PREFIX, DiagnosticLog, filter_diagnostics
from modforge.errors import BuildError
from modforge.manifest.hydrator import ManifestHydrator
from modforge.manifest.loader import DefinitionLoader, NodeDefinitionLoader
from modforge.pipeline import BuildOrchestrator
from modforge.scaffold import get_scaffold_assets
from modforge.sessions import BuildSessionOwner
from modforge.typecheck import TypeCheckRunner
from modforge.workspace import resolve_workspace

logger = logging.getLogger(__name__)

PROVIDER_ID = "modforge"


def _package_version() -> str:
    try:
        return importlib_metadata.version(PROVIDER_ID)
    except importlib_metadata.PackageNotFoundError:
        return "0.0.0"


class ProviderCompatibility(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_cli_version: str = "0.1.0"
    node_range: str = ">=20.18.1"


class ProviderMetadata(BaseModel):
    """Identity a host uses to pick and version-check this provider."""

    model_config = ConfigDict(frozen=True)

    id: str = PROVIDER_ID
    kind: str = "backend"
    version: str = Field(default_factory=_package_version)
    compatibility: ProviderCompatibility = Field(default_factory=ProviderCompatibility)


class BackendProvider:
    """Builds backend modules against injectable toolchain collaborators.

    One provider instance per long-running host keeps incremental sessions
    warm across builds.  Overlapping builds of the same workspace must be
    serialised by the caller.
    """

    def __init__(
        self,
        *,
        bundler: Bundler | None = None,
        sessions: BuildSessionOwner | None = None,
        loader: DefinitionLoader | None = None,
        type_checker: TypeCheckRunner | None = None,
    ) -> None:
        self.bundler = bundler
        self.sessions = sessions if sessions is not None else BuildSessionOwner()
        self.loader = loader
        self.type_checker = type_checker or TypeCheckRunner()
        self.metadata = ProviderMetadata()

    def resolve_workspace(self, workspace_root: str | Path) -> ResolvedWorkspace:
        return resolve_workspace(workspace_root)

    def get_scaffold_assets(self) -> list[ScaffoldAsset]:
        return get_scaffold_assets()

    async def build(self, options: BuildOptions) -> BuildResult:
        paths = resolve_workspace(options.workspace_root)
        env = dict(options.env or {})
        settings = BuildSettings.from_env(env)
        mode = options.mode
        log = DiagnosticLog()

        bundler = self.bundler or EsbuildBundler(env=env)
        loader = self.loader or NodeDefinitionLoader(env=env)
        orchestrator = BuildOrchestrator(bundler, self.sessions, self.type_checker)

        logger.info("%s %s:start", PREFIX, mode.value)

        try:
            pipeline = await orchestrator.run(
                paths, mode, settings, env, log, incremental=options.incremental,
            )

            artifacts = collect_artifacts(paths.build_root, pipeline.include_sourcemaps)
            await orchestrator.compile_support_file(paths, mode, settings, log)

            module_manifest = await ManifestHydrator(loader).hydrate(
                options.workspace_root,
                paths.build_root,
                pipeline.entry_points,
                log,
                diag_max=settings.diag_max(),
            )
        except BuildError as exc:
            exc.attach_diagnostics(log)
            logger.error("%s %s:failed (%s)", PREFIX, mode.value, exc)
            raise
        manifest = create_build_manifest(paths.build_root, artifacts, log, module_manifest)

        entry_count = len(manifest.entry_points)
        if log.has_errors():
            logger.warning(
                "%s %s:complete with errors (entries=%d)", PREFIX, mode.value, entry_count,
            )
        else:
            logger.info("%s %s:complete (entries=%d)", PREFIX, mode.value, entry_count)
        log.info(f"{PREFIX} {mode.value}:built entries={entry_count}")

        reporter = CacheDiffReporter(options.workspace_root, settings, log)
        reporter.diff_outputs(pipeline.outputs, mode)
        reporter.diff_manifest(module_manifest)

        visible = filter_diagnostics(log, settings.min_severity)
        return BuildResult(
            artifacts=artifacts,
            manifest=manifest.model_copy(update={"diagnostics": visible}),
        )

    async def close(self) -> None:
        """Dispose every incremental session this provider owns."""
        await self.sessions.close()


# ---------------------------------------------------------------------------
# Module-level convenience
# ---------------------------------------------------------------------------

_default_provider: BackendProvider | None = None


def default_provider() -> BackendProvider:
    """Process-wide provider whose sessions are disposed at interpreter exit."""
    global _default_provider
    if _default_provider is None:
        _default_provider = BackendProvider()
        _default_provider.sessions.install_exit_hook()
    return _default_provider


async def build(options: BuildOptions) -> BuildResult:
    return await default_provider().build(options)


__all__ = [
    "PROVIDER_ID",
    "BackendProvider",
    "ProviderMetadata",
    "build",
    "default_provider",
]
