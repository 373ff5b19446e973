"""Build orchestrator — type-check, discover, bundle, compile the definition.

Per-mode bundling policy:

=====================  ==========================  =========  ======  ==========  ========
Mode                   Strategy                    Bundling   Minify  Sourcemaps  Comments
=====================  ==========================  =========  ======  ==========  ========
build/test             one-shot transpile          per-file   no      yes         kept
build/test + incr.     cached session rebuild      per-file   no      yes         kept
publish                one-shot bundle             full, ext  yes     opt-in      stripped
=====================  ==========================  =========  ======  ==========  ========

Compiler diagnostics are capped (``MODFORGE_DIAG_MAX``) and always recorded
before a ``BundleFailure`` propagates.  The module-definition compile is
best-effort and never aborts the build.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from modforge.bundler import (
    BundleMessage,
    BundleRequest,
    Bundler,
    format_bundle_message,
)
from modforge.config import BuildSettings
from modforge.contracts import BuildMode, ResolvedWorkspace
from modforge.diagnostics import PREFIX, DiagnosticLog
from modforge.entries import (
    discover_entry_points,
    discover_module_definition_source,
    entry_signature,
)
from modforge.errors import BuildError, BundleFailure
from modforge.sessions import BuildSessionOwner, session_key
from modforge.typecheck import TypeCheckRunner, should_type_check

logger = logging.getLogger(__name__)

SUPPORT_FILE_NAME = "env.ts"


@dataclass
class PipelineResult:
    entry_points: list[str]
    outputs: dict[str, int] | None
    include_sourcemaps: bool


def collect_output_sizes(outputs: Mapping[str, int], build_root: str | Path) -> dict[str, int]:
    """Re-key absolute output paths relative to *build_root* (POSIX separators)."""
    root = str(Path(build_root).resolve())
    sizes: dict[str, int] = {}
    for out_path, size in outputs.items():
        rel = os.path.relpath(out_path, root).replace(os.sep, "/")
        sizes[rel] = size if isinstance(size, int) else 0
    return sizes


class BuildOrchestrator:
    """Drives one build's compile phases against injected collaborators."""

    def __init__(
        self,
        bundler: Bundler,
        sessions: BuildSessionOwner,
        type_checker: TypeCheckRunner | None = None,
    ) -> None:
        self.bundler = bundler
        self.sessions = sessions
        self.type_checker = type_checker or TypeCheckRunner()

    async def run(
        self,
        paths: ResolvedWorkspace,
        mode: BuildMode,
        settings: BuildSettings,
        env: Mapping[str, str],
        log: DiagnosticLog,
        *,
        incremental: bool = False,
    ) -> PipelineResult:
        logger.info("%s %s:tsc start", PREFIX, mode.value)
        if should_type_check(mode, settings.typecheck_skip_requested):
            await self.type_checker.check(
                paths.tsconfig_path, env, log, diag_max=settings.diag_max(),
            )
        else:
            log.info(f"{PREFIX} type-check skipped by MODFORGE_TYPECHECK")
        logger.info("%s %s:tsc done", PREFIX, mode.value)

        entry_points = discover_entry_points(paths.source_root)
        if not entry_points:
            log.warn(
                f"No backend entry points found under {paths.source_root} "
                "(expected index.* or functions/*/index.* or jobs/*/index.*)."
            )

        logger.info("%s %s:esbuild start", PREFIX, mode.value)
        outputs = await self.bundle(
            entry_points, paths, mode, settings, log, incremental=incremental,
        )
        logger.info("%s %s:esbuild done", PREFIX, mode.value)

        module_source = discover_module_definition_source(paths.source_root)
        if module_source is not None:
            await self.compile_single(module_source, paths, mode, settings, log, entry_names="[dir]/[name]")

        include_sourcemaps = mode is not BuildMode.PUBLISH or settings.publish_sourcemaps
        return PipelineResult(
            entry_points=entry_points,
            outputs=outputs,
            include_sourcemaps=include_sourcemaps,
        )

    # -- bundling ------------------------------------------------------------

    def bundle_request(
        self,
        entry_points: Sequence[str],
        paths: ResolvedWorkspace,
        mode: BuildMode,
        settings: BuildSettings,
        *,
        full_bundle: bool = False,
        entry_names: str | None = None,
    ) -> BundleRequest:
        is_publish = mode is BuildMode.PUBLISH
        tsconfig = paths.tsconfig_path
        return BundleRequest(
            entry_points=list(entry_points),
            outdir=str(paths.build_root),
            outbase=str(paths.source_root),
            bundle=full_bundle,
            packages_external=full_bundle,
            minify=full_bundle,
            strip_legal_comments=full_bundle,
            sourcemap=settings.publish_sourcemaps if is_publish else True,
            tsconfig=str(tsconfig) if tsconfig.exists() else None,
            define={"process.env.NODE_ENV": json.dumps(settings.node_env(mode))},
            entry_names=entry_names,
        )

    async def bundle(
        self,
        entry_points: Sequence[str],
        paths: ResolvedWorkspace,
        mode: BuildMode,
        settings: BuildSettings,
        log: DiagnosticLog,
        *,
        incremental: bool = False,
    ) -> dict[str, int] | None:
        """Run the per-mode bundle strategy; return output sizes or ``None``."""
        is_publish = mode is BuildMode.PUBLISH
        use_incremental = incremental and not is_publish
        key = session_key(mode, paths.build_root)

        if not entry_points:
            await self.sessions.dispose(key)
            return None

        diag_max = settings.diag_max()
        label = f"{mode.value}:esbuild"
        start = time.perf_counter()
        try:
            reused = False
            if is_publish:
                await self.sessions.dispose(key)
                request = self.bundle_request(
                    entry_points, paths, mode, settings,
                    full_bundle=True, entry_names="[dir]/[name]",
                )
                outcome = await self.bundler.build(request)
            elif use_incremental:
                request = self.bundle_request(entry_points, paths, mode, settings)
                session, reused = await self.sessions.acquire(
                    key, entry_signature(entry_points), lambda: self.bundler.context(request),
                )
                outcome = await session.rebuild()
            else:
                await self.sessions.dispose(key)
                outcome = await self.bundler.build(self.bundle_request(entry_points, paths, mode, settings))
        except BundleFailure as exc:
            elapsed = (time.perf_counter() - start) * 1000
            await self.sessions.dispose(key)
            _record_capped(log, exc.errors, "error", diag_max)
            _record_capped(log, exc.warnings, "warn", diag_max)
            if len(exc.errors) > diag_max:
                log.info(f"{PREFIX} {label} ... {len(exc.errors) - diag_max} more error(s) omitted")
            if len(exc.warnings) > diag_max:
                log.info(f"{PREFIX} {label} ... {len(exc.warnings) - diag_max} more warning(s) omitted")
            if exc.reason:
                log.error(exc.reason)
            log.info(
                f"{PREFIX} {label} {len(exc.errors)} error(s), "
                f"{len(exc.warnings)} warning(s) in {elapsed:.1f}ms"
            )
            raise
        except BuildError as exc:
            await self.sessions.dispose(key)
            log.error(str(exc))
            raise BundleFailure(reason=str(exc)) from exc

        elapsed = (time.perf_counter() - start) * 1000
        warn_count = len(outcome.warnings)
        _record_capped(log, outcome.warnings, "warn", diag_max)
        if warn_count > diag_max:
            log.info(f"{PREFIX} {label} ... {warn_count - diag_max} more warning(s) omitted")
        suffix = " (incremental)" if reused else ""
        log.info(f"{PREFIX} {label} 0 error(s), {warn_count} warning(s) in {elapsed:.1f}ms{suffix}")

        return collect_output_sizes(outcome.outputs, paths.build_root)

    # -- single-file compiles --------------------------------------------------

    async def compile_single(
        self,
        source_file: Path,
        paths: ResolvedWorkspace,
        mode: BuildMode,
        settings: BuildSettings,
        log: DiagnosticLog,
        *,
        entry_names: str | None = None,
    ) -> bool:
        """Transpile one file without bundling; failures become diagnostics.

        Returns ``True`` when the compile succeeded.
        """
        request = self.bundle_request([str(source_file)], paths, mode, settings, entry_names=entry_names)
        try:
            await self.bundler.build(request)
        except BundleFailure as exc:
            for msg in exc.errors:
                log.error(format_bundle_message(msg))
            for msg in exc.warnings:
                log.warn(format_bundle_message(msg))
            if exc.reason:
                log.error(exc.reason)
            return False
        except BuildError as exc:
            log.error(str(exc))
            return False
        return True

    async def compile_support_file(
        self,
        paths: ResolvedWorkspace,
        mode: BuildMode,
        settings: BuildSettings,
        log: DiagnosticLog,
    ) -> bool:
        """Compile ``env.ts`` when present; a missing file is not an error."""
        source = paths.source_root / SUPPORT_FILE_NAME
        if not source.exists():
            return False
        return await self.compile_single(source, paths, mode, settings, log)


def _record_capped(
    log: DiagnosticLog,
    messages: Sequence[BundleMessage],
    severity: str,
    limit: int,
) -> None:
    for msg in messages[:limit]:
        log.add(severity, format_bundle_message(msg))  # type: ignore[arg-type]


__all__ = [
    "BuildOrchestrator",
    "PipelineResult",
    "collect_output_sizes",
]
