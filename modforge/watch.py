"""Watch mode — a long-running type-check watcher plus a rebuild loop.

Two independent activities run side by side with no ordering between their
output:

- ``tsc --watch`` as a child process, each line forwarded to the logger
  (stdout at INFO, stderr at WARNING, prefixed ``[tsc]``).
- A polling loop over the source tree.  A changed snapshot is debounced,
  then the incremental session rebuilds; an error-free rebuild refreshes
  the cache diffs and re-hydrates the manifest.

``WatchHandle.stop()`` is the only cancellation point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Mapping
from pathlib import Path

from modforge.bundler import (
    BundleMessage,
    Bundler,
    BundleSession,
    EsbuildBundler,
    format_bundle_message,
)
from modforge.cache import CacheDiffReporter
from modforge.config import BuildSettings
from modforge.contracts import BuildMode, ResolvedWorkspace
from modforge.diagnostics import PREFIX, DiagnosticLog, log_diagnostic
from modforge.entries import discover_entry_points
from modforge.errors import BuildError, BundleFailure, ToolNotFound, WatchStartError
from modforge.manifest.hydrator import ManifestHydrator
from modforge.manifest.loader import DefinitionLoader, NodeDefinitionLoader
from modforge.pipeline import BuildOrchestrator, collect_output_sizes
from modforge.runner import StreamingProcess, stream
from modforge.sessions import BuildSessionOwner
from modforge.typecheck import TypeCheckRunner, should_type_check
from modforge.workspace import resolve_workspace

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_DEBOUNCE = 0.2

Snapshot = dict[str, tuple[int, int]]


def snapshot_sources(source_root: Path) -> Snapshot:
    """``path → (mtime_ns, size)`` for every visible file under *source_root*."""
    snap: Snapshot = {}
    if not source_root.is_dir():
        return snap
    for path in source_root.rglob("*"):
        rel_parts = path.relative_to(source_root).parts
        if any(part.startswith(".") for part in rel_parts):
            continue
        try:
            st = path.stat()
        except OSError:
            continue
        if path.is_file():
            snap[str(path)] = (st.st_mtime_ns, st.st_size)
    return snap


class WatchHandle:
    """A running watch session.  ``stop()`` is idempotent."""

    def __init__(
        self,
        *,
        workspace_root: Path,
        paths: ResolvedWorkspace,
        mode: BuildMode,
        settings: BuildSettings,
        entry_points: list[str],
        session: BundleSession,
        hydrator: ManifestHydrator,
        tsc: StreamingProcess | None,
        poll_interval: float,
        debounce: float,
    ) -> None:
        self.workspace_root = workspace_root
        self.paths = paths
        self.mode = mode
        self.settings = settings
        self.entry_points = entry_points
        self.session = session
        self.hydrator = hydrator
        self.tsc = tsc
        self.poll_interval = poll_interval
        self.debounce = debounce
        self.diag_max = settings.diag_max(watch=True)
        self.rebuild_count = 0
        self._snapshot: Snapshot = snapshot_sources(paths.source_root)
        self._poll_task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start_polling(self) -> None:
        self._poll_task = asyncio.create_task(self._poll())

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if snapshot_sources(self.paths.source_root) == self._snapshot:
                continue
            # Let a burst of writes settle before rebuilding.
            await asyncio.sleep(self.debounce)
            try:
                self._snapshot = snapshot_sources(self.paths.source_root)
                await self.rebuild()
            except Exception:
                logger.warning("%s watch: rebuild failed", PREFIX, exc_info=True)

    async def rebuild(self) -> bool:
        """Rebuild once and report; returns ``True`` when error-free."""
        start = time.perf_counter()
        errors: list = []
        warnings: list = []
        outputs: dict[str, int] | None = None
        try:
            outcome = await self.session.rebuild()
            warnings = list(outcome.warnings)
            outputs = collect_output_sizes(outcome.outputs, self.paths.build_root)
        except BundleFailure as exc:
            errors, warnings = exc.errors, exc.warnings
            if not errors and exc.reason:
                logger.error("%s[esbuild] %s", PREFIX, exc.reason)
        except BuildError as exc:
            errors = [BundleMessage(text=str(exc))]
        elapsed = (time.perf_counter() - start) * 1000
        self.rebuild_count += 1

        self._log_capped(errors, logging.ERROR, "error")
        self._log_capped(warnings, logging.WARNING, "warning")
        logger.info(
            "%s watch:esbuild %d error(s), %d warning(s) in %.1fms",
            PREFIX, len(errors), len(warnings), elapsed,
        )

        if errors or outputs is None:
            return False
        await self._refresh(outputs)
        return True

    def _log_capped(self, messages: list, level: int, noun: str) -> None:
        for msg in messages[: self.diag_max]:
            logger.log(level, "%s[esbuild] %s", PREFIX, format_bundle_message(msg))
        if len(messages) > self.diag_max:
            logger.log(
                level, "%s[esbuild] ... %d more %s(s) omitted",
                PREFIX, len(messages) - self.diag_max, noun,
            )

    async def _refresh(self, outputs: dict[str, int]) -> None:
        log = DiagnosticLog()
        reporter = CacheDiffReporter(self.workspace_root, self.settings, log)
        try:
            reporter.diff_outputs(outputs, self.mode)
            manifest = await self.hydrator.hydrate(
                self.workspace_root,
                self.paths.build_root,
                self.entry_points,
                log,
                diag_max=self.diag_max,
            )
            reporter.diff_manifest(manifest)
        except Exception:
            logger.warning("%s watch: manifest refresh failed", PREFIX, exc_info=True)
        finally:
            for diag in log:
                log_diagnostic(logger, diag)

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True

        if self._poll_task is not None:
            self._poll_task.cancel()
            # A poll task that already died keeps its exception; shutdown goes on.
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._poll_task

        try:
            await self.session.dispose()
        except Exception:
            logger.debug("disposing watch session failed", exc_info=True)

        if self.tsc is not None:
            self.tsc.send_signal()
            await self.tsc.wait()

        logger.info("%s watch:stopped", PREFIX)


async def _spawn_type_checker(
    type_checker: TypeCheckRunner,
    paths: ResolvedWorkspace,
    workspace_root: Path,
    env: Mapping[str, str],
) -> StreamingProcess | None:
    try:
        return await stream(
            type_checker.command(paths.tsconfig_path, watch=True),
            on_stdout=lambda line: logger.info("%s[tsc] %s", PREFIX, line),
            on_stderr=lambda line: logger.warning("%s[tsc] %s", PREFIX, line),
            cwd=workspace_root,
            env=env,
        )
    except ToolNotFound:
        logger.warning("%s watch: tsc not found in PATH; type-check disabled", PREFIX)
        return None


async def start_watch(
    workspace_root: str | Path,
    env: Mapping[str, str] | None = None,
    *,
    bundler: Bundler | None = None,
    loader: DefinitionLoader | None = None,
    type_checker: TypeCheckRunner | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    debounce: float = DEFAULT_DEBOUNCE,
) -> WatchHandle:
    """Start watching *workspace_root*; raises ``WatchStartError`` with no entries."""
    root = Path(workspace_root).resolve()
    env = dict(env or {})
    paths = resolve_workspace(root)
    settings = BuildSettings.from_env(env)
    mode = settings.mode

    entry_points = discover_entry_points(paths.source_root)
    if not entry_points:
        logger.warning(
            "%s watch: no entry found under %s (index.ts/js)", PREFIX, paths.source_root,
        )
        raise WatchStartError(str(paths.source_root))

    node_env = settings.node_env(mode)
    logger.info("%s watch:start (%s)", PREFIX, mode.value)

    type_checker = type_checker or TypeCheckRunner()
    tsc: StreamingProcess | None = None
    if should_type_check(mode, settings.typecheck_skip_requested):
        tsc = await _spawn_type_checker(
            type_checker, paths, root, {**env, "NODE_ENV": node_env},
        )
    else:
        logger.info("%s watch: type-check skipped by MODFORGE_TYPECHECK", PREFIX)

    bundler = bundler or EsbuildBundler(env=env)
    orchestrator = BuildOrchestrator(bundler, BuildSessionOwner(), type_checker)
    request = orchestrator.bundle_request(entry_points, paths, mode, settings).model_copy(
        update={"sourcemap": True},
    )
    session = await bundler.context(request)

    handle = WatchHandle(
        workspace_root=root,
        paths=paths,
        mode=mode,
        settings=settings,
        entry_points=entry_points,
        session=session,
        hydrator=ManifestHydrator(loader or NodeDefinitionLoader(env=env)),
        tsc=tsc,
        poll_interval=poll_interval,
        debounce=debounce,
    )
    await handle.rebuild()
    handle.start_polling()
    logger.info("%s watch:ready", PREFIX)
    return handle


__all__ = [
    "WatchHandle",
    "snapshot_sources",
    "start_watch",
]
