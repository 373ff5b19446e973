"""Cache diff reporting — what changed since the previous build.

Two JSON files under ``<workspace>/.modforge/``:

- ``backend-outputs.json``          build-relative path → byte size
- ``backend-manifest-digest.json``  ``{routes, views, capabilities}``

Both are read leniently (absent or corrupt → no prior state, no diff) and
overwritten on every build.  Cache IO never affects the build outcome; any
failure is logged at DEBUG and dropped.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from modforge.config import BuildSettings
from modforge.contracts import BuildMode, ModuleManifest
from modforge.diagnostics import PREFIX, DiagnosticLog, format_name_list
from modforge.manifest.checks import route_key
from modforge.workspace import state_dir

logger = logging.getLogger(__name__)

OUTPUTS_CACHE_FILE = "backend-outputs.json"
MANIFEST_DIGEST_FILE = "backend-manifest-digest.json"


def _read_json(path: Path) -> Any | None:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.debug("no usable cache at %s", path)
        return None


def _write_json(path: Path, data: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except OSError:
        logger.debug("failed to persist cache %s", path, exc_info=True)


def manifest_digest(manifest: ModuleManifest) -> dict[str, list[str]]:
    """Sorted, de-duplicated route keys, view paths and capabilities."""
    return {
        "routes": sorted({route_key(r) for r in manifest.routes}),
        "views": sorted({v.path for v in manifest.views}),
        "capabilities": sorted(set(manifest.capabilities)),
    }


def _string_set(value: Any) -> set[str]:
    if not isinstance(value, list):
        return set()
    return {item for item in value if isinstance(item, str)}


class CacheDiffReporter:
    """Persists output sizes and manifest digests, reporting the deltas.

    With ``MODFORGE_CACHE_LOG`` switched off the diff messages go to a
    throwaway log; persistence still happens.
    """

    def __init__(
        self,
        workspace_root: str | Path,
        settings: BuildSettings,
        log: DiagnosticLog,
    ) -> None:
        self.state_dir = state_dir(workspace_root)
        self.limit = settings.diag_max()
        self.log = log if settings.cache_log_enabled else DiagnosticLog()

    @property
    def outputs_path(self) -> Path:
        return self.state_dir / OUTPUTS_CACHE_FILE

    @property
    def digest_path(self) -> Path:
        return self.state_dir / MANIFEST_DIGEST_FILE

    # -- outputs -------------------------------------------------------------

    def diff_outputs(self, outputs: Mapping[str, int] | None, mode: BuildMode) -> None:
        if outputs is None:
            return

        raw = _read_json(self.outputs_path)
        previous = raw if isinstance(raw, dict) else None

        if previous is not None:
            changed = [
                rel for rel, size in outputs.items()
                if rel in previous and previous[rel] != size
            ]
            removed = [rel for rel in previous if rel not in outputs]
            if changed or removed:
                removed_info = f", removed={len(removed)}" if removed else ""
                self.log.info(
                    f"{PREFIX} {mode.value}:changed {len(changed)} file(s): "
                    f"{format_name_list(changed, self.limit)}{removed_info}"
                )

        _write_json(self.outputs_path, dict(outputs))

    # -- manifest ------------------------------------------------------------

    def diff_manifest(self, manifest: ModuleManifest) -> None:
        digest = manifest_digest(manifest)
        raw = _read_json(self.digest_path)

        if isinstance(raw, dict):
            prev_routes, prev_views = _string_set(raw.get("routes")), _string_set(raw.get("views"))
            next_routes, next_views = set(digest["routes"]), set(digest["views"])

            added_routes = sorted(next_routes - prev_routes)
            removed_routes = sorted(prev_routes - next_routes)
            added_views = sorted(next_views - prev_views)
            removed_views = sorted(prev_views - next_views)

            if added_routes or removed_routes or added_views or removed_views:
                message = (
                    f"{PREFIX} manifest changed: "
                    f"routes +{len(added_routes)}/-{len(removed_routes)}; "
                    f"views +{len(added_views)}/-{len(removed_views)}"
                )
                details = [
                    f"{label}: {format_name_list(items, self.limit)}"
                    for label, items in (
                        ("added routes", added_routes),
                        ("removed routes", removed_routes),
                        ("added views", added_views),
                        ("removed views", removed_views),
                    )
                    if items
                ]
                self.log.info(f"{message} | {' | '.join(details)}")

        _write_json(self.digest_path, digest)


__all__ = [
    "MANIFEST_DIGEST_FILE",
    "OUTPUTS_CACHE_FILE",
    "CacheDiffReporter",
    "manifest_digest",
]
