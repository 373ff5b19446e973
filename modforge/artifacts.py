"""Artifact collection — classify what the bundler left in the build root."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

from modforge.contracts import ArtifactRecord, BuildManifest, ModuleManifest
from modforge.diagnostics import DiagnosticLog, summarize_entry_buckets


def _relative(path: Path, root: Path) -> str:
    return os.path.relpath(path, root).replace(os.sep, "/")


def collect_artifacts(build_root: str | Path, include_sourcemaps: bool) -> list[ArtifactRecord]:
    """Scan for ``**/*.js`` (and ``**/*.js.map`` when maps were emitted)."""
    root = Path(build_root)
    if not root.is_dir():
        return []

    patterns = ["**/*.js"]
    if include_sourcemaps:
        patterns.append("**/*.js.map")

    matches: dict[str, None] = {}
    for pattern in patterns:
        for candidate in sorted(root.glob(pattern)):
            rel = _relative(candidate, root)
            if any(part.startswith(".") for part in rel.split("/")) or not candidate.is_file():
                continue
            matches.setdefault(rel, None)

    return [
        ArtifactRecord(
            path=str(root / rel),
            type="asset" if rel.endswith(".map") else "bundle",
        )
        for rel in matches
    ]


def create_build_manifest(
    build_root: str | Path,
    artifacts: Sequence[ArtifactRecord],
    log: DiagnosticLog,
    module_manifest: ModuleManifest,
) -> BuildManifest:
    """Derive entry points from the artifacts and assemble the build manifest.

    The returned manifest carries the *unfiltered* diagnostics snapshot.
    """
    root = Path(build_root)
    entry_points = [
        rel
        for rel in (_relative(Path(a.path), root) for a in artifacts)
        if rel.endswith("index.js")
    ]

    if not entry_points:
        default_entry = root / "index.js"
        if default_entry.exists():
            entry_points.append(_relative(default_entry, root))
        else:
            log.warn("No backend entry point found (expected index.js).")

    summarize_entry_buckets(log, entry_points)

    return BuildManifest(
        entry_points=entry_points,
        static_assets=[],
        diagnostics=log.items,
        module=module_manifest,
    )
