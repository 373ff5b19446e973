"""Workspace layout — where a backend module's sources, outputs and state live."""

from __future__ import annotations

from pathlib import Path

from modforge.contracts import BuildMode, ResolvedWorkspace

STATE_DIR_NAME = ".modforge"


def resolve_workspace(workspace_root: str | Path) -> ResolvedWorkspace:
    """Return the fixed source / build / tests roots under *workspace_root*."""
    root = Path(workspace_root)
    source_root = root / "src" / "backend"
    return ResolvedWorkspace(
        source_root=source_root,
        build_root=root / "build" / "backend",
        tests_root=source_root / "tests",
    )


def normalize_mode(raw_mode: object) -> BuildMode:
    return BuildMode.parse(raw_mode)


def state_dir(workspace_root: str | Path) -> Path:
    """Workspace-local directory holding persisted cache files."""
    return Path(workspace_root) / STATE_DIR_NAME
