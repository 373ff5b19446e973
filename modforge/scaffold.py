"""Scaffold assets — template files provisioning tooling copies into a workspace."""

from __future__ import annotations

from pathlib import Path

from modforge.contracts import ScaffoldAsset

TEMPLATES_ROOT = Path(__file__).resolve().parent / "templates" / "backend"

_BACKEND_TARGET = Path("src") / "backend"

# (template path relative to TEMPLATES_ROOT, target relative to workspace root)
SCAFFOLD_LAYOUT: tuple[tuple[str, Path], ...] = (
    ("tsconfig.json", _BACKEND_TARGET / "tsconfig.json"),
    ("index.ts", _BACKEND_TARGET / "index.ts"),
    ("module.ts", _BACKEND_TARGET / "module.ts"),
    ("env.ts", _BACKEND_TARGET / "env.ts"),
    ("functions/hello/index.ts", _BACKEND_TARGET / "functions" / "hello" / "index.ts"),
    ("jobs/nightly/index.ts", _BACKEND_TARGET / "jobs" / "nightly" / "index.ts"),
    (".env.example", Path(".env.example")),
)


def get_scaffold_assets() -> list[ScaffoldAsset]:
    return [
        ScaffoldAsset(source_path=TEMPLATES_ROOT / source, target_path=target)
        for source, target in SCAFFOLD_LAYOUT
    ]


__all__ = ["SCAFFOLD_LAYOUT", "TEMPLATES_ROOT", "get_scaffold_assets"]
