"""Entry discovery — find the files the bundler treats as compilation units.

Three fixed locations are searched under the source root: the server
``index.*``, ``functions/*/index.*`` and ``jobs/*/index.*``.  Directory
enumeration order is never trusted: anything derived from the entry set
(``entry_signature``) sorts first.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

ENTRY_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".mjs")

ENTRY_PATTERNS: tuple[str, ...] = (
    "index.*",
    "functions/*/index.*",
    "jobs/*/index.*",
)

MODULE_SOURCE_PATTERNS: tuple[str, ...] = (
    "module.*",
    "module/index.*",
)


def _matches(source_root: Path, pattern: str) -> list[Path]:
    # Only `<stem><ext>`; `index.d.ts` or `index.test.ts` are not entries.
    stem = pattern.rsplit("/", 1)[-1].split(".", 1)[0]
    allowed = {f"{stem}{ext}" for ext in ENTRY_EXTENSIONS}
    found: list[Path] = []
    for candidate in source_root.glob(pattern):
        rel_parts = candidate.relative_to(source_root).parts
        if any(part.startswith(".") for part in rel_parts):
            continue
        if candidate.name not in allowed or not candidate.is_file():
            continue
        found.append(candidate)
    return found


def discover_entry_points(source_root: str | Path) -> list[str]:
    """Return absolute paths of every entry file, deduplicated.

    An empty list is a valid answer; callers decide how loud to be.
    """
    root = Path(source_root)
    if not root.is_dir():
        return []

    entries: dict[str, None] = {}
    for pattern in ENTRY_PATTERNS:
        for match in sorted(_matches(root, pattern)):
            entries.setdefault(str(match), None)
    return list(entries)


def entry_signature(entry_points: Iterable[str]) -> str:
    """Deterministic fingerprint of an entry set: sorted, ``|``-joined."""
    return "|".join(sorted(entry_points))


def discover_module_definition_source(source_root: str | Path) -> Path | None:
    """Locate ``module.*`` (or ``module/index.*``); first pattern with a hit wins.

    Within a pattern, extensions are preferred in ``ENTRY_EXTENSIONS`` order.
    """
    root = Path(source_root)
    if not root.is_dir():
        return None

    for pattern in MODULE_SOURCE_PATTERNS:
        matches = _matches(root, pattern)
        if matches:
            return min(matches, key=lambda p: ENTRY_EXTENSIONS.index(p.suffix))
    return None
