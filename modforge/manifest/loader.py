"""Compiled module-definition loader — a trust boundary.

Compiled definitions are JavaScript, so loading one means asking ``node`` to
import it and print the data parts as JSON.  Every attempt yields a tagged
result::

    Loaded(definition) | NotFound(path) | LoadError(path, reason)

The ``ModuleDefinition`` in ``Loaded`` has only been shape-checked at the
top level; its manifest content is untrusted until the merged manifest
passes schema validation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union

from pydantic import ValidationError

from modforge.contracts import ModuleDefinition
from modforge.diagnostics import PREFIX, DiagnosticLog
from modforge.errors import ToolNotFound
from modforge.runner import run

logger = logging.getLogger(__name__)

NODE_BINARY = "node"

DEFINITION_CANDIDATES: tuple[str, ...] = (
    "module.js",
    "module.mjs",
    "module/index.js",
    "module/index.mjs",
)

EXPORT_KEYS: tuple[str, ...] = ("module", "moduleDefinition", "default", "backendModule")

# Imports the compiled file (cache-busted), picks the first non-null export
# among EXPORT_KEYS and prints its data parts; handlers never cross over.
_LOADER_SCRIPT = """
const { pathToFileURL } = await import('node:url');
const target = process.argv[1];
const keys = JSON.parse(process.argv[2]);
const mod = await import(`${pathToFileURL(target).href}?t=${Date.now()}`);
let value;
for (const key of keys) {
  if (key in mod && mod[key] !== null && mod[key] !== undefined) { value = mod[key]; break; }
}
const pick = (items) => Array.isArray(items)
  ? items.map((item) => (item && typeof item === 'object' ? item.definition ?? null : null))
  : undefined;
const payload = value && typeof value === 'object' && 'manifest' in value
  ? { found: true, manifest: value.manifest ?? {}, routes: pick(value.routes), views: pick(value.views) }
  : { found: false };
process.stdout.write(JSON.stringify(payload));
"""


# ---------------------------------------------------------------------------
# Tagged results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Loaded:
    path: Path
    definition: ModuleDefinition


@dataclass(frozen=True)
class NotFound:
    path: Path


@dataclass(frozen=True)
class LoadError:
    path: Path
    reason: str
    export_missing: bool = False


LoadResult = Union[Loaded, NotFound, LoadError]


class DefinitionLoader(Protocol):
    async def load(self, path: Path) -> LoadResult: ...


# ---------------------------------------------------------------------------
# node-backed loader
# ---------------------------------------------------------------------------


class NodeDefinitionLoader:
    """Loads a compiled definition by importing it in a ``node`` child."""

    def __init__(self, binary: str = NODE_BINARY, env: dict[str, str] | None = None) -> None:
        self.binary = binary
        self.env = env or {}

    async def load(self, path: Path) -> LoadResult:
        if not path.is_file():
            return NotFound(path)

        argv = [
            self.binary,
            "--input-type=module",
            "-e",
            _LOADER_SCRIPT,
            str(path),
            json.dumps(list(EXPORT_KEYS)),
        ]
        try:
            result = await run(argv, cwd=path.parent, env=self.env)
        except ToolNotFound as exc:
            return LoadError(path, str(exc))

        if not result.ok:
            lines = [ln for ln in result.stderr.strip().splitlines() if ln.strip()]
            return LoadError(path, lines[-1] if lines else f"node exited {result.exit_code}")

        return parse_loader_payload(path, result.stdout)


def parse_loader_payload(path: Path, raw: str) -> LoadResult:
    """Turn the loader script's JSON output into a tagged result."""
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        return LoadError(path, f"unreadable loader output: {exc}")

    if not isinstance(payload, dict) or not payload.get("found"):
        return LoadError(path, "no module definition export", export_missing=True)

    try:
        definition = ModuleDefinition.model_validate(
            {k: payload.get(k) for k in ("manifest", "routes", "views") if payload.get(k) is not None}
        )
    except ValidationError as exc:
        return LoadError(path, f"malformed definition: {exc.error_count()} issue(s)")
    return Loaded(path, definition)


# ---------------------------------------------------------------------------
# Candidate search
# ---------------------------------------------------------------------------


async def load_module_definition(
    build_root: Path,
    loader: DefinitionLoader,
    log: DiagnosticLog,
    candidates: Sequence[str] = DEFINITION_CANDIDATES,
) -> ModuleDefinition | None:
    """Try each candidate output in order; the first that loads wins.

    Failures are reported as ``warn`` and the search moves on.
    """
    for rel in candidates:
        full_path = build_root / rel
        result = await loader.load(full_path)
        if isinstance(result, Loaded):
            logger.debug("loaded module definition from %s", full_path)
            return result.definition
        if isinstance(result, NotFound):
            continue
        if result.export_missing:
            log.warn(
                f"{PREFIX} module definition at {full_path} does not export a "
                "createModule() definition."
            )
        else:
            log.warn(f"{PREFIX} failed to load module definition from {full_path}: {result.reason}")
    return None


async def summarize_built_manifest(
    build_root: Path, loader: DefinitionLoader
) -> dict[str, object] | None:
    """Route / view counts and capabilities from the compiled definition alone."""
    definition = await load_module_definition(build_root, loader, DiagnosticLog())
    if definition is None or not definition.manifest:
        return None
    manifest = definition.manifest
    routes = manifest.get("routes")
    views = manifest.get("views")
    return {
        "routes": len(routes) if isinstance(routes, list) else 0,
        "views": len(views) if isinstance(views, list) else 0,
        "capabilities": manifest.get("capabilities"),
    }


__all__ = [
    "DEFINITION_CANDIDATES",
    "DefinitionLoader",
    "EXPORT_KEYS",
    "LoadError",
    "LoadResult",
    "Loaded",
    "NodeDefinitionLoader",
    "NotFound",
    "load_module_definition",
    "parse_loader_payload",
    "summarize_built_manifest",
]
