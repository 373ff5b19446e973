"""Manifest hydration — descriptor config + compiled definition → manifest.

1. Read ``package.json``; a missing or unreadable descriptor is a ``warn``.
2. Build a candidate from its ``modforge.module`` block, defaulting fields.
3. Load the compiled definition (first candidate output that loads wins).
4. Merge the definition over the candidate (``merge.MERGE_TABLE``).
5. Validate.  On failure record one ``error`` listing every issue and
   return the minimal fallback manifest instead.
6. Run the consistency checks.

``name`` and ``version`` are non-empty on every path out of ``hydrate``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from modforge.config import DEFAULT_DIAG_MAX
from modforge.contracts import ModuleManifest
from modforge.diagnostics import PREFIX, DiagnosticLog
from modforge.manifest.checks import run_consistency_checks
from modforge.manifest.loader import DefinitionLoader, load_module_definition
from modforge.manifest.merge import (
    build_candidate,
    derive_module_name,
    derive_module_version,
    merge_definition,
)

logger = logging.getLogger(__name__)

PACKAGE_DESCRIPTOR = "package.json"


def read_package_descriptor(workspace_root: Path, log: DiagnosticLog) -> dict[str, Any] | None:
    pkg_path = workspace_root / PACKAGE_DESCRIPTOR
    try:
        data = json.loads(pkg_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        log.warn(f"{PREFIX} unable to read {pkg_path}: {exc}. Using defaults.")
        return None
    if not isinstance(data, dict):
        log.warn(f"{PREFIX} unable to read {pkg_path}: expected a JSON object. Using defaults.")
        return None
    return data


def format_validation_issues(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or '(root)'}: {err['msg']}"
        for err in exc.errors()
    )


class ManifestHydrator:
    """Produces the validated ``ModuleManifest`` for a workspace."""

    def __init__(self, loader: DefinitionLoader) -> None:
        self.loader = loader

    async def hydrate(
        self,
        workspace_root: Path,
        build_root: Path,
        entry_points: Sequence[str],
        log: DiagnosticLog,
        *,
        diag_max: int = DEFAULT_DIAG_MAX,
    ) -> ModuleManifest:
        package = read_package_descriptor(workspace_root, log)
        candidate = build_candidate(package, workspace_root)

        definition = await load_module_definition(build_root, self.loader, log)
        if definition is not None:
            candidate = merge_definition(candidate, definition)

        try:
            manifest = ModuleManifest.model_validate(candidate)
        except ValidationError as exc:
            log.error(
                f"{PREFIX} module manifest validation failed "
                f"({format_validation_issues(exc)}). Falling back to defaults."
            )
            return ModuleManifest.minimal(
                derive_module_name(package, workspace_root),
                derive_module_version(package),
            )

        run_consistency_checks(manifest, entry_points, log, limit=diag_max)
        logger.debug("hydrated manifest %s@%s", manifest.name, manifest.version)
        return manifest
