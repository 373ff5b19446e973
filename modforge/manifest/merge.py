"""Manifest merge — static package config first, compiled definition second.

Precedence is stated once, as data, in ``MERGE_TABLE``; ``merge_definition``
just walks it.  Both inputs are raw camelCase mappings — the merged result
is validated afterwards, so nothing here trusts value types beyond what the
rule itself needs.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from modforge.contracts import CONTRACT_VERSION, ModuleDefinition

COLLECTION_FIELDS: tuple[str, ...] = ("routes", "views", "jobs", "events", "services")


class MergeRule(str, enum.Enum):
    PREFER_DEFINITION = "prefer_definition"  # definition value if present, else candidate
    REPLACE = "replace"  # definition's entry list replaces the candidate's wholesale
    UNION = "union"  # candidate + definition, de-duplicated, candidate order first


@dataclass(frozen=True)
class FieldRule:
    key: str
    rule: MergeRule


MERGE_TABLE: tuple[FieldRule, ...] = (
    FieldRule("contractVersion", MergeRule.PREFER_DEFINITION),
    FieldRule("name", MergeRule.PREFER_DEFINITION),
    FieldRule("version", MergeRule.PREFER_DEFINITION),
    FieldRule("kind", MergeRule.PREFER_DEFINITION),
    FieldRule("capabilities", MergeRule.UNION),
    FieldRule("routes", MergeRule.REPLACE),
    FieldRule("views", MergeRule.REPLACE),
    FieldRule("jobs", MergeRule.PREFER_DEFINITION),
    FieldRule("events", MergeRule.PREFER_DEFINITION),
    FieldRule("services", MergeRule.PREFER_DEFINITION),
    FieldRule("init", MergeRule.PREFER_DEFINITION),
    FieldRule("dispose", MergeRule.PREFER_DEFINITION),
)


# ---------------------------------------------------------------------------
# Identity fallbacks
# ---------------------------------------------------------------------------


def _non_empty_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def module_config(package: Mapping[str, Any] | None) -> dict[str, Any]:
    """The ``modforge.module`` block of a package descriptor, or ``{}``."""
    if not isinstance(package, Mapping):
        return {}
    block = package.get("modforge")
    config = block.get("module") if isinstance(block, Mapping) else None
    return dict(config) if isinstance(config, Mapping) else {}


def derive_module_name(package: Mapping[str, Any] | None, workspace_root: str | Path) -> str:
    config = module_config(package)
    name = _non_empty_str(config.get("name"))
    if name is None and isinstance(package, Mapping):
        name = _non_empty_str(package.get("name"))
    return name or f"backend-module-{Path(workspace_root).name}"


def derive_module_version(package: Mapping[str, Any] | None) -> str:
    config = module_config(package)
    version = _non_empty_str(config.get("version"))
    if version is None and isinstance(package, Mapping):
        version = _non_empty_str(package.get("version"))
    return version or "0.0.0"


# ---------------------------------------------------------------------------
# Candidate + merge
# ---------------------------------------------------------------------------


def build_candidate(package: Mapping[str, Any] | None, workspace_root: str | Path) -> dict[str, Any]:
    """Manifest candidate from the static config, defaulting every field."""
    config = module_config(package)

    def _str_or(key: str, default: str) -> str:
        value = config.get(key)
        return value if isinstance(value, str) else default

    candidate: dict[str, Any] = {
        "contractVersion": _str_or("contractVersion", CONTRACT_VERSION),
        "name": _str_or("name", derive_module_name(package, workspace_root)),
        "version": _str_or("version", derive_module_version(package)),
        "kind": "backend",
        "capabilities": config["capabilities"] if isinstance(config.get("capabilities"), list) else [],
    }
    for key in COLLECTION_FIELDS:
        value = config.get(key)
        candidate[key] = value if value is not None else []
    for key in ("init", "dispose"):
        if config.get(key) is not None:
            candidate[key] = config[key]
    return candidate


def _union(first: Any, second: Any) -> list[Any]:
    merged: list[Any] = []
    for source in (first, second):
        if not isinstance(source, list):
            continue
        for item in source:
            if item not in merged:
                merged.append(item)
    return merged


def merge_definition(candidate: Mapping[str, Any], definition: ModuleDefinition) -> dict[str, Any]:
    """Overlay a loaded definition on the candidate following ``MERGE_TABLE``."""
    override = definition.manifest
    entries = {"routes": definition.routes, "views": definition.views}
    merged = dict(candidate)

    for field in MERGE_TABLE:
        key = field.key
        if field.rule is MergeRule.UNION:
            merged[key] = _union(candidate.get(key), override.get(key))
        elif field.rule is MergeRule.REPLACE:
            if entries.get(key) is not None:
                merged[key] = entries[key]
            elif override.get(key) is not None:
                merged[key] = override[key]
        elif override.get(key) is not None:
            merged[key] = override[key]
    return merged


__all__ = [
    "COLLECTION_FIELDS",
    "FieldRule",
    "MERGE_TABLE",
    "MergeRule",
    "build_candidate",
    "derive_module_name",
    "derive_module_version",
    "merge_definition",
    "module_config",
]
