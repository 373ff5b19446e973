"""Build contracts — Pydantic models shared by every pipeline stage.

Covers the caller-facing surface (``BuildOptions`` / ``BuildResult``),
the diagnostic stream, produced artifacts, and the module manifest schema
that both the package descriptor and the compiled module definition are
validated against.

JSON-facing models use camelCase aliases (``contractVersion``,
``entryPoints``) and accept either spelling on input.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CONTRACT_VERSION = "1.0.0"

MODE_ENV_VAR = "MODFORGE_MODE"

Severity = Literal["info", "warn", "error"]

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


# ---------------------------------------------------------------------------
# Build mode
# ---------------------------------------------------------------------------


class BuildMode(str, enum.Enum):
    """Which bundling policy a build runs under."""

    BUILD = "build"
    PUBLISH = "publish"
    TEST = "test"

    @classmethod
    def parse(cls, raw: object) -> BuildMode:
        """Lower-case and validate *raw*; anything unrecognised is ``BUILD``."""
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return cls.BUILD
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return cls.BUILD


# ---------------------------------------------------------------------------
# Diagnostics & artifacts
# ---------------------------------------------------------------------------


class Diagnostic(BaseModel):
    """A single line in the build's diagnostic stream."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    file: str | None = None


class ArtifactRecord(BaseModel):
    """A file produced in the build output directory."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Absolute path of the produced file")
    type: Literal["bundle", "asset"]


# ---------------------------------------------------------------------------
# Module manifest schema
# ---------------------------------------------------------------------------


class _ManifestPart(BaseModel):
    """Base for manifest sub-objects: frozen, camelCase aliases, extras kept."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class RouteDefinition(_ManifestPart):
    method: HttpMethod
    path: str = Field(..., min_length=1)
    name: str | None = None
    summary: str | None = None
    description: str | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ViewDefinition(_ManifestPart):
    path: str = Field(..., min_length=1)
    name: str | None = None


class JobDefinition(_ManifestPart):
    name: str = Field(..., min_length=1)
    schedule: str | None = None
    description: str | None = None
    priority: int | str | None = None


class EventDefinition(_ManifestPart):
    type: str = Field(..., min_length=1)
    description: str | None = None


class ServiceDefinition(_ManifestPart):
    name: str = Field(..., min_length=1)
    description: str | None = None


class HookDescriptor(_ManifestPart):
    """Describes a module lifecycle hook (``init`` / ``dispose``)."""

    name: str | None = None
    description: str | None = None


class ModuleManifest(BaseModel):
    """Validated description of a backend module's public surface.

    Unknown top-level keys are dropped rather than rejected.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    contract_version: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    kind: Literal["backend"] = "backend"
    capabilities: list[str] = Field(default_factory=list)
    routes: list[RouteDefinition] = Field(default_factory=list)
    views: list[ViewDefinition] = Field(default_factory=list)
    jobs: list[JobDefinition] = Field(default_factory=list)
    events: list[EventDefinition] = Field(default_factory=list)
    services: list[ServiceDefinition] = Field(default_factory=list)
    init: HookDescriptor | None = None
    dispose: HookDescriptor | None = None

    @classmethod
    def minimal(cls, name: str, version: str) -> ModuleManifest:
        """Fallback manifest: identity only, every collection empty."""
        return cls(contract_version=CONTRACT_VERSION, name=name, version=version)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ModuleDefinition(BaseModel):
    """Untrusted shape of a compiled module-definition export.

    Only the data parts survive serialisation across the loader boundary;
    route/view handlers are dropped and ``routes`` / ``views`` carry each
    entry's ``.definition`` object.  Nothing here is trusted until the
    merged manifest passes ``ModuleManifest`` validation.
    """

    model_config = ConfigDict(frozen=True)

    manifest: dict[str, Any] = Field(default_factory=dict)
    routes: list[Any] | None = None
    views: list[Any] | None = None


# ---------------------------------------------------------------------------
# Caller-facing build surface
# ---------------------------------------------------------------------------


class BuildOptions(BaseModel):
    """Input to a single ``build`` call."""

    model_config = ConfigDict(frozen=True)

    workspace_root: Path
    env: dict[str, str] | None = None
    incremental: bool = False
    mode: BuildMode = BuildMode.BUILD

    @model_validator(mode="before")
    @classmethod
    def _derive_mode(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("mode") is None:
            env = data.get("env") or {}
            data = {**data, "mode": BuildMode.parse(env.get(MODE_ENV_VAR))}
        return data

    @field_validator("mode", mode="before")
    @classmethod
    def _normalise_mode(cls, value: Any) -> BuildMode:
        return BuildMode.parse(value)

    @field_validator("workspace_root")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return value.resolve()


class BuildManifest(BaseModel):
    """What a build reports about its outputs and module surface."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    entry_points: list[str] = Field(default_factory=list)
    static_assets: list[str] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    module: ModuleManifest


class BuildResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifacts: list[ArtifactRecord] = Field(default_factory=list)
    manifest: BuildManifest


class ResolvedWorkspace(BaseModel):
    """Fixed directory layout of a backend workspace."""

    model_config = ConfigDict(frozen=True)

    source_root: Path
    build_root: Path
    tests_root: Path

    @property
    def tsconfig_path(self) -> Path:
        return self.source_root / "tsconfig.json"


class ScaffoldAsset(BaseModel):
    """A template file and where provisioning tooling should place it."""

    model_config = ConfigDict(frozen=True)

    source_path: Path
    target_path: Path


__all__ = [
    "CONTRACT_VERSION",
    "MODE_ENV_VAR",
    "ArtifactRecord",
    "BuildManifest",
    "BuildMode",
    "BuildOptions",
    "BuildResult",
    "Diagnostic",
    "EventDefinition",
    "HookDescriptor",
    "HttpMethod",
    "JobDefinition",
    "ModuleDefinition",
    "ModuleManifest",
    "ResolvedWorkspace",
    "RouteDefinition",
    "ScaffoldAsset",
    "ServiceDefinition",
    "Severity",
    "ViewDefinition",
]
