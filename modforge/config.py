"""Build configuration loaded from the caller's environment map.

Uses ``pydantic-settings`` for type coercion, but the only source is the
map handed to ``BuildSettings.from_env`` (or ``os.environ`` when the caller
passes none).  Every field is parsed leniently: an unrecognised value falls
back to its default instead of failing the build.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from modforge.contracts import BuildMode, Severity
from modforge.diagnostics import normalize_log_level
from modforge.workspace import normalize_mode

DEFAULT_DIAG_MAX = 50
DEFAULT_WATCH_DIAG_MAX = 20

_TRUTHY: frozenset[str] = frozenset({"on", "true", "1", "yes"})
_CACHE_LOG_OFF: frozenset[str] = frozenset({"off", "0", "false", "quiet", "silent", "skip"})


class BuildSettings(BaseSettings):
    """Environment-driven knobs for one build.

    Field names match the environment variable names.
    """

    model_config = SettingsConfigDict(extra="ignore", frozen=True)

    MODFORGE_MODE: BuildMode = BuildMode.BUILD
    MODFORGE_TYPECHECK: str = ""
    MODFORGE_SOURCEMAPS: bool = False
    MODFORGE_DIAG_MAX: int | None = None
    MODFORGE_LOG_LEVEL: Severity = "info"
    MODFORGE_CACHE_LOG: bool = True
    NODE_ENV: str | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # The env map is passed explicitly; never read the process env behind
        # the caller's back.
        return (init_settings,)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> BuildSettings:
        source = os.environ if env is None else env
        known = {k: v for k, v in source.items() if k in cls.model_fields}
        return cls(**known)

    # -- lenient parsers -----------------------------------------------------

    @field_validator("MODFORGE_MODE", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> BuildMode:
        return normalize_mode(value)

    @field_validator("MODFORGE_TYPECHECK", mode="before")
    @classmethod
    def _parse_typecheck(cls, value: Any) -> str:
        return value.strip().lower() if isinstance(value, str) else ""

    @field_validator("MODFORGE_SOURCEMAPS", mode="before")
    @classmethod
    def _parse_sourcemaps(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return isinstance(value, str) and value.strip().lower() in _TRUTHY

    @field_validator("MODFORGE_DIAG_MAX", mode="before")
    @classmethod
    def _parse_diag_max(cls, value: Any) -> int | None:
        if isinstance(value, int) and not isinstance(value, bool):
            return value if value > 0 else None
        if not isinstance(value, str):
            return None
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None

    @field_validator("MODFORGE_LOG_LEVEL", mode="before")
    @classmethod
    def _parse_log_level(cls, value: Any) -> str:
        return normalize_log_level(value)

    @field_validator("MODFORGE_CACHE_LOG", mode="before")
    @classmethod
    def _parse_cache_log(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if not isinstance(value, str) or not value:
            return True
        return value.strip().lower() not in _CACHE_LOG_OFF

    # -- derived -------------------------------------------------------------

    @property
    def mode(self) -> BuildMode:
        return self.MODFORGE_MODE

    @property
    def typecheck_skip_requested(self) -> bool:
        return self.MODFORGE_TYPECHECK == "skip"

    @property
    def publish_sourcemaps(self) -> bool:
        return self.MODFORGE_SOURCEMAPS

    @property
    def min_severity(self) -> Severity:
        return self.MODFORGE_LOG_LEVEL

    @property
    def cache_log_enabled(self) -> bool:
        return self.MODFORGE_CACHE_LOG

    def diag_max(self, *, watch: bool = False) -> int:
        """Diagnostic cap; defaults differ between one-shot and watch runs."""
        if self.MODFORGE_DIAG_MAX is not None:
            return self.MODFORGE_DIAG_MAX
        return DEFAULT_WATCH_DIAG_MAX if watch else DEFAULT_DIAG_MAX

    def node_env(self, mode: BuildMode) -> str:
        if self.NODE_ENV:
            return self.NODE_ENV
        return "production" if mode is BuildMode.PUBLISH else "development"
