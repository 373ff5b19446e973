"""Build error hierarchy.

Every error carries typed fields (not just a message string),
supports ``to_dict()`` for serialisation, and has a readable
``__str__`` for logging.

Fatal errors deliberately carry generic messages — the detail lives in
the diagnostics list collected up to the point of failure.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modforge.contracts import Diagnostic


class BuildError(Exception):
    """Base error for all build failures.

    ``diagnostics`` holds everything the build recorded before the failure
    (unfiltered), once the provider has attached it.
    """

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}
        self.diagnostics: list[Diagnostic] = []

    def attach_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> None:
        self.diagnostics = list(diagnostics)

    def to_dict(self) -> dict:
        data = {"error": type(self).__name__, "message": self.message, **self.detail}
        if self.diagnostics:
            data["diagnostics"] = [d.model_dump() for d in self.diagnostics]
        return data

    def __str__(self) -> str:
        return self.message


class TypeCheckFailure(BuildError):
    """The type-checker exited non-zero."""

    def __init__(self, exit_code: int, tsconfig_path: str) -> None:
        self.exit_code = exit_code
        self.tsconfig_path = tsconfig_path
        super().__init__(
            "Type checking failed.",
            detail={"exit_code": exit_code, "tsconfig_path": tsconfig_path},
        )


class BundleFailure(BuildError):
    """The bundler reported errors (or crashed) for a build or rebuild."""

    def __init__(
        self,
        errors: list | None = None,
        warnings: list | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])
        self.reason = reason or ""
        detail: dict = {"error_count": len(self.errors), "warning_count": len(self.warnings)}
        if reason:
            detail["reason"] = reason
        super().__init__("esbuild failed.", detail=detail)


class ToolNotFound(BuildError):
    """An external binary is not on the execution path."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(
            f"'{tool_name}' not found in PATH",
            detail={"tool_name": tool_name},
        )


class WatchStartError(BuildError):
    """Watch mode could not start (no entry points to watch)."""

    def __init__(self, source_root: str) -> None:
        self.source_root = source_root
        super().__init__(
            "No backend entry point found.",
            detail={"source_root": source_root},
        )
