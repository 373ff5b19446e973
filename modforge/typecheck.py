"""Type-check runner — a no-emit ``tsc`` pass as a child process.

Policy
------
- Publish always type-checks; other modes skip when ``MODFORGE_TYPECHECK=skip``.
- Missing ``tsconfig.json`` → ``warn``, soft pass.
- ``tsc`` not on PATH → ``warn``, soft pass (soft dependency).
- Non-zero exit → ``error`` diagnostics (exit code, stderr, parsed
  ``file(line,col)`` errors, leftover stdout) then ``TypeCheckFailure``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from modforge.contracts import BuildMode, Diagnostic
from modforge.diagnostics import PREFIX, DiagnosticLog
from modforge.errors import ToolNotFound, TypeCheckFailure
from modforge.runner import run

logger = logging.getLogger(__name__)

TSC_BINARY = "tsc"

# TSC error line format:  file.ts(line,col): error TS1234: message
_TSC_LINE_RE = re.compile(
    r"^(.+?)\((\d+),(\d+)\):\s+(error|warning|info)\s+(TS\d+):\s+(.+)$",
)

_TSC_SEVERITY: dict[str, str] = {"error": "error", "warning": "warn", "info": "info"}


def should_type_check(mode: BuildMode, skip_requested: bool) -> bool:
    """Publish ignores the opt-out flag; every other mode honours it."""
    if mode is BuildMode.PUBLISH:
        return True
    return not skip_requested


def parse_tsc_output(raw: str) -> list[Diagnostic]:
    """Parse ``tsc --noEmit --pretty false`` output into diagnostics.

    Line format::

        file.ts(line,col): error TS2304: Cannot find name 'foo'.

    Lines that do not match are ignored.  Returns an empty list for
    empty input.
    """
    if not raw or not raw.strip():
        return []

    diagnostics: list[Diagnostic] = []
    for line in raw.splitlines():
        m = _TSC_LINE_RE.match(line.rstrip())
        if not m:
            continue
        file_path = m.group(1).strip()
        diagnostics.append(Diagnostic(
            severity=_TSC_SEVERITY.get(m.group(4).lower(), "error"),
            message=f"{file_path}:{m.group(2)}:{m.group(3)} {m.group(5)}: {m.group(6).strip()}",
            file=file_path,
        ))
    return diagnostics


class TypeCheckRunner:
    """Runs ``tsc -p <tsconfig> --noEmit`` and records the outcome."""

    def __init__(self, binary: str = TSC_BINARY) -> None:
        self.binary = binary

    def command(self, tsconfig_path: Path, *, watch: bool = False) -> list[str]:
        argv = [self.binary, "-p", str(tsconfig_path), "--noEmit", "--pretty", "false"]
        if watch:
            argv.append("--watch")
        return argv

    async def check(
        self,
        tsconfig_path: Path,
        env: Mapping[str, str],
        log: DiagnosticLog,
        *,
        diag_max: int,
    ) -> None:
        """Run the check; raise ``TypeCheckFailure`` on a failing exit.

        Every diagnostic is recorded before the raise.
        """
        if not tsconfig_path.exists():
            log.warn(f"TypeScript config not found at {tsconfig_path}; skipping type-check.")
            return

        try:
            result = await run(self.command(tsconfig_path), env=env, cwd=tsconfig_path.parent)
        except ToolNotFound:
            log.warn("TypeScript compiler (tsc) not found in PATH; skipping type-check.")
            return

        if result.ok:
            logger.debug("tsc passed in %dms", result.duration_ms)
            return

        log.error(f"Type checking failed (exit code {result.exit_code}).", file=str(tsconfig_path))
        if result.stderr.strip():
            log.error(result.stderr.strip())

        parsed = parse_tsc_output(result.stdout)
        log.extend(parsed[:diag_max])
        if len(parsed) > diag_max:
            log.info(f"{PREFIX} tsc ... {len(parsed) - diag_max} more diagnostic(s) omitted")

        leftover = "\n".join(
            line for line in result.stdout.splitlines()
            if line.strip() and not _TSC_LINE_RE.match(line.rstrip())
        )
        if leftover:
            log.info(leftover)

        raise TypeCheckFailure(result.exit_code, str(tsconfig_path))


__all__ = [
    "TSC_BINARY",
    "TypeCheckRunner",
    "parse_tsc_output",
    "should_type_check",
]
