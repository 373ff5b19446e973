"""Bundler boundary — one-shot builds and reusable incremental sessions.

The actual transpile / bundle work is always delegated to ``esbuild``.
``Bundler`` and ``BundleSession`` are protocols so the orchestrator and the
session cache can be driven by any implementation; ``EsbuildBundler`` is the
CLI-backed one.

Output sizes come from esbuild's own metafile (``--metafile``); warnings
and errors are parsed from its text log::

    ✘ [ERROR] Could not resolve "missing"

        src/index.ts:1:7:
          1 │ import x from "missing"
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from modforge.errors import BundleFailure
from modforge.runner import run

logger = logging.getLogger(__name__)

ESBUILD_BINARY = "esbuild"

_HEADER_RE = re.compile(r"^\s*(?:\S+\s+)?\[(ERROR|WARNING)\]\s+(.+?)\s*$")
_LOCATION_RE = re.compile(r"^\s+(.+?):(\d+):(\d+):\s*$")
_TRAILING_ID_RE = re.compile(r"\s+\[[\w-]+\]$")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class BundleMessage(BaseModel):
    """A single compiler warning or error."""

    model_config = ConfigDict(frozen=True)

    text: str
    file: str | None = None
    line: int | None = None
    column: int | None = None


class BundleRequest(BaseModel):
    """Everything the bundler needs for one build configuration."""

    model_config = ConfigDict(frozen=True)

    entry_points: list[str]
    outdir: str
    outbase: str
    bundle: bool = False
    minify: bool = False
    sourcemap: bool = True
    strip_legal_comments: bool = False
    packages_external: bool = False
    tsconfig: str | None = None
    define: dict[str, str] = Field(default_factory=dict)
    entry_names: str | None = None
    platform: str = "node"
    target: str = "node20"
    format: str = "esm"


class BundleOutcome(BaseModel):
    """Result of a successful build or rebuild."""

    model_config = ConfigDict(frozen=True)

    warnings: list[BundleMessage] = Field(default_factory=list)
    outputs: dict[str, int] = Field(
        default_factory=dict,
        description="Absolute output path → byte size, from the metafile",
    )


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class BundleSession(Protocol):
    """A long-lived bundler context that can rebuild in place."""

    async def rebuild(self) -> BundleOutcome: ...

    async def dispose(self) -> None: ...


@runtime_checkable
class Bundler(Protocol):
    async def build(self, request: BundleRequest) -> BundleOutcome: ...

    async def context(self, request: BundleRequest) -> BundleSession: ...


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------


def format_bundle_message(msg: BundleMessage) -> str:
    """Render ``file:line:col text`` when a location is known."""
    if msg.file:
        if msg.line is not None:
            position = f"{msg.line}:{msg.column if msg.column is not None else 1}"
        else:
            position = "1:1"
        return f"{msg.file}:{position} {msg.text}"
    return msg.text


def parse_esbuild_log(raw: str) -> tuple[list[BundleMessage], list[BundleMessage]]:
    """Split esbuild's text log into ``(errors, warnings)``.

    A location line is attached to the header it follows; notes and code
    frames are skipped.
    """
    errors: list[BundleMessage] = []
    warnings: list[BundleMessage] = []
    current: dict[str, Any] | None = None
    current_kind = ""

    def _flush() -> None:
        if current is None:
            return
        target = errors if current_kind == "ERROR" else warnings
        target.append(BundleMessage(**current))

    for line in raw.splitlines():
        header = _HEADER_RE.match(line)
        if header:
            _flush()
            current_kind = header.group(1)
            current = {"text": _TRAILING_ID_RE.sub("", header.group(2))}
            continue
        if current is not None and "file" not in current:
            loc = _LOCATION_RE.match(line)
            if loc:
                current["file"] = loc.group(1).strip()
                current["line"] = int(loc.group(2))
                current["column"] = int(loc.group(3))
    _flush()
    return errors, warnings


# ---------------------------------------------------------------------------
# esbuild CLI implementation
# ---------------------------------------------------------------------------


class EsbuildBundler:
    """Drives the ``esbuild`` binary once per build."""

    def __init__(self, binary: str = ESBUILD_BINARY, env: dict[str, str] | None = None) -> None:
        self.binary = binary
        self.env = env or {}

    def command(self, request: BundleRequest, metafile: Path) -> list[str]:
        argv = [
            self.binary,
            *request.entry_points,
            f"--outdir={request.outdir}",
            f"--outbase={request.outbase}",
            f"--platform={request.platform}",
            f"--target={request.target}",
            f"--format={request.format}",
            f"--metafile={metafile}",
            "--log-level=warning",
            "--color=false",
        ]
        if request.bundle:
            argv.append("--bundle")
        if request.packages_external:
            argv.append("--packages=external")
        if request.minify:
            argv.append("--minify")
        if request.sourcemap:
            argv.append("--sourcemap")
        if request.strip_legal_comments:
            argv.append("--legal-comments=none")
        if request.tsconfig:
            argv.append(f"--tsconfig={request.tsconfig}")
        if request.entry_names:
            argv.append(f"--entry-names={request.entry_names}")
        for key, value in request.define.items():
            argv.append(f"--define:{key}={value}")
        return argv

    async def build(self, request: BundleRequest) -> BundleOutcome:
        with tempfile.TemporaryDirectory(prefix="modforge-meta-") as tmp:
            metafile = Path(tmp) / "meta.json"
            result = await run(
                self.command(request, metafile),
                cwd=request.outbase,
                env=self.env,
            )
            errors, warnings = parse_esbuild_log(result.stderr)
            if not result.ok:
                if not errors:
                    errors = [BundleMessage(text=result.stderr.strip() or f"esbuild exited {result.exit_code}")]
                raise BundleFailure(errors, warnings)

            outputs = _read_metafile_outputs(metafile, Path(request.outbase))
        logger.debug("esbuild produced %d output(s)", len(outputs))
        return BundleOutcome(warnings=warnings, outputs=outputs)

    async def context(self, request: BundleRequest) -> EsbuildSession:
        return EsbuildSession(self, request)


class EsbuildSession:
    """Incremental session: the request is resolved once and rebuilt in place."""

    __slots__ = ("_bundler", "_request", "_disposed")

    def __init__(self, bundler: EsbuildBundler, request: BundleRequest) -> None:
        self._bundler = bundler
        self._request = request
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def rebuild(self) -> BundleOutcome:
        if self._disposed:
            raise BundleFailure(reason="session already disposed")
        return await self._bundler.build(self._request)

    async def dispose(self) -> None:
        self._disposed = True


def _read_metafile_outputs(metafile: Path, working_dir: Path) -> dict[str, int]:
    """Map each output in the metafile to an absolute path and its byte size."""
    try:
        data = json.loads(metafile.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.debug("esbuild metafile missing or unreadable: %s", metafile)
        return {}

    outputs: dict[str, int] = {}
    raw_outputs = data.get("outputs") if isinstance(data, dict) else None
    for out_path, info in (raw_outputs or {}).items():
        size = info.get("bytes") if isinstance(info, dict) else None
        absolute = (working_dir / out_path).resolve()
        outputs[str(absolute)] = size if isinstance(size, int) else 0
    return outputs


__all__ = [
    "BundleMessage",
    "BundleOutcome",
    "BundleRequest",
    "BundleSession",
    "Bundler",
    "EsbuildBundler",
    "EsbuildSession",
    "format_bundle_message",
    "parse_esbuild_log",
]
