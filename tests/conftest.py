"""Shared test fixtures — fake toolchain collaborators and workspace builders.

Provides:
- ``FakeBundler`` / ``FakeSession`` — in-process stand-ins for esbuild that
  copy each entry's source into the build root and report sizes
- ``FakeLoader`` — serves a canned ``ModuleDefinition`` for one candidate
- ``make_workspace`` — writes ``package.json`` plus source files
- ``backend_workspace`` — a workspace with server, function and job entries
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

import pytest

from modforge.bundler import BundleMessage, BundleOutcome, BundleRequest
from modforge.contracts import ModuleDefinition
from modforge.errors import BundleFailure
from modforge.manifest.loader import LoadError, Loaded, LoadResult, NotFound


def pytest_collection_modifyitems(config, items):
    """Skip ``integration`` tests when the real toolchain is not installed."""
    if shutil.which("esbuild") and shutil.which("node"):
        return
    skip = pytest.mark.skip(reason="esbuild / node not on PATH")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


# ---------------------------------------------------------------------------
# Fake bundler
# ---------------------------------------------------------------------------


def _output_path(entry: str, request: BundleRequest) -> Path:
    rel = os.path.relpath(entry, request.outbase)
    return (Path(request.outdir) / rel).with_suffix(".js").resolve()


class FakeSession:
    def __init__(self, bundler: FakeBundler, request: BundleRequest) -> None:
        self.bundler = bundler
        self.request = request
        self.rebuilds = 0
        self.disposed = False

    async def rebuild(self) -> BundleOutcome:
        if self.disposed:
            raise BundleFailure(reason="session already disposed")
        self.rebuilds += 1
        return await self.bundler.build(self.request)

    async def dispose(self) -> None:
        self.disposed = True


class FakeBundler:
    """Copies each entry's source to ``<outdir>/<rel>.js`` (plus a map)."""

    def __init__(
        self,
        *,
        errors: list[BundleMessage] | None = None,
        warnings: list[BundleMessage] | None = None,
    ) -> None:
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])
        self.requests: list[BundleRequest] = []
        self.sessions: list[FakeSession] = []

    async def build(self, request: BundleRequest) -> BundleOutcome:
        self.requests.append(request)
        if self.errors:
            raise BundleFailure(self.errors, self.warnings)

        outputs: dict[str, int] = {}
        for entry in request.entry_points:
            out = _output_path(entry, request)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(Path(entry).read_text(encoding="utf-8"), encoding="utf-8")
            outputs[str(out)] = out.stat().st_size
            if request.sourcemap:
                map_path = out.with_name(out.name + ".map")
                map_path.write_text('{"version":3}', encoding="utf-8")
                outputs[str(map_path)] = map_path.stat().st_size
        return BundleOutcome(warnings=self.warnings, outputs=outputs)

    async def context(self, request: BundleRequest) -> FakeSession:
        session = FakeSession(self, request)
        self.sessions.append(session)
        return session


# ---------------------------------------------------------------------------
# Fake definition loader
# ---------------------------------------------------------------------------


class FakeLoader:
    """Returns *definition* for the ``candidate`` output, ``NotFound`` elsewhere."""

    def __init__(
        self,
        definition: ModuleDefinition | dict | None = None,
        *,
        candidate: str = "module.js",
        failures: dict[str, LoadError] | None = None,
    ) -> None:
        if isinstance(definition, dict):
            definition = ModuleDefinition.model_validate(definition)
        self.definition = definition
        self.candidate = candidate
        self.failures = failures or {}
        self.calls: list[Path] = []

    async def load(self, path: Path) -> LoadResult:
        self.calls.append(path)
        rel = path.as_posix()
        for name, failure in self.failures.items():
            if rel.endswith("/" + name):
                return failure
        if self.definition is not None and rel.endswith("/" + self.candidate):
            return Loaded(path, self.definition)
        return NotFound(path)


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


def make_workspace(
    root: Path,
    files: dict[str, str] | None = None,
    package: dict | None = None,
) -> Path:
    """Write ``package.json`` (when given) and *files* under *root*."""
    root.mkdir(parents=True, exist_ok=True)
    if package is not None:
        (root / "package.json").write_text(json.dumps(package), encoding="utf-8")
    for rel, content in (files or {}).items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


BACKEND_SOURCES: dict[str, str] = {
    "src/backend/index.ts": "export async function start() {}\n",
    "src/backend/functions/hello/index.ts": "export async function run() {}\n",
    "src/backend/jobs/nightly/index.ts": "export async function run() {}\n",
}


@pytest.fixture
def backend_workspace(tmp_path: Path) -> Path:
    return make_workspace(
        tmp_path / "ws",
        BACKEND_SOURCES,
        package={"name": "@demo/x", "version": "1.0.0"},
    )


@pytest.fixture
def fake_bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture
def fake_loader() -> FakeLoader:
    return FakeLoader()
