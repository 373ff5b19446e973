"""Tests for modforge.manifest.hydrator and .checks — hydration and consistency."""

from __future__ import annotations

from pathlib import Path

import pytest

from modforge.contracts import ModuleManifest
from modforge.diagnostics import DiagnosticLog
from modforge.manifest.checks import normalize_route_path, route_key, run_consistency_checks
from modforge.manifest.hydrator import ManifestHydrator, read_package_descriptor
from modforge.manifest.loader import LoadError

from tests.conftest import FakeLoader, make_workspace

ENTRIES = ["/w/src/backend/index.ts"]


async def _hydrate(workspace: Path, loader=None, entries=ENTRIES, diag_max=50):
    log = DiagnosticLog()
    manifest = await ManifestHydrator(loader or FakeLoader()).hydrate(
        workspace, workspace / "build" / "backend", entries, log, diag_max=diag_max,
    )
    return manifest, log


def _manifest(**fields) -> ModuleManifest:
    return ModuleManifest.model_validate(
        {"contractVersion": "1.0.0", "name": "svc", "version": "1.0.0", **fields}
    )


# ═══════════════════════════════════════════════════════════════════════════
# Package descriptor
# ═══════════════════════════════════════════════════════════════════════════


class TestPackageDescriptor:
    def test_missing_is_warning(self, tmp_path: Path):
        log = DiagnosticLog()
        assert read_package_descriptor(tmp_path, log) is None
        (diag,) = log.items
        assert diag.severity == "warn"
        assert diag.message.startswith(f"[modforge] unable to read {tmp_path / 'package.json'}")
        assert diag.message.endswith("Using defaults.")

    def test_corrupt_is_warning(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{nope", encoding="utf-8")
        log = DiagnosticLog()
        assert read_package_descriptor(tmp_path, log) is None
        assert log.items[0].severity == "warn"

    def test_non_object_is_warning(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("[1, 2]", encoding="utf-8")
        log = DiagnosticLog()
        assert read_package_descriptor(tmp_path, log) is None
        assert log.items[0].severity == "warn"


# ═══════════════════════════════════════════════════════════════════════════
# Hydration
# ═══════════════════════════════════════════════════════════════════════════


class TestHydrate:
    @pytest.mark.asyncio
    async def test_package_defaults(self, tmp_path: Path):
        ws = make_workspace(tmp_path / "ws", package={"name": "@demo/x", "version": "1.0.0"})
        manifest, log = await _hydrate(ws)
        assert manifest.name == "@demo/x"
        assert manifest.version == "1.0.0"
        assert manifest.capabilities == []
        assert not log.has_errors()
        assert log.messages()[-1] == "[modforge] manifest routes=0 views=0"

    @pytest.mark.asyncio
    async def test_without_package(self, tmp_path: Path):
        ws = make_workspace(tmp_path / "orders")
        manifest, log = await _hydrate(ws)
        assert manifest.name == "backend-module-orders"
        assert manifest.version == "0.0.0"
        assert log.items[0].severity == "warn"

    @pytest.mark.asyncio
    async def test_definition_merged(self, tmp_path: Path):
        ws = make_workspace(tmp_path / "ws", package={
            "name": "@demo/x", "version": "1.0.0",
            "modforge": {"module": {"capabilities": ["a", "b"]}},
        })
        loader = FakeLoader({
            "manifest": {"name": "@demo/custom", "capabilities": ["b", "c"]},
            "routes": [{"method": "get", "path": "/hello/:name"}],
        })
        manifest, log = await _hydrate(ws, loader)
        assert manifest.name == "@demo/custom"
        assert sorted(manifest.capabilities) == ["a", "b", "c"]
        assert [(r.method, r.path) for r in manifest.routes] == [("GET", "/hello/:name")]
        assert "[modforge] manifest routes=1 views=0 [a, b, c]" in log.messages()

    @pytest.mark.asyncio
    async def test_invalid_definition_falls_back(self, tmp_path: Path):
        ws = make_workspace(tmp_path / "ws", package={"name": "@demo/x", "version": "1.0.0"})
        loader = FakeLoader({
            "manifest": {"name": 42, "capabilities": ["auth"]},
            "routes": [{"method": "BREW", "path": "/coffee"}],
        })
        manifest, log = await _hydrate(ws, loader)

        assert (manifest.name, manifest.version, manifest.kind) == ("@demo/x", "1.0.0", "backend")
        assert manifest.capabilities == []
        assert manifest.routes == [] and manifest.views == []
        assert manifest.jobs == [] and manifest.events == [] and manifest.services == []

        (error,) = [d for d in log if d.severity == "error"]
        assert error.message.startswith("[modforge] module manifest validation failed (")
        assert "name: " in error.message
        assert "routes.0.method: " in error.message
        assert error.message.endswith("Falling back to defaults.")

    @pytest.mark.asyncio
    async def test_load_failures_are_warnings(self, tmp_path: Path):
        ws = make_workspace(tmp_path / "ws", package={"name": "@demo/x", "version": "1.0.0"})
        build = ws / "build" / "backend"
        loader = FakeLoader(
            {"manifest": {"capabilities": ["db"]}},
            candidate="module/index.js",
            failures={
                "module.js": LoadError(build / "module.js", "SyntaxError: Unexpected token"),
                "module.mjs": LoadError(build / "module.mjs", "no export", export_missing=True),
            },
        )
        manifest, log = await _hydrate(ws, loader)
        assert manifest.capabilities == ["db"]
        warnings = [d.message for d in log if d.severity == "warn"]
        assert warnings == [
            f"[modforge] failed to load module definition from {build / 'module.js'}: "
            "SyntaxError: Unexpected token",
            f"[modforge] module definition at {build / 'module.mjs'} does not export a "
            "createModule() definition.",
        ]


# ═══════════════════════════════════════════════════════════════════════════
# Consistency checks
# ═══════════════════════════════════════════════════════════════════════════


class TestNormalizeRoutePath:
    @pytest.mark.parametrize("raw,expected", [
        ("/accounts", "/accounts"),
        ("/accounts/", "/accounts"),
        ("accounts", "/accounts"),
        ("/", "/"),
        ("", "/"),
        (None, "/"),
        ("//accounts", "/accounts"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_route_path(raw) == expected

    def test_only_first_separator_run_collapsed(self):
        assert normalize_route_path("/a//b") == "/a//b"

    def test_route_key(self):
        (route,) = _manifest(routes=[{"method": "post", "path": "users/"}]).routes
        assert route_key(route) == "POST /users"


class TestChecks:
    def test_duplicate_routes(self):
        manifest = _manifest(routes=[
            {"method": "GET", "path": "/accounts"},
            {"method": "GET", "path": "/accounts/"},
            {"method": "POST", "path": "/accounts"},
        ])
        log = DiagnosticLog()
        run_consistency_checks(manifest, ENTRIES, log, limit=50)
        assert "[modforge] duplicate route definitions: GET /accounts (2x)" in log.messages()

    def test_duplicate_list_capped(self):
        routes = []
        for i in range(3):
            routes += [{"method": "GET", "path": f"/r{i}"}] * 2
        log = DiagnosticLog()
        run_consistency_checks(_manifest(routes=routes), ENTRIES, log, limit=2)
        (dup,) = [m for m in log.messages() if "duplicate" in m]
        assert dup.endswith("GET /r0 (2x), GET /r1 (2x) (+1 more)")

    def test_routes_without_entries(self):
        log = DiagnosticLog()
        run_consistency_checks(_manifest(routes=[{"method": "GET", "path": "/a"}]), [], log, limit=50)
        assert any("defines routes but no entry points" in d.message for d in log if d.severity == "warn")

    def test_background_work_summary(self):
        log = DiagnosticLog()
        manifest = _manifest(
            jobs=[{"name": "nightly", "schedule": "0 3 * * *"}],
            events=[{"type": "user.created"}],
        )
        run_consistency_checks(manifest, ENTRIES, log, limit=50)
        assert "[modforge] manifest jobs=1 events=1 services=0" in log.messages()
        assert not [d for d in log if d.severity == "warn"]

    def test_unscheduled_jobs_listed_up_to_ten(self):
        jobs = [{"name": f"job{i}"} for i in range(12)]
        log = DiagnosticLog()
        run_consistency_checks(_manifest(jobs=jobs), ENTRIES, log, limit=50)
        (warning,) = [d.message for d in log if d.severity == "warn"]
        assert warning.startswith("[modforge] jobs without schedules: job0, job1")
        assert "job9" in warning and "job10" not in warning
        assert warning.endswith("(+2 more)")

    def test_no_summary_without_background_work(self):
        log = DiagnosticLog()
        run_consistency_checks(_manifest(), ENTRIES, log, limit=50)
        assert log.messages() == ["[modforge] manifest routes=0 views=0"]
