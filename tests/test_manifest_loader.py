"""Tests for modforge.manifest.loader — tagged load results and candidate search."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from modforge.diagnostics import DiagnosticLog
from modforge.errors import ToolNotFound
from modforge.manifest.loader import (
    DEFINITION_CANDIDATES,
    LoadError,
    Loaded,
    NodeDefinitionLoader,
    NotFound,
    load_module_definition,
    parse_loader_payload,
    summarize_built_manifest,
)
from modforge.runner import RunResult

from tests.conftest import FakeLoader

TARGET = Path("/w/build/backend/module.js")


# ═══════════════════════════════════════════════════════════════════════════
# parse_loader_payload
# ═══════════════════════════════════════════════════════════════════════════


class TestParsePayload:
    def test_unreadable_output(self):
        result = parse_loader_payload(TARGET, "not json")
        assert isinstance(result, LoadError)
        assert not result.export_missing
        assert result.reason.startswith("unreadable loader output")

    def test_no_export(self):
        result = parse_loader_payload(TARGET, json.dumps({"found": False}))
        assert isinstance(result, LoadError)
        assert result.export_missing

    def test_loaded(self):
        raw = json.dumps({
            "found": True,
            "manifest": {"name": "svc", "capabilities": ["http"]},
            "routes": [{"method": "GET", "path": "/a"}],
        })
        result = parse_loader_payload(TARGET, raw)
        assert isinstance(result, Loaded)
        assert result.path == TARGET
        assert result.definition.manifest["name"] == "svc"
        assert result.definition.routes == [{"method": "GET", "path": "/a"}]
        assert result.definition.views is None

    def test_malformed_manifest(self):
        result = parse_loader_payload(TARGET, json.dumps({"found": True, "manifest": [1, 2]}))
        assert isinstance(result, LoadError)
        assert result.reason.startswith("malformed definition")


# ═══════════════════════════════════════════════════════════════════════════
# NodeDefinitionLoader
# ═══════════════════════════════════════════════════════════════════════════


class TestNodeDefinitionLoader:
    @pytest.mark.asyncio
    async def test_missing_file_is_not_found(self, tmp_path: Path):
        result = await NodeDefinitionLoader().load(tmp_path / "module.js")
        assert isinstance(result, NotFound)

    @pytest.mark.asyncio
    async def test_node_failure_reports_last_stderr_line(self, tmp_path: Path):
        target = tmp_path / "module.js"
        target.write_text("export default 1;", encoding="utf-8")
        failed = RunResult(exit_code=1, stderr="at x\nSyntaxError: boom\n", command="node")
        with patch("modforge.manifest.loader.run", new=AsyncMock(return_value=failed)) as run:
            result = await NodeDefinitionLoader().load(target)
        assert isinstance(result, LoadError)
        assert result.reason == "SyntaxError: boom"
        argv = run.call_args.args[0]
        assert argv[0] == "node"
        assert str(target) in argv

    @pytest.mark.asyncio
    async def test_missing_node(self, tmp_path: Path):
        target = tmp_path / "module.js"
        target.write_text("", encoding="utf-8")
        with patch("modforge.manifest.loader.run",
                   new=AsyncMock(side_effect=ToolNotFound("node"))):
            result = await NodeDefinitionLoader().load(target)
        assert isinstance(result, LoadError)

    @pytest.mark.asyncio
    async def test_success_parses_stdout(self, tmp_path: Path):
        target = tmp_path / "module.js"
        target.write_text("", encoding="utf-8")
        ok = RunResult(exit_code=0, stdout=json.dumps({"found": True, "manifest": {}}), command="node")
        with patch("modforge.manifest.loader.run", new=AsyncMock(return_value=ok)):
            result = await NodeDefinitionLoader().load(target)
        assert isinstance(result, Loaded)


# ═══════════════════════════════════════════════════════════════════════════
# Candidate search
# ═══════════════════════════════════════════════════════════════════════════


class TestLoadModuleDefinition:
    @pytest.mark.asyncio
    async def test_nothing_built(self, tmp_path: Path):
        loader = FakeLoader()
        log = DiagnosticLog()
        assert await load_module_definition(tmp_path, loader, log) is None
        assert [p.relative_to(tmp_path).as_posix() for p in loader.calls] == list(DEFINITION_CANDIDATES)
        assert len(log) == 0

    @pytest.mark.asyncio
    async def test_first_loaded_wins(self, tmp_path: Path):
        loader = FakeLoader({"manifest": {"name": "svc"}}, candidate="module.mjs")
        definition = await load_module_definition(tmp_path, loader, DiagnosticLog())
        assert definition.manifest == {"name": "svc"}
        assert len(loader.calls) == 2

    @pytest.mark.asyncio
    async def test_error_then_next_candidate(self, tmp_path: Path):
        loader = FakeLoader(
            {"manifest": {"name": "svc"}},
            candidate="module.mjs",
            failures={"module.js": LoadError(tmp_path / "module.js", "ReferenceError: x")},
        )
        log = DiagnosticLog()
        definition = await load_module_definition(tmp_path, loader, log)
        assert definition is not None
        assert log.messages() == [
            f"[modforge] failed to load module definition from {tmp_path / 'module.js'}: "
            "ReferenceError: x"
        ]


class TestSummarizeBuiltManifest:
    @pytest.mark.asyncio
    async def test_counts(self, tmp_path: Path):
        loader = FakeLoader({"manifest": {
            "routes": [{"method": "GET", "path": "/a"}, {"method": "GET", "path": "/b"}],
            "capabilities": ["http"],
        }})
        summary = await summarize_built_manifest(tmp_path, loader)
        assert summary == {"routes": 2, "views": 0, "capabilities": ["http"]}

    @pytest.mark.asyncio
    async def test_none_without_definition(self, tmp_path: Path):
        assert await summarize_built_manifest(tmp_path, FakeLoader()) is None
