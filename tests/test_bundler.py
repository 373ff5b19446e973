"""Tests for modforge.bundler — esbuild log parsing and the CLI bundler."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from modforge.bundler import (
    BundleMessage,
    BundleRequest,
    Bundler,
    BundleSession,
    EsbuildBundler,
    format_bundle_message,
    parse_esbuild_log,
)
from modforge.errors import BundleFailure
from modforge.runner import RunResult

from tests.conftest import FakeBundler, FakeSession

ESBUILD_LOG = """\
▲ [WARNING] Duplicate key "a" in object literal [duplicate-object-key]

    src/index.ts:4:2:
      4 │   a: 2,
        ╵   ^

✘ [ERROR] Could not resolve "missing"

    src/functions/hello/index.ts:1:18:
      1 │ import x from "missing";
        ╵               ~~~~~~~~~

✘ [ERROR] Unexpected end of file

1 warning and 2 errors
"""


def _request(tmp_path: Path, **kw) -> BundleRequest:
    return BundleRequest(
        entry_points=[str(tmp_path / "src" / "index.ts")],
        outdir=str(tmp_path / "build"),
        outbase=str(tmp_path / "src"),
        **kw,
    )


class TestFormatting:
    def test_with_location(self):
        msg = BundleMessage(text="bad", file="a.ts", line=3, column=9)
        assert format_bundle_message(msg) == "a.ts:3:9 bad"

    def test_file_without_position(self):
        assert format_bundle_message(BundleMessage(text="bad", file="a.ts")) == "a.ts:1:1 bad"

    def test_text_only(self):
        assert format_bundle_message(BundleMessage(text="bad")) == "bad"


class TestParseLog:
    def test_splits_errors_and_warnings(self):
        errors, warnings = parse_esbuild_log(ESBUILD_LOG)
        assert [e.text for e in errors] == ['Could not resolve "missing"', "Unexpected end of file"]
        assert errors[0].file == "src/functions/hello/index.ts"
        assert (errors[0].line, errors[0].column) == (1, 18)
        assert errors[1].file is None

    def test_warning_id_suffix_stripped(self):
        _, (warning,) = parse_esbuild_log(ESBUILD_LOG)
        assert warning.text == 'Duplicate key "a" in object literal'
        assert warning.file == "src/index.ts"

    def test_empty(self):
        assert parse_esbuild_log("") == ([], [])


class TestCommand:
    def test_defaults(self, tmp_path):
        argv = EsbuildBundler().command(_request(tmp_path), tmp_path / "meta.json")
        assert argv[0] == "esbuild"
        assert "--platform=node" in argv
        assert "--format=esm" in argv
        assert "--sourcemap" in argv
        assert "--bundle" not in argv
        assert "--minify" not in argv

    def test_publish_flags(self, tmp_path):
        request = _request(
            tmp_path, bundle=True, minify=True, sourcemap=False,
            packages_external=True, strip_legal_comments=True,
            define={"process.env.NODE_ENV": '"production"'},
        )
        argv = EsbuildBundler().command(request, tmp_path / "meta.json")
        for flag in ("--bundle", "--minify", "--packages=external", "--legal-comments=none"):
            assert flag in argv
        assert "--sourcemap" not in argv
        assert '--define:process.env.NODE_ENV="production"' in argv


class TestBuild:
    @pytest.mark.asyncio
    async def test_reads_metafile_outputs(self, tmp_path: Path):
        (tmp_path / "src").mkdir()

        async def fake_run(argv, **kwargs):
            meta = next(a.split("=", 1)[1] for a in argv if a.startswith("--metafile="))
            Path(meta).write_text(json.dumps({
                "outputs": {"../build/index.js": {"bytes": 120}},
            }))
            return RunResult(exit_code=0, stderr="", command="esbuild")

        with patch("modforge.bundler.run", new=AsyncMock(side_effect=fake_run)):
            outcome = await EsbuildBundler().build(_request(tmp_path))

        expected = str((tmp_path / "build" / "index.js").resolve())
        assert outcome.outputs == {expected: 120}
        assert outcome.warnings == []

    @pytest.mark.asyncio
    async def test_failure_raises_with_messages(self, tmp_path: Path):
        (tmp_path / "src").mkdir()
        result = RunResult(exit_code=1, stderr=ESBUILD_LOG, command="esbuild")
        with patch("modforge.bundler.run", new=AsyncMock(return_value=result)):
            with pytest.raises(BundleFailure) as exc_info:
                await EsbuildBundler().build(_request(tmp_path))
        assert len(exc_info.value.errors) == 2
        assert len(exc_info.value.warnings) == 1
        assert str(exc_info.value) == "esbuild failed."

    @pytest.mark.asyncio
    async def test_unparseable_failure_keeps_stderr(self, tmp_path: Path):
        (tmp_path / "src").mkdir()
        result = RunResult(exit_code=1, stderr="segfault", command="esbuild")
        with patch("modforge.bundler.run", new=AsyncMock(return_value=result)):
            with pytest.raises(BundleFailure) as exc_info:
                await EsbuildBundler().build(_request(tmp_path))
        assert exc_info.value.errors[0].text == "segfault"


class TestSession:
    @pytest.mark.asyncio
    async def test_rebuild_after_dispose_fails(self, tmp_path: Path):
        session = await EsbuildBundler().context(_request(tmp_path))
        await session.dispose()
        with pytest.raises(BundleFailure) as exc_info:
            await session.rebuild()
        assert "disposed" in exc_info.value.reason

    def test_fakes_satisfy_protocols(self, tmp_path: Path):
        bundler = FakeBundler()
        assert isinstance(bundler, Bundler)
        assert isinstance(FakeSession(bundler, _request(tmp_path)), BundleSession)
