"""Command runner — structured subprocess execution for external toolchains.

Provides ``run()`` for one-shot commands (type-check, bundler, definition
loader) returning a ``RunResult`` model, and ``stream()`` for long-lived
watchers whose output is forwarded line by line.

A missing binary surfaces as ``ToolNotFound`` so each caller can apply its
own soft- or hard-dependency policy.  There is no timeout: a hung external
tool hangs the caller.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import time
from collections.abc import Callable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from modforge.errors import ToolNotFound

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class RunResult(BaseModel):
    """Structured result of a subprocess invocation."""

    model_config = ConfigDict(frozen=True)

    exit_code: int = Field(..., description="Process exit code")
    stdout: str = Field(default="", description="Captured stdout")
    stderr: str = Field(default="", description="Captured stderr")
    duration_ms: int = Field(default=0, ge=0, description="Wall-clock duration in ms")
    command: str = Field(..., description="The command that was executed")

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Host environment with the caller's build env merged on top."""
    env = dict(os.environ)
    if extra:
        env.update({k: v for k, v in extra.items() if v is not None})
    return env


# ---------------------------------------------------------------------------
# One-shot runner
# ---------------------------------------------------------------------------


async def run(
    argv: Sequence[str],
    *,
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> RunResult:
    """Execute *argv* and return a ``RunResult``.

    Raises
    ------
    ToolNotFound
        When ``argv[0]`` cannot be found on the execution path.
    """
    command = " ".join(argv)
    merged_env = _build_env(env)
    start = time.perf_counter()

    def _sync() -> tuple[int, str, str]:
        """Run in a thread so the event loop stays free."""
        result = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            cwd=cwd,
            env=merged_env,
        )
        return result.returncode, result.stdout or "", result.stderr or ""

    try:
        exit_code, out, err = await asyncio.to_thread(_sync)
    except FileNotFoundError as exc:
        raise ToolNotFound(argv[0]) from exc

    elapsed = int((time.perf_counter() - start) * 1000)
    logger.debug("%s exited %d in %dms", command, exit_code, elapsed)
    return RunResult(
        exit_code=exit_code,
        stdout=out,
        stderr=err,
        duration_ms=elapsed,
        command=command,
    )


# ---------------------------------------------------------------------------
# Streaming runner (watch mode)
# ---------------------------------------------------------------------------


class StreamingProcess:
    """A long-running child whose output lines are forwarded to callbacks."""

    __slots__ = ("_proc", "_readers", "command")

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        readers: list[asyncio.Task[None]],
        command: str,
    ) -> None:
        self._proc = proc
        self._readers = readers
        self.command = command

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    def send_signal(self, sig: int = signal.SIGINT) -> None:
        if self._proc.returncode is None:
            try:
                self._proc.send_signal(sig)
            except ProcessLookupError:
                logger.debug("%s already exited", self.command)

    async def wait(self) -> int:
        code = await self._proc.wait()
        await asyncio.gather(*self._readers, return_exceptions=True)
        return code


async def _pump(stream: asyncio.StreamReader | None, callback: LineCallback) -> None:
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            return
        for line in raw.decode("utf-8", errors="replace").splitlines():
            if line:
                callback(line)


async def stream(
    argv: Sequence[str],
    *,
    on_stdout: LineCallback,
    on_stderr: LineCallback,
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> StreamingProcess:
    """Spawn *argv* and forward each non-empty output line as it arrives.

    Raises
    ------
    ToolNotFound
        When ``argv[0]`` cannot be found on the execution path.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            env=_build_env(env),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ToolNotFound(argv[0]) from exc

    readers = [
        asyncio.create_task(_pump(proc.stdout, on_stdout)),
        asyncio.create_task(_pump(proc.stderr, on_stderr)),
    ]
    return StreamingProcess(proc, readers, " ".join(argv))


__all__ = [
    "RunResult",
    "StreamingProcess",
    "run",
    "stream",
]
