"""Incremental session cache — live bundler sessions keyed by build identity.

A ``BuildSessionOwner`` maps ``"<mode>:<absolute build root>"`` to the
session created for that key plus the entry signature it was created with.
Its lifetime is the caller's: one owner per long-running host (watch
process, dev server) is typical, and ``close()`` disposes everything.

There is no lock.  Two overlapping builds against the same key race on the
same session; callers serialise per workspace.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from modforge.bundler import BundleSession
from modforge.contracts import BuildMode

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Awaitable[BundleSession]]


@dataclass
class IncrementalCacheEntry:
    entry_signature: str
    session: BundleSession


def session_key(mode: BuildMode, build_root: str | Path) -> str:
    return f"{mode.value}:{Path(build_root).resolve()}"


class BuildSessionOwner:
    """Owns every live incremental session for its caller."""

    __slots__ = ("_entries", "_exit_hook_installed")

    def __init__(self) -> None:
        self._entries: dict[str, IncrementalCacheEntry] = {}
        self._exit_hook_installed = False

    # -- lookup --------------------------------------------------------------

    def get(self, key: str) -> IncrementalCacheEntry | None:
        return self._entries.get(key)

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # -- lifecycle -----------------------------------------------------------

    async def acquire(
        self, key: str, signature: str, factory: SessionFactory
    ) -> tuple[BundleSession, bool]:
        """Return ``(session, reused)`` for *key*.

        A cached session with a matching signature is reused as-is; a stale
        one is disposed first and replaced by a fresh ``factory()`` session.
        """
        cached = self._entries.get(key)
        if cached is not None and cached.entry_signature == signature:
            return cached.session, True
        if cached is not None:
            logger.debug("entry set changed for %s; recreating session", key)
            await self.dispose(key)

        session = await factory()
        self._entries[key] = IncrementalCacheEntry(entry_signature=signature, session=session)
        return session, False

    async def dispose(self, key: str) -> None:
        """Dispose and forget the session for *key*, if any."""
        cached = self._entries.pop(key, None)
        if cached is None:
            return
        try:
            await cached.session.dispose()
        except Exception:
            logger.debug("disposing session %s failed", key, exc_info=True)

    async def close(self) -> None:
        """Dispose every live session."""
        for key in self.keys():
            await self.dispose(key)

    def install_exit_hook(self) -> None:
        """Dispose all sessions when the interpreter exits (idempotent)."""
        if self._exit_hook_installed:
            return
        atexit.register(self._close_at_exit)
        self._exit_hook_installed = True

    def _close_at_exit(self) -> None:
        if not self._entries:
            return
        try:
            asyncio.run(self.close())
        except RuntimeError:
            # An event loop is still running in this thread; drop references.
            self._entries.clear()


__all__ = [
    "BuildSessionOwner",
    "IncrementalCacheEntry",
    "session_key",
]
