"""Diagnostics utilities — collect, summarise and severity-filter.

``DiagnosticLog`` is the append-only stream a single build writes into;
ordering is preserved as emitted.  ``filter_diagnostics`` is applied only
to what is handed back to the caller — internal consumers always see the
unfiltered log.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Sequence

from modforge.contracts import Diagnostic, Severity

PREFIX = "[modforge]"

_RANK: dict[str, int] = {"info": 1, "warn": 2, "error": 3}

_LOG_LEVEL: dict[str, int] = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_NESTED_INDEX_RE = re.compile(r"(^|/)index\.js$")


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class DiagnosticLog:
    """Append-only diagnostic stream for one build call."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[Diagnostic] | None = None) -> None:
        self._items: list[Diagnostic] = list(items or [])

    def add(self, severity: Severity, message: str, file: str | None = None) -> Diagnostic:
        diag = Diagnostic(severity=severity, message=message, file=file)
        self._items.append(diag)
        return diag

    def info(self, message: str, file: str | None = None) -> Diagnostic:
        return self.add("info", message, file)

    def warn(self, message: str, file: str | None = None) -> Diagnostic:
        return self.add("warn", message, file)

    def error(self, message: str, file: str | None = None) -> Diagnostic:
        return self.add("error", message, file)

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        self._items.extend(diagnostics)

    @property
    def items(self) -> list[Diagnostic]:
        """A snapshot copy of everything recorded so far."""
        return list(self._items)

    def messages(self) -> list[str]:
        return [d.message for d in self._items]

    def has_errors(self) -> bool:
        return any(d.severity == "error" for d in self._items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"DiagnosticLog({len(self._items)} item(s))"


# ---------------------------------------------------------------------------
# Severity filtering
# ---------------------------------------------------------------------------


def normalize_log_level(value: object) -> Severity:
    """Map an env value onto a severity; unrecognised → ``info``."""
    if not isinstance(value, str):
        return "info"
    lowered = value.strip().lower()
    if lowered in _RANK:
        return lowered  # type: ignore[return-value]
    return "info"


def filter_diagnostics(
    diagnostics: Iterable[Diagnostic], minimum: Severity
) -> list[Diagnostic]:
    """Keep diagnostics at or above *minimum* (``info < warn < error``)."""
    threshold = _RANK[minimum]
    return [d for d in diagnostics if _RANK[d.severity] >= threshold]


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def summarize_entry_buckets(log: DiagnosticLog, entry_points: Sequence[str]) -> None:
    """Record how many server / function / job entries were built."""
    server = sum(
        1
        for p in entry_points
        if p == "index.js"
        or (_NESTED_INDEX_RE.search(p) and not p.startswith(("functions/", "jobs/")))
    )
    functions = sum(1 for p in entry_points if p.startswith("functions/"))
    jobs = sum(1 for p in entry_points if p.startswith("jobs/"))
    log.info(f"{PREFIX} entries by bucket: server={server} functions={functions} jobs={jobs}")


def format_name_list(names: Sequence[str], limit: int) -> str:
    """Join up to *limit* names, noting how many were left out."""
    shown = ", ".join(names[:limit])
    if len(names) > limit:
        shown += f" (+{len(names) - limit} more)"
    return shown


def log_diagnostic(logger: logging.Logger, diag: Diagnostic) -> None:
    """Emit *diag* through *logger* at the level matching its severity."""
    logger.log(_LOG_LEVEL[diag.severity], diag.message)


__all__ = [
    "PREFIX",
    "DiagnosticLog",
    "filter_diagnostics",
    "format_name_list",
    "log_diagnostic",
    "normalize_log_level",
    "summarize_entry_buckets",
]
