"""Post-validation consistency checks on a hydrated manifest.

Each check is independent and only ever adds diagnostics; none can fail the
build or alter the manifest.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence

from modforge.contracts import ModuleManifest, RouteDefinition
from modforge.diagnostics import PREFIX, DiagnosticLog, format_name_list

MAX_UNSCHEDULED_LISTED = 10

_SLASH_RUN_RE = re.compile(r"/+")


def normalize_route_path(path: object) -> str:
    """Leading slash, collapsed separators, no trailing slash (except root).

    Only the first run of slashes is collapsed, matching the behaviour route
    keys have always had; since a normalised path starts with ``/`` that run
    is the leading one, so interior ``//`` survive.  Kept as-is so route
    keys stay stable across releases.
    """
    s = path if isinstance(path, str) else ""
    if not s.startswith("/"):
        s = "/" + s
    s = _SLASH_RUN_RE.sub("/", s, count=1)
    if len(s) > 1 and s.endswith("/"):
        s = s[:-1]
    return s


def route_key(route: RouteDefinition) -> str:
    return f"{route.method.upper()} {normalize_route_path(route.path)}"


def check_duplicate_routes(manifest: ModuleManifest, log: DiagnosticLog, *, limit: int) -> None:
    counts = Counter(route_key(r) for r in manifest.routes)
    duplicates = [f"{key} ({count}x)" for key, count in counts.items() if count > 1]
    if duplicates:
        log.warn(f"{PREFIX} duplicate route definitions: {format_name_list(duplicates, limit)}")


def check_routes_have_entries(
    manifest: ModuleManifest, entry_points: Sequence[str], log: DiagnosticLog
) -> None:
    if manifest.routes and not entry_points:
        log.warn(
            f"{PREFIX} module manifest defines routes but no entry points were built. "
            "Ensure backend compilation produced handlers."
        )


def summarize_background_work(manifest: ModuleManifest, log: DiagnosticLog) -> None:
    jobs, events, services = len(manifest.jobs), len(manifest.events), len(manifest.services)
    if jobs + events + services > 0:
        log.info(f"{PREFIX} manifest jobs={jobs} events={events} services={services}")


def check_job_schedules(manifest: ModuleManifest, log: DiagnosticLog) -> None:
    unscheduled = [job.name for job in manifest.jobs if job.schedule is None]
    if unscheduled:
        names = format_name_list(unscheduled, MAX_UNSCHEDULED_LISTED)
        log.warn(f"{PREFIX} jobs without schedules: {names}")


def summarize_surface(manifest: ModuleManifest, log: DiagnosticLog) -> None:
    caps = f" [{', '.join(manifest.capabilities)}]" if manifest.capabilities else ""
    log.info(
        f"{PREFIX} manifest routes={len(manifest.routes)} views={len(manifest.views)}{caps}"
    )


def run_consistency_checks(
    manifest: ModuleManifest,
    entry_points: Sequence[str],
    log: DiagnosticLog,
    *,
    limit: int,
) -> None:
    check_duplicate_routes(manifest, log, limit=limit)
    check_routes_have_entries(manifest, entry_points, log)
    summarize_background_work(manifest, log)
    check_job_schedules(manifest, log)
    summarize_surface(manifest, log)
