"""Scheduled attendance refresh entrypoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from dateutil import parser as date_parser

from app.orchestrator_attendance import AttendanceOrchestrator


def parse_run_at(raw: Any) -> datetime | None:
    """Parse an optional ISO-8601 `now` override from event payloads."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            parsed = date_parser.isoparse(text)
        except (TypeError, ValueError):
            return None
    return parsed if parsed.tzinfo is not None else None


async def run_attendance_refresh(
    *,
    orchestrator: AttendanceOrchestrator | None = None,
    run_at: Any = None,
) -> dict[str, Any]:
    """Recompute the roll-up and refresh the cached snapshot."""
    job_orchestrator = orchestrator or AttendanceOrchestrator()
    return await job_orchestrator.run_job(now=parse_run_at(run_at))
