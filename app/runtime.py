"""Process-wide wiring of stores, cache and orchestrator from settings."""

from __future__ import annotations

from app.config.rollup import RollupConfig
from app.config.settings import Settings, settings
from app.orchestrator_attendance import AttendanceOrchestrator
from app.services.attendance.snapshot import SnapshotCache
from app.services.attendance.state_store import AttendanceStateStore


def build_orchestrator(source: Settings = settings) -> AttendanceOrchestrator:
    state_store = AttendanceStateStore(source.LOCAL_STATE_PATH)
    state_store.load()
    snapshot_cache = SnapshotCache(source.SNAPSHOT_PATH)
    snapshot_cache.load()
    return AttendanceOrchestrator(
        config=RollupConfig.from_settings(source),
        state_store=state_store,
        snapshot_cache=snapshot_cache,
        refresh_timeout_seconds=source.ATTENDANCE_REFRESH_TIMEOUT_SECONDS,
    )
