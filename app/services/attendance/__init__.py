"""Attendance roll-up service helpers."""

from app.services.attendance.nights import Night, group_nights, resolve_nights
from app.services.attendance.rollup import MemberStat, Rollup, build_rollup
from app.services.attendance.snapshot import SnapshotCache
from app.services.attendance.state_store import AttendanceStateStore, StateSnapshot

__all__ = [
    "Night",
    "group_nights",
    "resolve_nights",
    "MemberStat",
    "Rollup",
    "build_rollup",
    "SnapshotCache",
    "AttendanceStateStore",
    "StateSnapshot",
]
