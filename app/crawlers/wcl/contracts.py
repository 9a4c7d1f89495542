"""Typed contracts for Warcraft Logs API payloads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional


def from_epoch_ms(raw: Any) -> datetime:
    return datetime.fromtimestamp(float(raw) / 1000.0, tz=UTC)


@dataclass(frozen=True, slots=True)
class EventRecord:
    """One uploaded combat log report."""

    code: str
    start_time: datetime
    end_time: datetime

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "EventRecord":
        return cls(
            code=str(payload["code"]),
            start_time=from_epoch_ms(payload["startTime"]),
            end_time=from_epoch_ms(payload.get("endTime", payload["startTime"])),
        )


@dataclass(frozen=True, slots=True)
class SubEvent:
    """A fight inside a report; only boss kills qualify for presence."""

    id: int
    is_qualifying: bool

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SubEvent":
        kill = payload.get("kill", True)
        encounter_id = payload.get("encounterID", 1)
        return cls(id=int(payload["id"]), is_qualifying=kill is not False and encounter_id != 0)


@dataclass(frozen=True, slots=True)
class ParticipantEntry:
    """A name-bearing row from a damage/healing table."""

    name: str
    kind: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ReportPage:
    records: list[EventRecord]
    has_more_pages: bool
