"""Per-member attendance roll-up over resolved raid nights."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from app.services.attendance.nights import Night


@dataclass(slots=True)
class MemberStat:
    """Aggregated attendance for one canonical member."""

    name: str
    nights_attended: float
    nights_possible: int
    pct: int
    last_seen: str
    present_dates: list[str] = field(default_factory=list)

    def to_row(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "attended": self.nights_attended,
            "possible": self.nights_possible,
            "pct": self.pct,
            "lastSeen": self.last_seen,
        }


@dataclass(slots=True)
class Rollup:
    nights: list[str]
    rows: list[MemberStat]

    @property
    def per_player_dates(self) -> dict[str, list[str]]:
        return {stat.name: list(stat.present_dates) for stat in self.rows if stat.present_dates}

    def to_payload(
        self,
        *,
        excluded: Optional[Mapping[str, Optional[str]]] = None,
        include_dates: bool = True,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "nights": list(self.nights),
            "rows": [stat.to_row() for stat in self.rows],
        }
        if include_dates:
            payload["perPlayerDates"] = self.per_player_dates
        if excluded is not None:
            payload["excluded"] = [
                {"dateKey": date_key, "reason": excluded[date_key]} for date_key in sorted(excluded)
            ]
        return payload


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def attendance_pct(nights_attended: float, nights_possible: int) -> int:
    if nights_possible <= 0:
        return 0
    return round_half_up(nights_attended / nights_possible * 100)


def build_rollup(nights: Iterable[Night]) -> Rollup:
    """Aggregate applied values into member rows.

    Every member shares the window-wide denominator. `last_seen` and the
    per-member date list only advance on observed presence, never on
    override-only credit.
    """

    ordered: Sequence[Night] = sorted(nights, key=lambda night: night.date_key)
    nights_possible = len(ordered)

    members: set[str] = set()
    for night in ordered:
        members.update(night.applied)

    totals = {name: 0.0 for name in members}
    last_seen = {name: "" for name in members}
    present_dates: dict[str, list[str]] = {name: [] for name in members}

    for night in ordered:
        for name in sorted(members):
            totals[name] += night.applied.get(name, 0.0)
            if name in night.present:
                present_dates[name].append(night.date_key)
                if night.date_key > last_seen[name]:
                    last_seen[name] = night.date_key

    rows = [
        MemberStat(
            name=name,
            nights_attended=round(totals[name], 2),
            nights_possible=nights_possible,
            pct=attendance_pct(totals[name], nights_possible),
            last_seen=last_seen[name],
            present_dates=present_dates[name],
        )
        for name in members
    ]
    rows.sort(key=lambda stat: (-stat.pct, -stat.nights_attended, stat.name))
    return Rollup(nights=[night.date_key for night in ordered], rows=rows)
