"""Manual attendance corrections layered over resolved presence."""

from __future__ import annotations

from typing import AbstractSet, Mapping, Optional

from app.services.attendance.identity import respell


def apply_overrides(
    date_key: str,
    present: AbstractSet[str],
    override_table: Mapping[str, Mapping[str, float]],
    spellings: Optional[Mapping[str, str]] = None,
) -> dict[str, float]:
    """Applied attendance value per member for one night.

    Members come from resolved presence and from that night's overrides; an
    override replaces the resolved 1/0 outright. Override names are matched
    through `spellings` so "bob" lands on the observed "Bob".
    """

    night_overrides = {
        respell(name, spellings): value for name, value in (override_table.get(date_key) or {}).items()
    }
    applied: dict[str, float] = {}
    for name in sorted(set(present) | set(night_overrides)):
        if name in night_overrides:
            applied[name] = float(night_overrides[name])
        else:
            applied[name] = 1.0 if name in present else 0.0
    return applied
