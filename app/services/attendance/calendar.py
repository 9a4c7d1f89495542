"""Raid-night calendar helpers in the guild's local timezone."""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Iterable
from zoneinfo import ZoneInfo

DEFAULT_RAID_WEEKDAYS = frozenset({1, 3})  # Tuesday, Thursday


@lru_cache(maxsize=32)
def _zone(timezone: str) -> ZoneInfo:
    return ZoneInfo(timezone)


def to_local(instant: datetime, timezone: str) -> datetime:
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(_zone(timezone))


def local_date_key(instant: datetime, timezone: str) -> str:
    """`YYYY-MM-DD` of the local calendar date `instant` falls on."""
    return to_local(instant, timezone).date().isoformat()


def is_recurring_day(
    instant: datetime,
    timezone: str,
    weekdays: Iterable[int] = DEFAULT_RAID_WEEKDAYS,
) -> bool:
    return to_local(instant, timezone).weekday() in frozenset(weekdays)
