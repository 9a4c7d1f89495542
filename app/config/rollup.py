"""Explicit configuration record threaded into roll-up runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.errors import ConfigurationError

WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def parse_weekdays(raw: str | Iterable[Any]) -> frozenset[int]:
    """Parse `tue,thu` / `1,3` style selectors into `date.weekday()` numbers."""
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    weekdays: set[int] = set()
    for part in parts:
        text = str(part).strip().lower()
        if not text:
            continue
        if text.isdigit():
            value = int(text)
            if not 0 <= value <= 6:
                raise ConfigurationError(f"Weekday out of range: {text}")
            weekdays.add(value)
            continue
        prefix = text[:3]
        if prefix not in WEEKDAY_NAMES:
            raise ConfigurationError(f"Unknown weekday: {text}")
        weekdays.add(WEEKDAY_NAMES.index(prefix))
    return frozenset(weekdays)


def parse_name_list(raw: str | Iterable[str]) -> frozenset[str]:
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    return frozenset(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True, slots=True)
class RollupConfig:
    """Guild identity, calendar and entry filters for one roll-up run."""

    guild_name: str
    server_slug: str
    server_region: str
    timezone: str = "America/Chicago"
    weekdays: frozenset[int] = frozenset({1, 3})
    window_weeks: int = 6
    player_classes: frozenset[str] = field(default_factory=frozenset)
    known_npcs: frozenset[str] = field(default_factory=frozenset)
    page_limit: int = 100
    concurrency: int = 4

    @classmethod
    def from_settings(cls, source: Any) -> "RollupConfig":
        return cls(
            guild_name=(source.GUILD_NAME or "").strip(),
            server_slug=(source.GUILD_SERVER_SLUG or "").strip().lower(),
            server_region=(source.GUILD_REGION or "").strip().lower(),
            timezone=(source.TIMEZONE or "").strip(),
            weekdays=parse_weekdays(source.ATTENDANCE_WEEKDAYS),
            window_weeks=int(source.ATTENDANCE_WINDOW_WEEKS),
            player_classes=parse_name_list(source.ATTENDANCE_PLAYER_CLASSES),
            known_npcs=parse_name_list(source.ATTENDANCE_KNOWN_NPCS),
            page_limit=int(source.WCL_REPORTS_PAGE_LIMIT),
            concurrency=int(source.WCL_CONCURRENCY),
        )

    def validate(self) -> None:
        """Fail fast before any upstream call is issued."""
        missing = [
            name
            for name, value in (
                ("guild_name", self.guild_name),
                ("server_slug", self.server_slug),
                ("server_region", self.server_region),
                ("timezone", self.timezone),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown timezone: {self.timezone}") from exc

        if not self.weekdays or any(not 0 <= day <= 6 for day in self.weekdays):
            raise ConfigurationError("At least one raid weekday (0-6) is required")
        if self.window_weeks <= 0:
            raise ConfigurationError("Window length must be positive")
        if self.page_limit <= 0 or self.concurrency <= 0:
            raise ConfigurationError("Page limit and concurrency must be positive")

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        """Trailing lookback window ending at `now`."""
        return now - timedelta(weeks=self.window_weeks), now
