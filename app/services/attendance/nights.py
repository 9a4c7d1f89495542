"""Bucket reports into raid nights and union presence per night."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Awaitable, Callable, Iterable

from app.crawlers.wcl.contracts import EventRecord
from app.services.attendance.calendar import is_recurring_day, local_date_key

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Night:
    """One qualifying raid date and everything resolved for it."""

    date_key: str
    records: list[EventRecord]
    present_raw: set[str] = field(default_factory=set)
    present: set[str] = field(default_factory=set)
    applied: dict[str, float] = field(default_factory=dict)


def group_nights(
    records: Iterable[EventRecord],
    *,
    timezone: str,
    weekdays: AbstractSet[int],
    excluded: AbstractSet[str],
) -> dict[str, list[EventRecord]]:
    """Group reports by local start date, keeping raid weekdays that are not excluded.

    Keys come back in ascending order; that order is the night inventory.
    """

    grouped: dict[str, list[EventRecord]] = {}
    for record in records:
        if not is_recurring_day(record.start_time, timezone, weekdays):
            continue
        date_key = local_date_key(record.start_time, timezone)
        if date_key in excluded:
            continue
        grouped.setdefault(date_key, []).append(record)
    return {date_key: grouped[date_key] for date_key in sorted(grouped)}


async def resolve_nights(
    grouped: dict[str, list[EventRecord]],
    resolve_presence: Callable[[EventRecord], Awaitable[set[str]]],
    *,
    concurrency: int = 4,
) -> list[Night]:
    """Resolve presence for every report and union it into its night.

    Reports are resolved concurrently; attribution to nights follows the
    grouping, not arrival order. The first failure cancels the rest.
    """

    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _bounded(record: EventRecord) -> set[str]:
        async with semaphore:
            return await resolve_presence(record)

    jobs = [
        (date_key, asyncio.ensure_future(_bounded(record)))
        for date_key, records in grouped.items()
        for record in records
    ]
    tasks = [task for _, task in jobs]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    nights = {date_key: Night(date_key=date_key, records=list(records)) for date_key, records in grouped.items()}
    for (date_key, _), present in zip(jobs, results):
        nights[date_key].present_raw.update(present)

    for night in nights.values():
        night.present_raw.discard("")
        logger.debug(
            "Night resolved",
            extra={"date_key": night.date_key, "reports": len(night.records), "present": len(night.present_raw)},
        )
    return list(nights.values())
