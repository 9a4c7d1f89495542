"""Raid presence resolution from report damage/healing tables."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional

from app.crawlers.wcl.contracts import EventRecord, ParticipantEntry

logger = logging.getLogger(__name__)

TABLE_DAMAGE_DONE = "DamageDone"
TABLE_HEALING = "Healing"
PRESENCE_TABLES = (TABLE_DAMAGE_DONE, TABLE_HEALING)


def _direct_entries(table: dict[str, Any]) -> Optional[list[Any]]:
    entries = table.get("entries")
    return entries if isinstance(entries, list) else None


def _nested_data_entries(table: dict[str, Any]) -> Optional[list[Any]]:
    data = table.get("data")
    if isinstance(data, dict) and isinstance(data.get("entries"), list):
        return data["entries"]
    return None


def _series_entries(table: dict[str, Any]) -> Optional[list[Any]]:
    series = table.get("series")
    if not isinstance(series, list):
        return None
    for item in series:
        if not isinstance(item, dict):
            continue
        if isinstance(item.get("entries"), list):
            return item["entries"]
        data = item.get("data")
        if isinstance(data, dict) and isinstance(data.get("entries"), list):
            return data["entries"]
    return None


def _scanned_entries(table: dict[str, Any]) -> Optional[list[Any]]:
    for value in table.values():
        if isinstance(value, list) and value and isinstance(value[0], dict) and "name" in value[0]:
            return value
    return None


# Tried in order; the first strategy that recognizes the payload wins.
EXTRACTION_STRATEGIES: tuple[tuple[str, Callable[[dict[str, Any]], Optional[list[Any]]]], ...] = (
    ("direct", _direct_entries),
    ("nested-data", _nested_data_entries),
    ("series", _series_entries),
    ("scan", _scanned_entries),
)


def extract_entries(table: Any) -> list[ParticipantEntry]:
    """Unwrap the participant rows of a table payload, or `[]` if unrecognized."""

    if not isinstance(table, dict):
        return []

    for label, strategy in EXTRACTION_STRATEGIES:
        raw_entries = strategy(table)
        if raw_entries is None:
            continue
        logger.debug("Table entries extracted", extra={"strategy": label, "entries": len(raw_entries)})
        return [_to_entry(raw) for raw in raw_entries if isinstance(raw, dict)]
    return []


def _to_entry(raw: dict[str, Any]) -> ParticipantEntry:
    name = raw.get("name")
    kind = raw.get("type")
    return ParticipantEntry(
        name=name.strip() if isinstance(name, str) else "",
        kind=str(kind) if kind is not None else None,
    )


def is_member_entry(entry: ParticipantEntry, *, player_classes: Iterable[str], known_npcs: Iterable[str]) -> bool:
    """Keep players; drop pets, NPC allies and nameless rows."""

    if not entry.name:
        return False
    if entry.name in known_npcs:
        return False
    if entry.kind is None:
        return True
    return entry.kind in player_classes


class PresenceStage:
    """Resolves the set of raider names present in one report."""

    def __init__(
        self,
        wcl_client: Any,
        *,
        player_classes: Iterable[str],
        known_npcs: Iterable[str],
    ) -> None:
        self._wcl_client = wcl_client
        self._player_classes = frozenset(player_classes)
        self._known_npcs = frozenset(known_npcs)

    async def resolve_presence(self, record: EventRecord) -> set[str]:
        fights = await self._wcl_client.list_fights(record.code)
        kill_ids = [fight.id for fight in fights if fight.is_qualifying]
        if not kill_ids:
            logger.info("Report has no boss kills", extra={"report": record.code})
            return set()

        tables = await asyncio.gather(
            *(self._wcl_client.get_table(record.code, kill_ids, data_type) for data_type in PRESENCE_TABLES)
        )

        present: set[str] = set()
        for table in tables:
            for entry in extract_entries(table):
                if is_member_entry(entry, player_classes=self._player_classes, known_npcs=self._known_npcs):
                    present.add(entry.name)

        logger.info(
            "Resolved report presence",
            extra={"report": record.code, "kills": len(kill_ids), "present": len(present)},
        )
        return present
