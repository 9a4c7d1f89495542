from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from app.config.rollup import RollupConfig
from app.crawlers.wcl.contracts import EventRecord, ParticipantEntry, ReportPage, SubEvent
from app.crawlers.wcl.presence_stage import PresenceStage, extract_entries, is_member_entry
from app.crawlers.wcl.reports_stage import ReportsStage
from app.errors import UpstreamQueryError

PLAYER_CLASSES = {"Warrior", "Mage", "Priest"}
KNOWN_NPCS = {"Lieutenant General Andorov", "Kaldorei Elite"}


def _record(code: str) -> EventRecord:
    instant = datetime(2024, 1, 3, 2, 0, tzinfo=UTC)
    return EventRecord(code=code, start_time=instant, end_time=instant)


class FakePagedClient:
    def __init__(self, pages: list[ReportPage], fail_on_page: int | None = None) -> None:
        self.pages = pages
        self.fail_on_page = fail_on_page
        self.calls: list[dict[str, Any]] = []

    async def list_guild_reports(self, **kwargs: Any) -> ReportPage:
        self.calls.append(kwargs)
        if kwargs["page"] == self.fail_on_page:
            raise UpstreamQueryError("page failed", status_code=500)
        return self.pages[kwargs["page"] - 1]


class FakeTableClient:
    def __init__(self, fights: list[SubEvent], tables: dict[str, Any]) -> None:
        self.fights = fights
        self.tables = tables
        self.table_calls: list[tuple[str, list[int], str]] = []

    async def list_fights(self, _code: str) -> list[SubEvent]:
        return self.fights

    async def get_table(self, code: str, fight_ids: list[int], data_type: str) -> Any:
        self.table_calls.append((code, list(fight_ids), data_type))
        return self.tables.get(data_type)


def _config() -> RollupConfig:
    return RollupConfig(guild_name="Tempest", server_slug="dreamscythe", server_region="us", page_limit=2)


@pytest.mark.asyncio
async def test_fetch_all_reports_walks_every_page_in_order() -> None:
    client = FakePagedClient(
        [
            ReportPage(records=[_record("a"), _record("b")], has_more_pages=True),
            ReportPage(records=[_record("c"), _record("d")], has_more_pages=True),
            ReportPage(records=[_record("e")], has_more_pages=False),
        ]
    )
    stage = ReportsStage(client, _config())

    records = await stage.fetch_all_reports(
        datetime(2023, 11, 28, tzinfo=UTC),
        datetime(2024, 1, 9, tzinfo=UTC),
    )

    assert [record.code for record in records] == ["a", "b", "c", "d", "e"]
    assert [call["page"] for call in client.calls] == [1, 2, 3]
    assert client.calls[0]["limit"] == 2
    assert client.calls[0]["server_slug"] == "dreamscythe"
    assert client.calls[0]["end_ms"] == datetime(2024, 1, 9, tzinfo=UTC).timestamp() * 1000


@pytest.mark.asyncio
async def test_fetch_all_reports_aborts_on_any_page_failure() -> None:
    client = FakePagedClient(
        [
            ReportPage(records=[_record("a")], has_more_pages=True),
            ReportPage(records=[_record("b")], has_more_pages=False),
        ],
        fail_on_page=2,
    )
    stage = ReportsStage(client, _config())

    with pytest.raises(UpstreamQueryError):
        await stage.fetch_all_reports(datetime(2023, 11, 28, tzinfo=UTC), datetime(2024, 1, 9, tzinfo=UTC))


@pytest.mark.asyncio
async def test_presence_unions_damage_and_healing_members() -> None:
    client = FakeTableClient(
        fights=[SubEvent(id=1, is_qualifying=True), SubEvent(id=2, is_qualifying=False), SubEvent(id=5, is_qualifying=True)],
        tables={
            "DamageDone": {
                "entries": [
                    {"name": " Bob ", "type": "Warrior"},
                    {"name": "Wolf", "type": "Pet"},
                    {"name": "Lieutenant General Andorov", "type": "NPC"},
                    {"name": "", "type": "Mage"},
                ]
            },
            "Healing": {
                "data": {
                    "entries": [
                        {"name": "Ann", "type": "Priest"},
                        {"name": "Bob", "type": "Warrior"},
                        {"name": "Kaldorei Elite"},
                        {"name": "Mystery"},
                    ]
                }
            },
        },
    )
    stage = PresenceStage(client, player_classes=PLAYER_CLASSES, known_npcs=KNOWN_NPCS)

    present = await stage.resolve_presence(_record("abc"))

    assert present == {"Bob", "Ann", "Mystery"}
    assert sorted(call[2] for call in client.table_calls) == ["DamageDone", "Healing"]
    assert all(call[1] == [1, 5] for call in client.table_calls)


@pytest.mark.asyncio
async def test_presence_is_empty_without_boss_kills() -> None:
    client = FakeTableClient(fights=[SubEvent(id=2, is_qualifying=False)], tables={})
    stage = PresenceStage(client, player_classes=PLAYER_CLASSES, known_npcs=KNOWN_NPCS)

    present = await stage.resolve_presence(_record("trash-only"))

    assert present == set()
    assert client.table_calls == []


def test_extract_entries_recognizes_each_table_shape() -> None:
    row = {"name": "Bob", "type": "Mage"}
    expected = [ParticipantEntry(name="Bob", kind="Mage")]

    assert extract_entries({"entries": [row]}) == expected
    assert extract_entries({"data": {"entries": [row]}}) == expected
    assert extract_entries({"series": [{"name": "x"}, {"entries": [row]}]}) == expected
    assert extract_entries({"series": [{"data": {"entries": [row]}}]}) == expected
    assert extract_entries({"totalTime": 10, "playerDetails": [row]}) == expected


def test_extract_entries_degrades_to_empty_for_unknown_shapes() -> None:
    assert extract_entries(None) == []
    assert extract_entries([{"name": "Bob"}]) == []
    assert extract_entries({"totals": [1, 2, 3]}) == []
    assert extract_entries({"series": [{"entries": []}]}) == []


def test_first_series_item_with_an_entries_list_wins_even_when_empty() -> None:
    row = {"name": "Bob", "type": "Mage"}

    assert extract_entries({"series": [{"entries": []}, {"entries": [row]}]}) == []
    assert extract_entries({"series": [{"data": {"entries": []}}, {"entries": [row]}]}) == []
    assert extract_entries({"series": [{"entries": "Bob"}, {"entries": [row]}]}) == [
        ParticipantEntry(name="Bob", kind="Mage")
    ]



def test_member_filter_rules() -> None:
    def check(name: str, kind: str | None = None) -> bool:
        return is_member_entry(ParticipantEntry(name, kind), player_classes=PLAYER_CLASSES, known_npcs=KNOWN_NPCS)

    assert check("Bob", "Warrior") is True
    assert check("Bob") is True
    assert check("Bob", "Pet") is False
    assert check("Kaldorei Elite") is False
    assert check("") is False
