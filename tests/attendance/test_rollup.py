from __future__ import annotations

from datetime import UTC, datetime

from app.crawlers.wcl.contracts import EventRecord
from app.services.attendance.identity import build_spellings, normalize
from app.services.attendance.nights import Night, group_nights
from app.services.attendance.overrides import apply_overrides
from app.services.attendance.rollup import attendance_pct, build_rollup


def _night(
    date_key: str,
    present_raw: set[str],
    *,
    aliases: dict[str, str] | None = None,
    overrides: dict[str, dict[str, float]] | None = None,
) -> Night:
    night = Night(date_key=date_key, records=[], present_raw=set(present_raw))
    night.present = normalize(night.present_raw, aliases or {})
    night.applied = apply_overrides(date_key, night.present, overrides or {})
    return night


def _record(code: str, utc: datetime) -> EventRecord:
    return EventRecord(code=code, start_time=utc, end_time=utc)


def _row(rollup, name: str):
    return next(stat for stat in rollup.rows if stat.name == name)


def test_member_present_every_night_scores_full_attendance() -> None:
    rollup = build_rollup([_night("2024-01-02", {"Bob"}), _night("2024-01-04", {"Bob"})])

    assert rollup.nights == ["2024-01-02", "2024-01-04"]
    assert rollup.rows[0].to_row() == {
        "name": "Bob",
        "attended": 2,
        "possible": 2,
        "pct": 100,
        "lastSeen": "2024-01-04",
    }


def test_fractional_override_credits_missing_night() -> None:
    overrides = {"2024-01-04": {"Bob": 0.5}}
    rollup = build_rollup(
        [
            _night("2024-01-02", {"Bob"}, overrides=overrides),
            _night("2024-01-04", set(), overrides=overrides),
        ]
    )

    bob = _row(rollup, "Bob")
    assert bob.nights_attended == 1.5
    assert bob.pct == 75
    assert bob.last_seen == "2024-01-02"
    assert bob.present_dates == ["2024-01-02"]


def test_excluded_date_leaves_the_denominator() -> None:
    records = [
        _record("tue", datetime(2024, 1, 3, 2, 0, tzinfo=UTC)),
        _record("thu", datetime(2024, 1, 5, 2, 0, tzinfo=UTC)),
    ]
    grouped = group_nights(records, timezone="America/Chicago", weekdays={1, 3}, excluded={"2024-01-04"})
    overrides = {"2024-01-04": {"Bob": 1.0, "Ann": 0.5}}

    nights = [_night(date_key, {"Bob"}, overrides=overrides) for date_key in grouped]
    rollup = build_rollup(nights)

    assert rollup.nights == ["2024-01-02"]
    assert [stat.name for stat in rollup.rows] == ["Bob"]
    assert _row(rollup, "Bob").nights_possible == 1


def test_override_replaces_resolved_presence_both_ways() -> None:
    applied = apply_overrides("2024-01-02", {"Bob", "Cy"}, {"2024-01-02": {"Bob": 0.0, "Dee": 0.75}})

    assert applied == {"Bob": 0.0, "Cy": 1.0, "Dee": 0.75}


def test_override_and_alias_names_match_observed_spelling_case_insensitively() -> None:
    spellings = build_spellings({"Bob", "Bobalt", "Cy"})
    present = normalize({"Bobalt", "Cy"}, {"bobalt": "bob"}, spellings)

    applied = apply_overrides("2024-01-02", present, {"2024-01-02": {"cy": 0.5, "Dee": 1.0}}, spellings)

    assert present == {"Bob", "Cy"}
    assert applied == {"Bob": 1.0, "Cy": 0.5, "Dee": 1.0}


def test_alias_collapses_onto_main_without_double_credit() -> None:
    aliases = {"Bobalt": "Bob"}
    rollup = build_rollup(
        [
            _night("2024-01-02", {"Bobalt"}, aliases=aliases),
            _night("2024-01-04", {"Bobalt", "Bob"}, aliases=aliases),
        ]
    )

    assert [stat.name for stat in rollup.rows] == ["Bob"]
    assert _row(rollup, "Bob").nights_attended == 2
    assert _row(rollup, "Bob").pct == 100


def test_percentage_rounds_half_up() -> None:
    assert attendance_pct(1.5, 3) == 50
    assert attendance_pct(1, 3) == 33
    assert attendance_pct(2, 3) == 67
    assert attendance_pct(1, 8) == 13
    assert attendance_pct(0, 0) == 0


def test_denominator_is_uniform_and_rows_sort_by_pct_attended_name() -> None:
    rollup = build_rollup(
        [
            _night("2024-01-02", {"Zed", "Amy", "Kim"}),
            _night("2024-01-04", {"Zed", "Amy"}),
            _night("2024-01-09", {"Zed"}, overrides={"2024-01-09": {"Amy": 0.25}}),
        ]
    )

    assert [stat.name for stat in rollup.rows] == ["Zed", "Amy", "Kim"]
    assert {stat.nights_possible for stat in rollup.rows} == {3}
    assert _row(rollup, "Amy").nights_attended == 2.25
    assert _row(rollup, "Kim").last_seen == "2024-01-02"


def test_ties_break_by_attended_then_name() -> None:
    rollup = build_rollup(
        [
            _night("2024-01-02", {"Al"}, overrides={"2024-01-02": {"Bea": 0.99}}),
            _night("2024-01-04", {"Cat"}),
            _night("2024-01-09", set()),
        ]
    )

    assert {stat.pct for stat in rollup.rows} == {33}
    assert [stat.name for stat in rollup.rows] == ["Al", "Cat", "Bea"]


def test_override_only_member_has_no_last_seen() -> None:
    rollup = build_rollup([_night("2024-01-02", set(), overrides={"2024-01-02": {"Pug": 1.0}})])

    pug = _row(rollup, "Pug")
    assert pug.nights_attended == 1
    assert pug.last_seen == ""
    assert rollup.per_player_dates == {}


def test_payload_shape_includes_dates_and_sorted_exclusions() -> None:
    rollup = build_rollup([_night("2024-01-02", {"Bob"})])

    payload = rollup.to_payload(excluded={"2024-01-11": None, "2024-01-04": "Holiday"})

    assert payload["nights"] == ["2024-01-02"]
    assert payload["perPlayerDates"] == {"Bob": ["2024-01-02"]}
    assert payload["excluded"] == [
        {"dateKey": "2024-01-04", "reason": "Holiday"},
        {"dateKey": "2024-01-11", "reason": None},
    ]


def test_empty_window_yields_empty_rollup() -> None:
    rollup = build_rollup([])

    assert rollup.nights == []
    assert rollup.rows == []
