"""Alt-to-main name resolution.

Names match case-insensitively, the same way the admin store dedups
overrides and alt links. The spelling shown in output is the one observed
in logs when there is one.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional


def name_key(name: str) -> str:
    return name.casefold()


def build_spellings(observed: Iterable[str]) -> dict[str, str]:
    """Map each case-folded name to one display spelling, first sorted spelling wins."""
    spellings: dict[str, str] = {}
    for name in sorted(observed):
        spellings.setdefault(name_key(name), name)
    return spellings


def respell(name: str, spellings: Optional[Mapping[str, str]]) -> str:
    if not spellings:
        return name
    return spellings.get(name_key(name), name)


def normalize(
    present_raw: Iterable[str],
    alias_map: Mapping[str, str],
    spellings: Optional[Mapping[str, str]] = None,
) -> set[str]:
    """Collapse alts onto their mains; unknown names map to themselves."""
    folded = {name_key(alt): main for alt, main in alias_map.items()}
    return {respell(folded.get(name_key(name)) or name, spellings) for name in present_raw}
