"""Admin-curated overrides, alt links and excluded dates."""

from __future__ import annotations

import json
import logging
import math
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OverrideRow:
    dateKey: str
    name: str
    fractional: float


@dataclass(frozen=True, slots=True)
class AliasLink:
    alt: str
    main: str


@dataclass(frozen=True, slots=True)
class ExcludedDate:
    dateKey: str
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Consistent read of the admin state for one roll-up run."""

    alias_map: dict[str, str]
    override_table: dict[str, dict[str, float]]
    excluded: dict[str, Optional[str]]


def normalize_date_key(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("dateKey required")
    try:
        return date_parser.isoparse(raw.strip()).date().isoformat()
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"Invalid dateKey: {raw}") from exc


def normalize_name(raw: Any, field_name: str) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"{field_name} required")
    return raw.strip()


def normalize_fractional(raw: Any) -> float:
    """Override values must be finite and within [0, 1]."""
    if isinstance(raw, bool):
        raise ValueError("fractional must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("fractional must be a number") from exc
    if not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise ValueError("fractional must be between 0 and 1")
    return value


class AttendanceStateStore:
    """In-memory admin state, mirrored to a JSON file when a path is configured."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._overrides: list[OverrideRow] = []
        self._links: list[AliasLink] = []
        self._dates: list[ExcludedDate] = []

    def load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("state file must hold a JSON object")
            with self._lock:
                self._replace(payload)
        except (OSError, ValueError) as exc:
            logger.warning("Starting with empty attendance state", extra={"path": str(self._path), "error": str(exc)})

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            override_table: dict[str, dict[str, float]] = {}
            for row in self._overrides:
                override_table.setdefault(row.dateKey, {})[row.name] = row.fractional
            return StateSnapshot(
                alias_map={link.alt: link.main for link in self._links},
                override_table=override_table,
                excluded={row.dateKey: row.reason for row in self._dates},
            )

    def export_state(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            return self._export()

    def import_state(self, payload: Any) -> None:
        with self._lock:
            self._replace(payload if isinstance(payload, dict) else {})
            self._persist()

    # Overrides

    def list_overrides(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = sorted(self._overrides, key=lambda row: row.name.lower())
            rows.sort(key=lambda row: row.dateKey, reverse=True)
            return [asdict(row) for row in rows]

    def set_override(self, date_key: Any, name: Any, fractional: Any) -> OverrideRow:
        row = OverrideRow(
            dateKey=normalize_date_key(date_key),
            name=normalize_name(name, "name"),
            fractional=normalize_fractional(fractional),
        )
        with self._lock:
            self._overrides = [existing for existing in self._overrides if not _same_override(existing, row)]
            self._overrides.append(row)
            self._persist()
        return row

    def remove_override(self, date_key: Any, name: Any) -> None:
        target = OverrideRow(normalize_date_key(date_key), normalize_name(name, "name"), 0.0)
        with self._lock:
            kept = [existing for existing in self._overrides if not _same_override(existing, target)]
            if len(kept) == len(self._overrides):
                raise KeyError(f"No override for {target.name} on {target.dateKey}")
            self._overrides = kept
            self._persist()

    # Alt links

    def list_aliases(self) -> list[dict[str, str]]:
        with self._lock:
            return [asdict(link) for link in sorted(self._links, key=lambda link: link.alt.lower())]

    def set_alias(self, alt: Any, main: Any) -> AliasLink:
        link = AliasLink(alt=normalize_name(alt, "alt"), main=normalize_name(main, "main"))
        if link.alt.lower() == link.main.lower():
            raise ValueError("alt and main must differ")
        with self._lock:
            self._links = [existing for existing in self._links if existing.alt.lower() != link.alt.lower()]
            self._links.append(link)
            self._persist()
        return link

    def remove_alias(self, alt: Any) -> None:
        key = normalize_name(alt, "alt").lower()
        with self._lock:
            kept = [existing for existing in self._links if existing.alt.lower() != key]
            if len(kept) == len(self._links):
                raise KeyError(f"No alt link for {alt}")
            self._links = kept
            self._persist()

    # Excluded dates

    def list_excluded(self) -> list[dict[str, Any]]:
        with self._lock:
            return [asdict(row) for row in sorted(self._dates, key=lambda row: row.dateKey, reverse=True)]

    def set_excluded(self, date_key: Any, reason: Any = None) -> ExcludedDate:
        reason_text = reason.strip() if isinstance(reason, str) and reason.strip() else None
        row = ExcludedDate(dateKey=normalize_date_key(date_key), reason=reason_text)
        with self._lock:
            self._dates = [existing for existing in self._dates if existing.dateKey != row.dateKey]
            self._dates.append(row)
            self._persist()
        return row

    def remove_excluded(self, date_key: Any) -> None:
        key = normalize_date_key(date_key)
        with self._lock:
            kept = [existing for existing in self._dates if existing.dateKey != key]
            if len(kept) == len(self._dates):
                raise KeyError(f"{key} is not excluded")
            self._dates = kept
            self._persist()

    def _export(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "overrides": [asdict(row) for row in self._overrides],
            "links": [asdict(link) for link in self._links],
            "dates": [asdict(row) for row in self._dates],
        }

    def _replace(self, payload: dict[str, Any]) -> None:
        """Validate every incoming row before swapping state in."""
        overrides: dict[tuple[str, str], OverrideRow] = {}
        for raw in _rows(payload.get("overrides")):
            row = OverrideRow(
                dateKey=normalize_date_key(raw.get("dateKey")),
                name=normalize_name(raw.get("name"), "name"),
                fractional=normalize_fractional(raw.get("fractional")),
            )
            overrides[(row.dateKey, row.name.lower())] = row

        links: dict[str, AliasLink] = {}
        for raw in _rows(payload.get("links")):
            link = AliasLink(alt=normalize_name(raw.get("alt"), "alt"), main=normalize_name(raw.get("main"), "main"))
            links[link.alt.lower()] = link

        dates: dict[str, ExcludedDate] = {}
        for raw in _rows(payload.get("dates")):
            reason = raw.get("reason")
            row = ExcludedDate(
                dateKey=normalize_date_key(raw.get("dateKey")),
                reason=reason.strip() if isinstance(reason, str) and reason.strip() else None,
            )
            dates[row.dateKey] = row

        self._overrides = list(overrides.values())
        self._links = list(links.values())
        self._dates = list(dates.values())

    def _persist(self) -> None:
        if self._path is None:
            return
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._export(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)


def _same_override(left: OverrideRow, right: OverrideRow) -> bool:
    return left.dateKey == right.dateKey and left.name.lower() == right.name.lower()


def _rows(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]
