"""Last-good roll-up cache with optional JSON persistence."""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CachedRollup:
    payload: dict[str, Any]
    stored_at: datetime
    stale: bool = False


class SnapshotCache:
    """Holds the most recent successful roll-up; failed runs never touch it."""

    def __init__(
        self,
        path: Optional[str] = None,
        *,
        now_provider: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._path = Path(path) if path else None
        self._now_provider = now_provider
        self._entry: Optional[CachedRollup] = None

    def load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._entry = CachedRollup(
                payload=raw["payload"],
                stored_at=datetime.fromisoformat(raw["storedAt"]),
                stale=bool(raw.get("stale", False)),
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable roll-up snapshot", extra={"path": str(self._path), "error": str(exc)})

    def store(self, payload: dict[str, Any]) -> CachedRollup:
        entry = CachedRollup(payload=copy.deepcopy(payload), stored_at=self._now_provider())
        self._persist(entry)
        self._entry = entry
        return entry

    def latest(self) -> Optional[CachedRollup]:
        if self._entry is None:
            return None
        return CachedRollup(
            payload=copy.deepcopy(self._entry.payload),
            stored_at=self._entry.stored_at,
            stale=self._entry.stale,
        )

    def mark_stale(self) -> None:
        if self._entry is not None:
            self._entry.stale = True

    def _persist(self, entry: CachedRollup) -> None:
        if self._path is None:
            return
        body = {"payload": entry.payload, "storedAt": entry.stored_at.isoformat(), "stale": entry.stale}
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(body, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)
