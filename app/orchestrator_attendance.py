"""Attendance orchestrator: one roll-up run from reports to sorted rows."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable, Optional

from app.config.rollup import RollupConfig
from app.config.settings import settings
from app.crawlers.wcl.client import TokenCache, WarcraftLogsClient, sanitize_for_log, sanitize_log_extra
from app.crawlers.wcl.presence_stage import PresenceStage
from app.crawlers.wcl.reports_stage import ReportsStage
from app.services.attendance.identity import build_spellings, normalize
from app.services.attendance.nights import group_nights, resolve_nights
from app.services.attendance.overrides import apply_overrides
from app.services.attendance.rollup import build_rollup
from app.services.attendance.snapshot import SnapshotCache
from app.services.attendance.state_store import AttendanceStateStore

logger = logging.getLogger(__name__)


class AttendanceOrchestrator:
    """Coordinates report listing, presence resolution and aggregation."""

    def __init__(
        self,
        *,
        config: Optional[RollupConfig] = None,
        state_store: Optional[AttendanceStateStore] = None,
        snapshot_cache: Optional[SnapshotCache] = None,
        wcl_client_factory: Optional[Callable[[], Any]] = None,
        token_cache: Optional[TokenCache] = None,
        now_provider: Callable[[], datetime] = lambda: datetime.now(UTC),
        refresh_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config = config or RollupConfig.from_settings(settings)
        self._state_store = state_store or AttendanceStateStore()
        self._snapshot_cache = snapshot_cache or SnapshotCache()
        self._token_cache = token_cache or TokenCache(refresh_skew_seconds=settings.WCL_TOKEN_REFRESH_SKEW_SECONDS)
        self._wcl_client_factory = wcl_client_factory or (lambda: WarcraftLogsClient(token_cache=self._token_cache))
        self._now_provider = now_provider
        self._refresh_timeout_seconds = (
            refresh_timeout_seconds
            if refresh_timeout_seconds is not None
            else settings.ATTENDANCE_REFRESH_TIMEOUT_SECONDS
        )
        self._run_lock = asyncio.Lock()

    @property
    def config(self) -> RollupConfig:
        return self._config

    @property
    def state_store(self) -> AttendanceStateStore:
        return self._state_store

    @property
    def snapshot_cache(self) -> SnapshotCache:
        return self._snapshot_cache

    async def refresh(self, *, now: Optional[datetime] = None) -> dict[str, Any]:
        """Run a roll-up under the caller-level timeout; no partial result on failure."""

        async with self._run_lock:
            try:
                return await asyncio.wait_for(self.run_rollup(now=now), timeout=self._refresh_timeout_seconds)
            except Exception as exc:
                logger.exception(
                    "Attendance roll-up failed",
                    extra=sanitize_log_extra(error=str(exc), error_type=type(exc).__name__),
                )
                raise

    async def run_rollup(self, *, now: Optional[datetime] = None) -> dict[str, Any]:
        config = self._config
        config.validate()

        state = self._state_store.snapshot()
        run_at = now or self._now_provider()
        window_start, window_end = config.window(run_at)
        logger.info(
            "Attendance roll-up started",
            extra=sanitize_log_extra(
                guild=config.guild_name,
                window_start=window_start.isoformat(),
                window_end=window_end.isoformat(),
                excluded=sorted(state.excluded),
            ),
        )

        async with self._wcl_client_factory() as client:
            reports = await ReportsStage(client, config).fetch_all_reports(window_start, window_end)
            grouped = group_nights(
                reports,
                timezone=config.timezone,
                weekdays=config.weekdays,
                excluded=set(state.excluded),
            )
            presence = PresenceStage(client, player_classes=config.player_classes, known_npcs=config.known_npcs)
            nights = await resolve_nights(grouped, presence.resolve_presence, concurrency=config.concurrency)

        spellings = build_spellings(name for night in nights for name in night.present_raw)
        for night in nights:
            night.present = normalize(night.present_raw, state.alias_map, spellings)
            night.applied = apply_overrides(night.date_key, night.present, state.override_table, spellings)

        rollup = build_rollup(nights)
        payload = rollup.to_payload(excluded=state.excluded)
        payload["generatedAt"] = run_at.isoformat()
        payload["window"] = {"start": window_start.isoformat(), "end": window_end.isoformat()}

        self._snapshot_cache.store(payload)
        logger.info(
            "Attendance roll-up completed",
            extra={"reports": len(reports), "nights": len(rollup.nights), "members": len(rollup.rows)},
        )
        return payload

    async def run_job(self, *, now: Optional[datetime] = None) -> dict[str, Any]:
        """Job-style wrapper reporting success/error instead of raising."""

        started_at = datetime.now(UTC).isoformat()
        try:
            payload = await self.refresh(now=now)
        except Exception as exc:
            return {
                "success": False,
                "started_at": started_at,
                "error": sanitize_for_log(str(exc) or type(exc).__name__, key="error"),
            }
        return {
            "success": True,
            "started_at": started_at,
            "completed_at": datetime.now(UTC).isoformat(),
            "stats": {
                "nights": len(payload["nights"]),
                "members": len(payload["rows"]),
                "excluded": len(payload.get("excluded", [])),
            },
        }
