"""Guild report listing with page-until-exhausted semantics."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from app.config.rollup import RollupConfig
from app.crawlers.wcl.contracts import EventRecord

logger = logging.getLogger(__name__)


class ReportsStage:
    """Fetches every report the guild uploaded inside a time window."""

    def __init__(self, wcl_client: Any, config: RollupConfig) -> None:
        self._wcl_client = wcl_client
        self._config = config

    async def fetch_all_reports(self, window_start: datetime, window_end: datetime) -> list[EventRecord]:
        """Accumulate all pages in upstream order.

        Any upstream error propagates; a partial listing is never returned.
        """

        start_ms = window_start.timestamp() * 1000.0
        end_ms = window_end.timestamp() * 1000.0
        records: list[EventRecord] = []
        page = 1

        while True:
            result = await self._wcl_client.list_guild_reports(
                guild_name=self._config.guild_name,
                server_slug=self._config.server_slug,
                server_region=self._config.server_region,
                start_ms=start_ms,
                end_ms=end_ms,
                page=page,
                limit=self._config.page_limit,
            )
            records.extend(result.records)
            if not result.has_more_pages:
                break
            page += 1

        logger.info(
            "Fetched guild reports",
            extra={"guild": self._config.guild_name, "pages": page, "reports": len(records)},
        )
        return records
