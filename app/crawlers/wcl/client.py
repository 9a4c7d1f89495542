"""Async Warcraft Logs GraphQL client with explicit token caching."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config.settings import settings
from app.crawlers.wcl.contracts import EventRecord, ReportPage, SubEvent
from app.errors import UpstreamAuthError, UpstreamQueryError

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = ("authorization", "token", "secret", "password", "client_id", "cookie")
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;\"']+"),
    re.compile(r"(?i)(access_token[\"']?\s*[=:]\s*[\"']?)[^\s,;&\"']+"),
    re.compile(r"(?i)(client_secret[\"']?\s*[=:]\s*[\"']?)[^\s,;&\"']+"),
)

GUILD_REPORTS_QUERY = """
query GuildReports($guildName: String!, $guildServerSlug: String!, $guildServerRegion: String!,
                   $start: Float!, $end: Float!, $page: Int!, $limit: Int!) {
  reportData {
    reports(guildName: $guildName, guildServerSlug: $guildServerSlug, guildServerRegion: $guildServerRegion,
            startTime: $start, endTime: $end, page: $page, limit: $limit) {
      data { code startTime endTime }
      has_more_pages
    }
  }
}
"""

REPORT_FIGHTS_QUERY = """
query ReportFights($code: String!) {
  reportData { report(code: $code) { fights(killType: Kills) { id encounterID kill } } }
}
"""

REPORT_TABLE_QUERY = """
query ReportTable($code: String!, $fightIDs: [Int]!, $type: TableDataType!) {
  reportData { report(code: $code) { table(dataType: $type, fightIDs: $fightIDs) } }
}
"""


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a copy of a log payload with credentials masked."""

    if key and any(word in key.lower() for word in _SENSITIVE_KEYS):
        return _REDACTED_VALUE
    if isinstance(value, dict):
        return {str(k): sanitize_for_log(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_for_log(item) for item in value]
    if isinstance(value, str):
        redacted = value
        for pattern in _TOKEN_PATTERNS:
            redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
        return redacted
    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


@dataclass(slots=True)
class TokenCache:
    """OAuth access token with refresh-before-expiry bookkeeping."""

    access_token: Optional[str] = None
    expires_at: float = 0.0
    refresh_skew_seconds: float = 60.0

    def is_fresh(self, now: float) -> bool:
        return bool(self.access_token) and now < self.expires_at - self.refresh_skew_seconds

    def store(self, access_token: str, expires_in: float, *, now: float) -> None:
        self.access_token = access_token
        self.expires_at = now + max(float(expires_in), 0.0)

    def clear(self) -> None:
        self.access_token = None
        self.expires_at = 0.0


class _RetryableUpstreamError(Exception):
    """Transient upstream failure (rate limit, 5xx, transport) for tenacity."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WarcraftLogsClient:
    """GraphQL client for the Warcraft Logs v2 API."""

    GRAPHQL_PATH = "/api/v2/client"
    TOKEN_PATH = "/oauth/token"

    def __init__(
        self,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        token_cache: Optional[TokenCache] = None,
        transport: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client_id = client_id if client_id is not None else settings.WCL_CLIENT_ID
        self._client_secret = client_secret if client_secret is not None else settings.WCL_CLIENT_SECRET
        self._base_url = (base_url or settings.WCL_BASE_URL).rstrip("/")
        self._timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.WCL_TIMEOUT_SECONDS
        self._max_retries = max_retries if max_retries is not None else settings.WCL_MAX_RETRIES
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.WCL_BACKOFF_BASE_SECONDS
        )
        self._backoff_max_seconds = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.WCL_BACKOFF_MAX_SECONDS
        )
        self._token_cache = token_cache or TokenCache(refresh_skew_seconds=settings.WCL_TOKEN_REFRESH_SKEW_SECONDS)
        self._token_lock = asyncio.Lock()
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def token_cache(self) -> TokenCache:
        return self._token_cache

    async def __aenter__(self) -> "WarcraftLogsClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def list_guild_reports(
        self,
        *,
        guild_name: str,
        server_slug: str,
        server_region: str,
        start_ms: float,
        end_ms: float,
        page: int = 1,
        limit: int = 100,
    ) -> ReportPage:
        data = await self.query(
            GUILD_REPORTS_QUERY,
            {
                "guildName": guild_name,
                "guildServerSlug": server_slug,
                "guildServerRegion": server_region,
                "start": start_ms,
                "end": end_ms,
                "page": page,
                "limit": limit,
            },
        )
        reports = _dig(data, "reportData", "reports")
        rows = reports.get("data") if isinstance(reports, dict) else None

        records: list[EventRecord] = []
        for row in rows if isinstance(rows, list) else []:
            try:
                records.append(EventRecord.from_payload(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Malformed report row", extra=sanitize_log_extra(page=page, row=row))
                raise UpstreamQueryError(f"Malformed report row on page {page}: {exc}") from exc
        has_more = bool(reports.get("has_more_pages")) if isinstance(reports, dict) else False
        return ReportPage(records=records, has_more_pages=has_more)

    async def list_fights(self, code: str) -> list[SubEvent]:
        data = await self.query(REPORT_FIGHTS_QUERY, {"code": code})
        fights = _dig(data, "reportData", "report", "fights")
        sub_events: list[SubEvent] = []
        for fight in fights if isinstance(fights, list) else []:
            try:
                sub_events.append(SubEvent.from_payload(fight))
            except (KeyError, TypeError, ValueError) as exc:
                raise UpstreamQueryError(f"Malformed fight in report {code}: {exc}") from exc
        return sub_events

    async def get_table(self, code: str, fight_ids: Sequence[int], data_type: str) -> Any:
        data = await self.query(
            REPORT_TABLE_QUERY,
            {"code": code, "fightIDs": list(fight_ids), "type": data_type},
        )
        table = _dig(data, "reportData", "report", "table")
        if isinstance(table, str):
            try:
                return json.loads(table)
            except ValueError:
                return None
        return table

    async def query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run one GraphQL query and return its `data` object."""

        client = await self._ensure_client()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(self._max_retries, 1)),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type(_RetryableUpstreamError),
                reraise=True,
            ):
                with attempt:
                    token = await self._ensure_token()
                    try:
                        response = await client.post(
                            self.GRAPHQL_PATH,
                            json={"query": query, "variables": variables},
                            headers={"Authorization": f"Bearer {token}"},
                        )
                    except httpx.TransportError as exc:
                        logger.warning(
                            "Warcraft Logs transport error",
                            extra=sanitize_log_extra(variables=variables, error=str(exc)),
                        )
                        raise _RetryableUpstreamError(str(exc)) from exc

                    if response.status_code == 401:
                        self._token_cache.clear()
                        raise UpstreamAuthError("Warcraft Logs rejected the access token", status_code=401)

                    if response.status_code == 429 or response.status_code >= 500:
                        logger.warning(
                            "Warcraft Logs request throttled or failed upstream",
                            extra=sanitize_log_extra(variables=variables, status_code=response.status_code),
                        )
                        raise _RetryableUpstreamError(
                            f"Warcraft Logs returned {response.status_code}", response.status_code
                        )

                    if response.is_error:
                        raise UpstreamQueryError(
                            f"Warcraft Logs query failed: {response.status_code} {response.text[:200]}",
                            status_code=response.status_code,
                        )
                    return self._decode(response)
        except _RetryableUpstreamError as exc:
            raise UpstreamQueryError(
                f"Warcraft Logs request failed after retries: {exc}",
                status_code=exc.status_code,
            ) from exc

        raise UpstreamQueryError("Unknown Warcraft Logs request failure")

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamQueryError("Warcraft Logs returned a non-JSON body", status_code=response.status_code) from exc

        if not isinstance(payload, dict):
            raise UpstreamQueryError("Warcraft Logs returned an unexpected body", status_code=response.status_code)
        if payload.get("errors"):
            raise UpstreamQueryError(
                f"Warcraft Logs error: {json.dumps(payload['errors'])}",
                status_code=response.status_code,
            )
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    async def _ensure_token(self) -> str:
        if self._token_cache.is_fresh(self._clock()):
            return self._token_cache.access_token

        async with self._token_lock:
            if self._token_cache.is_fresh(self._clock()):
                return self._token_cache.access_token

            if not self._client_id or not self._client_secret:
                raise UpstreamAuthError("Warcraft Logs client credentials are not configured")

            client = await self._ensure_client()
            try:
                response = await client.post(
                    self.TOKEN_PATH,
                    data={"grant_type": "client_credentials"},
                    auth=(self._client_id, self._client_secret),
                )
            except httpx.HTTPError as exc:
                raise UpstreamAuthError(f"Warcraft Logs token request failed: {exc}") from exc

            if response.is_error:
                raise UpstreamAuthError(
                    f"Warcraft Logs token request failed: {response.status_code}",
                    status_code=response.status_code,
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamAuthError("Warcraft Logs token response was not JSON") from exc

            token = payload.get("access_token") if isinstance(payload, dict) else None
            if not token:
                raise UpstreamAuthError("Warcraft Logs token response had no access_token")

            expires_in = float(payload.get("expires_in") or 0)
            self._token_cache.store(token, expires_in, now=self._clock())
            logger.info("Warcraft Logs access token refreshed", extra={"expires_in": expires_in})
            return token

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json", "User-Agent": settings.USER_AGENT},
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client


def _dig(payload: Any, *keys: str) -> Any:
    current = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
