"""eCFR API client — titles, agencies and full title XML by date."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, datetime
from typing import Awaitable, Callable

import httpx
from pydantic import ValidationError

from cfr_cache.config import settings
from cfr_cache.errors import RateLimited, UpstreamUnavailable
from cfr_cache.metrics import UPSTREAM_LATENCY_SECONDS, UPSTREAM_REQUESTS_TOTAL
from cfr_cache.schemas.ecfr import AgenciesResponse, Agency, TitleInfo, TitlesResponse
from cfr_cache.snapshot_store import as_date
from cfr_cache.upstream import retry_rate_limited

logger = logging.getLogger(__name__)

TITLES_PATH = "/api/versioner/v1/titles"
AGENCIES_PATH = "/api/admin/v1/agencies.json"


def title_xml_path(title_number: int, when: date) -> str:
    return f"/api/versioner/v1/full/{when.isoformat()}/title-{title_number}.xml"


def _parse_retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class EcfrClient:
    """Implements UpstreamFetcher, TitleCatalog and AgencyCatalog over httpx."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = settings.ECFR_BASE_URL,
        timeout: float = settings.UPSTREAM_TIMEOUT_S,
        max_attempts: int = settings.UPSTREAM_MAX_ATTEMPTS,
        backoff_base: float = settings.UPSTREAM_BACKOFF_BASE_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": settings.ECFR_USER_AGENT},
            follow_redirects=True,
        )
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._sleep = sleep

    async def __aenter__(self) -> EcfrClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_titles(self) -> list[TitleInfo]:
        resp = await self._get("titles", TITLES_PATH, accept="application/json")
        try:
            return TitlesResponse.model_validate(resp.json()).titles
        except (ValueError, ValidationError) as exc:
            raise UpstreamUnavailable(f"Malformed titles payload: {exc}") from exc

    async def list_agencies(self) -> list[Agency]:
        resp = await self._get("agencies", AGENCIES_PATH, accept="application/json")
        try:
            return AgenciesResponse.model_validate(resp.json()).agencies
        except (ValueError, ValidationError) as exc:
            raise UpstreamUnavailable(f"Malformed agencies payload: {exc}") from exc

    async def fetch_title_content(self, title_number: int, when: date | datetime) -> str:
        snapshot_date = as_date(when)
        logger.info("Retrieving XML for title %s at date %s", title_number, snapshot_date)
        resp = await self._get(
            "title_xml",
            title_xml_path(title_number, snapshot_date),
            accept="application/xml",
        )
        return resp.text

    async def _get(self, endpoint: str, path: str, *, accept: str) -> httpx.Response:
        async def attempt() -> httpx.Response:
            return await self._get_once(endpoint, path, accept=accept)

        return await retry_rate_limited(
            attempt,
            endpoint=endpoint,
            max_attempts=self._max_attempts,
            base_delay=self._backoff_base,
            sleep=self._sleep,
        )

    async def _get_once(self, endpoint: str, path: str, *, accept: str) -> httpx.Response:
        started = time.monotonic()
        try:
            resp = await self._client.get(path, headers={"Accept": accept})
        except httpx.HTTPError as exc:
            UPSTREAM_REQUESTS_TOTAL.labels(endpoint=endpoint, outcome="transport_error").inc()
            logger.error("Request to %s failed: %s", path, exc)
            raise UpstreamUnavailable(f"Request to {path} failed: {exc}") from exc
        finally:
            UPSTREAM_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.monotonic() - started)

        if resp.status_code == 429:
            UPSTREAM_REQUESTS_TOTAL.labels(endpoint=endpoint, outcome="rate_limited").inc()
            raise RateLimited(
                f"eCFR rate limited {path}", retry_after=_parse_retry_after(resp)
            )
        if resp.status_code >= 400:
            UPSTREAM_REQUESTS_TOTAL.labels(endpoint=endpoint, outcome="http_error").inc()
            logger.error("HTTP error %s for %s", resp.status_code, path)
            raise UpstreamUnavailable(
                f"eCFR returned {resp.status_code} for {path}", status_code=resp.status_code
            )
        UPSTREAM_REQUESTS_TOTAL.labels(endpoint=endpoint, outcome="ok").inc()
        return resp
