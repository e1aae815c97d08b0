from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from cfr_cache.ecfr_client import EcfrClient, title_xml_path
from cfr_cache.errors import RateLimited, UpstreamUnavailable
from cfr_cache.upstream import backoff_delay

TITLES_PAYLOAD = {
    "titles": [
        {
            "number": 1,
            "name": "General Provisions",
            "latest_amended_on": "2022-12-29",
            "latest_issue_date": "2024-05-17",
            "up_to_date_as_of": "2025-02-06",
            "reserved": False,
        },
        {"number": 35, "name": "Panama Canal [Reserved]", "latest_issue_date": "", "reserved": True},
    ],
    "meta": {"date": "2025-02-06", "import_in_progress": False},
}


def _client(handler, sleeps: list[float] | None = None, max_attempts: int = 3) -> EcfrClient:
    async def fake_sleep(delay: float) -> None:
        if sleeps is not None:
            sleeps.append(delay)

    transport = httpx.MockTransport(handler)
    http = httpx.AsyncClient(transport=transport, base_url="https://www.ecfr.gov")
    return EcfrClient(http, max_attempts=max_attempts, backoff_base=1.0, sleep=fake_sleep)


def test_title_xml_path_uses_iso_date() -> None:
    assert title_xml_path(15, date(2025, 2, 6)) == "/api/versioner/v1/full/2025-02-06/title-15.xml"


def test_list_titles_parses_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/versioner/v1/titles"
        return httpx.Response(200, json=TITLES_PAYLOAD)

    titles = asyncio.run(_client(handler).list_titles())
    assert [t.number for t in titles] == [1, 35]
    assert titles[0].latest_issue_date == date(2024, 5, 17)
    assert titles[1].latest_issue_date is None


def test_list_agencies_parses_nested_children() -> None:
    payload = {
        "agencies": [
            {
                "name": "Department of Commerce",
                "slug": "commerce-department",
                "cfr_references": [{"title": 15, "chapter": "I"}],
                "children": [
                    {
                        "name": "National Telecommunications and Information Administration",
                        "slug": "national-telecommunications-and-information-administration",
                        "cfr_references": [{"title": 47, "chapter": "III"}],
                    }
                ],
            }
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/admin/v1/agencies.json"
        return httpx.Response(200, json=payload)

    agencies = asyncio.run(_client(handler).list_agencies())
    assert agencies[0].children[0].cfr_references[0].title == 47


def test_fetch_title_content_returns_xml_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/versioner/v1/full/2024-05-17/title-1.xml"
        assert request.headers["accept"] == "application/xml"
        return httpx.Response(200, text="<DIV1>hello world</DIV1>")

    xml = asyncio.run(_client(handler).fetch_title_content(1, date(2024, 5, 17)))
    assert xml == "<DIV1>hello world</DIV1>"


def test_rate_limit_is_retried_with_exponential_backoff() -> None:
    calls = {"n": 0}
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(429)
        return httpx.Response(200, text="<a>ok</a>")

    xml = asyncio.run(_client(handler, sleeps).fetch_title_content(1, date(2024, 5, 17)))
    assert xml == "<a>ok</a>"
    assert calls["n"] == 3
    assert sleeps == [1.0, 2.0]


def test_rate_limit_gives_up_after_max_attempts() -> None:
    calls = {"n": 0}
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(429, headers={"Retry-After": "5"})

    with pytest.raises(RateLimited) as info:
        asyncio.run(_client(handler, sleeps).fetch_title_content(1, date(2024, 5, 17)))
    assert info.value.retry_after == 5.0
    assert calls["n"] == 3
    assert sleeps == [5.0, 5.0]


def test_other_http_errors_are_not_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(500)

    with pytest.raises(UpstreamUnavailable) as info:
        asyncio.run(_client(handler).fetch_title_content(1, date(2024, 5, 17)))
    assert info.value.status_code == 500
    assert calls["n"] == 1


def test_transport_errors_become_upstream_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(_client(handler).list_titles())


def test_malformed_titles_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(_client(handler).list_titles())


def test_backoff_delay_doubles() -> None:
    assert [backoff_delay(n, 0.5) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]
    assert backoff_delay(1, 0.5, retry_after=3.0) == 3.0
