"""Prometheus metrics for the cache, the upstream client and the refresher."""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


UPSTREAM_REQUESTS_TOTAL = Counter(
    "cfr_upstream_requests_total",
    "eCFR API requests by endpoint and outcome",
    ["endpoint", "outcome"],
)

UPSTREAM_LATENCY_SECONDS = Histogram(
    "cfr_upstream_latency_seconds",
    "eCFR API latency by endpoint",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 40, 60, 120),
)

UPSTREAM_RETRIES_TOTAL = Counter(
    "cfr_upstream_retries_total",
    "Rate-limited eCFR requests that were retried",
    ["endpoint"],
)

SNAPSHOT_UPSERTS_TOTAL = Counter(
    "cfr_snapshot_upserts_total",
    "Snapshot upserts by outcome",
    ["outcome"],
)

CACHE_LOOKUPS_TOTAL = Counter(
    "cfr_cache_lookups_total",
    "Word-count lookups by mode and result",
    ["mode", "result"],
)

REFRESH_PASSES_TOTAL = Counter(
    "cfr_refresh_passes_total",
    "Background refresh passes by result",
    ["result"],
)

REFRESH_TITLES_TOTAL = Counter(
    "cfr_refresh_titles_total",
    "Titles visited by the background refresher, by outcome",
    ["outcome"],
)

REFRESH_STATE_GAUGE = Gauge(
    "cfr_refresh_in_progress",
    "1 while a refresh pass is running",
)
