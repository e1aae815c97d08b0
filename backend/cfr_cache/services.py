"""Wiring of store, query engine, eCFR client, history builder and refresher."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cfr_cache.cache_query import CacheQueryEngine
from cfr_cache.ecfr_client import EcfrClient
from cfr_cache.history import HistoryBuilder
from cfr_cache.refresher import BackgroundRefresher
from cfr_cache.snapshot_store import SnapshotStore


@dataclass(slots=True)
class CacheServices:
    store: SnapshotStore
    query: CacheQueryEngine
    client: EcfrClient
    history: HistoryBuilder
    refresher: BackgroundRefresher

    async def aclose(self) -> None:
        await self.refresher.stop()
        await self.client.aclose()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    client: EcfrClient | None = None,
) -> CacheServices:
    client = client or EcfrClient()
    store = SnapshotStore(session_factory)
    query = CacheQueryEngine(session_factory)
    return CacheServices(
        store=store,
        query=query,
        client=client,
        history=HistoryBuilder(store, query, client, client, client),
        refresher=BackgroundRefresher(store, client, client),
    )
