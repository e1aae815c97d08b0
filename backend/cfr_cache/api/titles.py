"""Title listing, word-count lookups and agency history."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from fastapi import APIRouter, Depends, Path, Query

from cfr_cache.api.deps import get_services, http_error_for
from cfr_cache.config import settings
from cfr_cache.errors import CacheError
from cfr_cache.schemas.cache import AgencyWordCountHistory
from cfr_cache.schemas.ecfr import TitlesResponse
from cfr_cache.services import CacheServices

router = APIRouter(prefix="/api", tags=["word-counts"])


@router.get("/titles", response_model=TitlesResponse)
async def list_titles(services: CacheServices = Depends(get_services)) -> TitlesResponse:
    try:
        return TitlesResponse(titles=await services.client.list_titles())
    except CacheError as exc:
        raise http_error_for(exc) from exc


@router.get("/titles/{title_number}/word-count")
async def get_title_word_count(
    title_number: int = Path(ge=1),
    on: date = Query(alias="date"),
    exact: bool = True,
    services: CacheServices = Depends(get_services),
) -> dict[str, Any]:
    try:
        if exact:
            word_count = await services.query.get_word_count(title_number, on)
        else:
            word_count = await services.query.get_word_count_nearest_prior(title_number, on)
    except CacheError as exc:
        raise http_error_for(exc) from exc
    return {"title": title_number, "date": on, "exact": exact, "word_count": word_count}


@router.get("/titles/{title_number}/snapshots")
async def list_title_snapshots(
    title_number: int = Path(ge=1),
    services: CacheServices = Depends(get_services),
) -> dict[str, Any]:
    try:
        dates = await services.store.list_snapshot_dates(title_number)
    except CacheError as exc:
        raise http_error_for(exc) from exc
    return {"title": title_number, "dates": dates}


@router.get("/agencies/{slug}/word-count-history", response_model=AgencyWordCountHistory)
async def get_agency_word_count_history(
    slug: str,
    start_date: date | None = None,
    end_date: date | None = None,
    interval_days: int = Query(default=settings.HISTORY_INTERVAL_DAYS, ge=1),
    services: CacheServices = Depends(get_services),
) -> AgencyWordCountHistory:
    end_date = end_date or date.today()
    start_date = start_date or (end_date - timedelta(days=365))
    try:
        return await services.history.agency_history(slug, start_date, end_date, interval_days)
    except CacheError as exc:
        raise http_error_for(exc) from exc
