"""Agency listing and per-agency title word counts."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from cfr_cache.agencies import resolve_agency
from cfr_cache.api.deps import get_services, http_error_for
from cfr_cache.errors import CacheError
from cfr_cache.schemas.cache import AgencyTitles
from cfr_cache.schemas.ecfr import AgenciesResponse, Agency
from cfr_cache.services import CacheServices

router = APIRouter(prefix="/api/agencies", tags=["agencies"])


@router.get("", response_model=AgenciesResponse)
async def list_agencies(services: CacheServices = Depends(get_services)) -> AgenciesResponse:
    try:
        return AgenciesResponse(agencies=await services.client.list_agencies())
    except CacheError as exc:
        raise http_error_for(exc) from exc


@router.get("/{slug}", response_model=Agency)
async def get_agency(slug: str, services: CacheServices = Depends(get_services)) -> Agency:
    try:
        return await resolve_agency(services.client, slug)
    except CacheError as exc:
        raise http_error_for(exc) from exc


@router.get("/{slug}/titles", response_model=AgencyTitles)
async def get_agency_titles(
    slug: str, services: CacheServices = Depends(get_services)
) -> AgencyTitles:
    try:
        return await services.history.agency_titles(slug)
    except CacheError as exc:
        raise http_error_for(exc) from exc
