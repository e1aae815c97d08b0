"""Cache status and manual refresh."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from cfr_cache.api.deps import get_services, http_error_for
from cfr_cache.errors import CacheError
from cfr_cache.schemas.cache import RefreshStatus
from cfr_cache.services import CacheServices

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/cache/status", response_model=RefreshStatus)
async def get_cache_status(services: CacheServices = Depends(get_services)) -> RefreshStatus:
    try:
        return await services.refresher.refresh_status()
    except CacheError as exc:
        raise http_error_for(exc) from exc


@router.post("/cache/refresh")
async def trigger_cache_refresh(services: CacheServices = Depends(get_services)) -> dict[str, str]:
    refresher = services.refresher
    if not refresher.is_running:
        raise HTTPException(status_code=503, detail="Cache refresher is not running")
    accepted = refresher.trigger_refresh()
    return {"status": "started" if accepted else "already_running"}
