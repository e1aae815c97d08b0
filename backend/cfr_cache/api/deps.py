"""FastAPI dependencies and error mapping for the cache routers."""
from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from cfr_cache.errors import (
    AgencyNotFound,
    CacheError,
    InvalidRange,
    RateLimited,
    SnapshotNotFound,
    StorageFailure,
    UpstreamError,
)
from cfr_cache.services import CacheServices

logger = logging.getLogger(__name__)


def get_services(request: Request) -> CacheServices:
    return request.app.state.services


def http_error_for(exc: CacheError) -> HTTPException:
    if isinstance(exc, (SnapshotNotFound, AgencyNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidRange):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, RateLimited):
        return HTTPException(status_code=503, detail="eCFR rate limit exceeded, try again later")
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=502, detail="eCFR API unavailable")
    if isinstance(exc, StorageFailure):
        logger.error("Storage failure: %s", exc, exc_info=exc)
        return HTTPException(status_code=500, detail="Cache storage failure")
    return HTTPException(status_code=500, detail="Unexpected cache error")
