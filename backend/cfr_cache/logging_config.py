"""JSON structured logging for the API process and the background refresher."""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from cfr_cache.config import settings


def setup_logging(level: str | None = None) -> None:
    """Send JSON records to stdout; every line carries the service and env."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "logger",
            },
            static_fields={
                "service": settings.OTEL_SERVICE_NAME,
                "env": settings.APP_ENV,
            },
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level or settings.APP_LOG_LEVEL)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # httpx logs one INFO line per eCFR request; a refresh pass makes ~50.
    logging.getLogger("httpx").setLevel(settings.UPSTREAM_LOG_LEVEL)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.APP_ENV == "development" else logging.WARNING
    )
