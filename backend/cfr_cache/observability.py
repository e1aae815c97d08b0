"""OpenTelemetry bootstrap and the tracer for refresh passes."""
from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from cfr_cache.config import settings

logger = logging.getLogger(__name__)

TRACER_NAME = "cfr_cache"


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


def setup_opentelemetry(app=None) -> bool:
    """Install the global tracer provider and instrument FastAPI and httpx.

    Returns False when tracing is switched off or a provider was already
    installed by another bootstrap.
    """
    if not settings.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled by OTEL_ENABLED")
        return False

    if not isinstance(trace.get_tracer_provider(), trace.ProxyTracerProvider):
        return False

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.OTEL_SERVICE_NAME,
                "deployment.environment": settings.APP_ENV,
            }
        )
    )
    if settings.OTEL_CONSOLE_EXPORT:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    try:
        if app is not None:
            from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

            FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")

        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()
    except Exception as exc:
        logger.warning("OpenTelemetry instrumentation unavailable: %s", exc)
    return True
