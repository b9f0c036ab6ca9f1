import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.core.config import settings
from app.core.db import engine


log = logging.getLogger(__name__)

# health probes would drown the useful spans
EXCLUDED_URLS = "v1/health"


def get_tracer(name: str) -> trace.Tracer:
    # no-op tracer until setup_telemetry installs a provider
    return trace.get_tracer(name)


def build_tracer_provider() -> TracerProvider:
    resource = Resource.create({"service.name": settings.service_name, "deployment.environment": settings.env})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint.rstrip("/") + "/v1/traces")
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def setup_telemetry(app: FastAPI) -> None:
    if not settings.otlp_enabled:
        log.info("tracing disabled (OTLP_ENABLED=false)")
        return

    trace.set_tracer_provider(build_tracer_provider())
    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    log.info("exporting traces to %s", settings.otlp_endpoint)
