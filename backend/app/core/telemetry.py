"""OpenTelemetry wiring for the snapshot service.

Traces, metrics and logs are exported over OTLP. The engine's coordinator
records its counters on the ``folio_engine`` meter, which resolves through
the global meter provider installed here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.metrics import Meter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import AppSettings

logger = logging.getLogger(__name__)

ENGINE_METER_NAME = "folio_engine"
_METRIC_EXPORT_INTERVAL_MS = 10000
_installed_meter_provider: Optional[MeterProvider] = None


def service_resource(settings: AppSettings) -> Resource:
    return Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "folio",
        }
    )


def build_meter_provider(settings: AppSettings, *readers: MetricReader) -> MeterProvider:
    """Return a meter provider for the service resource.

    Without explicit readers the provider exports periodically over OTLP.
    """

    if not readers:
        exporter = OTLPMetricExporter(**_exporter_options(settings))
        readers = (PeriodicExportingMetricReader(exporter, export_interval_millis=_METRIC_EXPORT_INTERVAL_MS),)
    return MeterProvider(resource=service_resource(settings), metric_readers=list(readers))


def engine_meter(provider: Optional[MeterProvider] = None) -> Meter:
    """Meter the coordinator records movements, runs and unbalanced operations on."""

    if provider is not None:
        return provider.get_meter(ENGINE_METER_NAME)
    return metrics.get_meter(ENGINE_METER_NAME)


def setup_telemetry(app: FastAPI, settings: AppSettings, engine: AsyncEngine | None = None) -> Optional[MeterProvider]:
    """Install OTLP providers once and instrument FastAPI and SQLAlchemy.

    Returns the installed meter provider, or ``None`` when telemetry is off.
    """

    global _installed_meter_provider  # noqa: PLW0603 - single initialisation guard

    if _installed_meter_provider is not None:
        return _installed_meter_provider
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return None

    resource = service_resource(settings)
    options = _exporter_options(settings)

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**options)))
    trace.set_tracer_provider(tracer_provider)

    meter_provider = build_meter_provider(settings)
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**options)))
    set_logger_provider(logger_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider, meter_provider=meter_provider)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=tracer_provider)

    _installed_meter_provider = meter_provider
    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")
    return meter_provider


def _exporter_options(settings: AppSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        options["endpoint"] = settings.telemetry_otlp_endpoint
    return options


__all__ = ["setup_telemetry", "build_meter_provider", "engine_meter", "service_resource", "ENGINE_METER_NAME"]
