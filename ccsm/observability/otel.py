"""OpenTelemetry tracing and metrics, with a Prometheus scrape endpoint alongside.

Everything here is optional. With ``otel_enabled`` off, or the OpenTelemetry
packages missing, the record helpers and ``start_span`` are no-ops.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI

from ccsm.config import Settings

logger = logging.getLogger("ccsm.observability")


@dataclass(frozen=True)
class MetricSpec:
    name: str
    kind: str  # "counter" or "histogram"
    description: str
    labels: tuple[str, ...]
    unit: str = "1"


INGESTION_EVENTS = MetricSpec(
    "ccsm_ingestion_events_total",
    "counter",
    "Count of transcript and project read operations",
    ("entity", "result", "project"),
)
INGESTION_LATENCY = MetricSpec(
    "ccsm_ingestion_latency_ms",
    "histogram",
    "Latency of transcript and project read operations",
    ("entity", "result", "project"),
    unit="ms",
)
PARSER_FAILURES = MetricSpec(
    "ccsm_parser_failures_total",
    "counter",
    "Count of transcript lines dropped as malformed",
    ("parser", "project"),
)
WATCH_EVENTS = MetricSpec(
    "ccsm_watch_events_total",
    "counter",
    "Change notifications broadcast to subscribers",
    ("type", "project"),
)

METRICS = (INGESTION_EVENTS, INGESTION_LATENCY, PARSER_FAILURES, WATCH_EVENTS)

_initialized = False
_tracer: Any | None = None
_providers: list[Any] = []
_instrumentor: Any | None = None

# Instrument name -> live instrument, filled only for enabled backends.
_otel_instruments: dict[str, Any] = {}
_prom_instruments: dict[str, Any] = {}


def _signal_endpoint(base_endpoint: str, signal_path: str) -> str | None:
    """``http://collector:4318`` -> ``http://collector:4318/v1/traces``."""
    endpoint = (base_endpoint or "").strip().rstrip("/")
    if not endpoint:
        return None
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/v1"):
        endpoint = endpoint[: -len("/v1")]
    return f"{endpoint}{signal_path}"


def _clean_labels(spec: MetricSpec, values: dict[str, Any]) -> dict[str, str]:
    return {key: (str(values.get(key) or "").strip() or "unknown") for key in spec.labels}


def _emit(spec: MetricSpec, value: float, **labels: Any) -> None:
    otel_instrument = _otel_instruments.get(spec.name)
    prom_instrument = _prom_instruments.get(spec.name)
    if otel_instrument is None and prom_instrument is None:
        return

    clean = _clean_labels(spec, labels)
    if otel_instrument is not None:
        if spec.kind == "counter":
            otel_instrument.add(value, clean)
        else:
            otel_instrument.record(value, clean)
    if prom_instrument is not None:
        child = prom_instrument.labels(**clean)
        if spec.kind == "counter":
            child.inc(value)
        else:
            child.observe(value)


def _start_prometheus(port: int) -> None:
    try:
        from prometheus_client import Counter, Histogram, start_http_server
    except ImportError as exc:
        logger.warning("Prometheus endpoint not started: %s", exc)
        return

    try:
        start_http_server(port)
    except OSError as exc:
        logger.warning("Prometheus endpoint not started on port %s: %s", port, exc)
        return

    factories = {"counter": Counter, "histogram": Histogram}
    for spec in METRICS:
        _prom_instruments[spec.name] = factories[spec.kind](spec.name, spec.description, list(spec.labels))
    logger.info("Prometheus metrics listening on port %s", port)


def initialize(app: FastAPI | None, settings: Settings) -> None:
    global _initialized, _tracer, _instrumentor

    if _initialized:
        if app is not None and _instrumentor is not None:
            _instrumentor.instrument_app(app)
        return
    _initialized = True

    if not settings.otel_enabled:
        logger.info("OpenTelemetry disabled (CCSM_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    resource = Resource.create({"service.name": settings.otel_service_name, "service.namespace": "ccsm"})

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=_signal_endpoint(settings.otel_endpoint, "/v1/traces")))
    )
    trace.set_tracer_provider(trace_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=_signal_endpoint(settings.otel_endpoint, "/v1/metrics"))
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)

    meter = metrics.get_meter("ccsm.backend")
    for spec in METRICS:
        create = meter.create_counter if spec.kind == "counter" else meter.create_histogram
        _otel_instruments[spec.name] = create(spec.name, unit=spec.unit, description=spec.description)

    _providers.extend([meter_provider, trace_provider])
    _tracer = trace.get_tracer("ccsm.backend")
    _instrumentor = FastAPIInstrumentor()
    if app is not None:
        _instrumentor.instrument_app(app)

    if settings.prom_port > 0:
        _start_prometheus(settings.prom_port)

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        settings.otel_service_name,
        settings.otel_endpoint,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _tracer
    if app is not None and _instrumentor is not None:
        try:
            _instrumentor.uninstrument_app(app)
        except Exception as exc:  # noqa: BLE001
            logger.debug("FastAPI uninstrument failed: %s", exc)
    while _providers:
        provider = _providers.pop()
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _otel_instruments.clear()
    _tracer = None


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def record_ingestion(entity: str, result: str, duration_ms: float, *, project_id: str) -> None:
    _emit(INGESTION_EVENTS, 1, entity=entity, result=result, project=project_id)
    _emit(INGESTION_LATENCY, max(0.0, float(duration_ms)), entity=entity, result=result, project=project_id)


def record_parser_failure(parser: str, *, project_id: str, count: int = 1) -> None:
    count = max(0, int(count))
    if count:
        _emit(PARSER_FAILURES, count, parser=parser, project=project_id)


def record_watch_event(event_type: str, *, project_id: str) -> None:
    _emit(WATCH_EVENTS, 1, type=event_type, project=project_id)
