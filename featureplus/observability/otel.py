"""OpenTelemetry + Prometheus fallback wiring for the FeaturePlus data layer."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from featureplus import config

logger = logging.getLogger("featureplus.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None

_mutation_counter: Any | None = None
_mutation_latency_hist: Any | None = None
_rollback_counter: Any | None = None

_prom_enabled = False
_prom_mutation_counter: Any | None = None
_prom_mutation_latency_hist: Any | None = None
_prom_rollback_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _labels(**values: str) -> dict[str, str]:
    return {key: (value or "").strip() or "unknown" for key, value in values.items()}


def is_enabled() -> bool:
    return _enabled or _prom_enabled


def initialize() -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider
    global _mutation_counter, _mutation_latency_hist, _rollback_counter

    if _initialized:
        return
    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (FEATUREPLUS_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "featureplus-client"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "featureplus",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("featureplus.sync")

    _mutation_counter = meter.create_counter(
        "featureplus_mutations_total",
        unit="1",
        description="Settled mutations by entity type, kind and outcome",
    )
    _mutation_latency_hist = meter.create_histogram(
        "featureplus_mutation_latency_ms",
        unit="ms",
        description="Time from optimistic apply to commit or rollback",
    )
    _rollback_counter = meter.create_counter(
        "featureplus_rollbacks_total",
        unit="1",
        description="Rolled-back mutations by failure kind",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("featureplus.sync")
    _enabled = True

    if config.PROM_PORT > 0:
        _start_prometheus(config.PROM_PORT)

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def _start_prometheus(port: int) -> None:
    global _prom_enabled, _prom_mutation_counter, _prom_mutation_latency_hist, _prom_rollback_counter
    try:
        from prometheus_client import Counter, Histogram, start_http_server

        start_http_server(port)
        _prom_mutation_counter = Counter(
            "featureplus_mutations_total",
            "Settled mutations by entity type, kind and outcome",
            ["entity", "kind", "result"],
        )
        _prom_mutation_latency_hist = Histogram(
            "featureplus_mutation_latency_ms",
            "Time from optimistic apply to commit or rollback",
            ["entity", "kind"],
        )
        _prom_rollback_counter = Counter(
            "featureplus_rollbacks_total",
            "Rolled-back mutations by failure kind",
            ["entity", "reason"],
        )
        _prom_enabled = True
        logger.info("Prometheus fallback metrics server listening on port %s", port)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Prometheus fallback not started: %s", exc)
        _prom_enabled = False


def shutdown() -> None:
    global _enabled, _initialized
    if not _initialized:
        return
    for provider in (_meter_provider, _trace_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Telemetry provider shutdown failed: %s", exc)
    _enabled = False
    _initialized = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_mutation(entity: str, kind: str, result: str, duration_ms: float) -> None:
    labels = _labels(entity=entity, kind=kind, result=result)
    if _enabled and _mutation_counter is not None:
        _mutation_counter.add(1, labels)
    if _enabled and _mutation_latency_hist is not None:
        _mutation_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_mutation_counter is not None:
        _prom_mutation_counter.labels(**labels).inc()
    if _prom_enabled and _prom_mutation_latency_hist is not None:
        _prom_mutation_latency_hist.labels(**_labels(entity=entity, kind=kind)).observe(max(0.0, float(duration_ms)))


def record_rollback(entity: str, reason: str) -> None:
    labels = _labels(entity=entity, reason=reason)
    if _enabled and _rollback_counter is not None:
        _rollback_counter.add(1, labels)
    if _prom_enabled and _prom_rollback_counter is not None:
        _prom_rollback_counter.labels(**labels).inc()
