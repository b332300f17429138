"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from typing import Dict, Iterable

from flask import Flask
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[import-not-found]
    OTLPSpanExporter,
)
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

DEFAULT_EXCLUDED_URLS = r"/health[\w/]*|/metrics"

_provider: TracerProvider | None = None
_requests_instrumented = False
_configured_exporters: set[tuple] = set()


def _parse_headers(raw: str | Iterable[str] | None) -> Dict[str, str]:
    """Parse ``key=value`` pairs from a comma separated string or an iterable."""

    if raw is None:
        return {}
    items = raw.split(",") if isinstance(raw, str) else raw
    headers: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def _sample_ratio(app: Flask) -> float:
    try:
        ratio = float(app.config.get("OTEL_TRACES_SAMPLE_RATIO", 1.0))
    except (TypeError, ValueError):
        return 1.0
    return min(max(ratio, 0.0), 1.0)


def _build_exporter(app: Flask) -> SpanExporter | None:
    """Return the exporter selected by ``OTEL_EXPORTER``, or None when disabled."""

    if exporter := app.config.get("OTEL_SPAN_EXPORTER"):
        return exporter

    exporter_name = str(app.config.get("OTEL_EXPORTER") or "none").lower()
    if exporter_name in {"none", "off"}:
        return None
    if exporter_name == "console":
        return ConsoleSpanExporter()

    endpoint = app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        # OTLP requested without a collector: keep spans visible locally.
        return ConsoleSpanExporter()
    headers = _parse_headers(app.config.get("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def _resolve_provider(app: Flask) -> TracerProvider:
    global _provider

    if _provider is not None:
        return _provider

    existing = trace.get_tracer_provider()
    if isinstance(existing, TracerProvider):
        _provider = existing
        return existing

    service_name = app.config.get("OTEL_SERVICE_NAME") or "apix-gateway"
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.namespace": "apix"}),
        sampler=ParentBased(TraceIdRatioBased(_sample_ratio(app))),
    )
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def _attach_exporter(app: Flask, provider: TracerProvider, exporter: SpanExporter) -> None:
    # Injected exporters are always attached; configured ones once per process.
    injected = bool(app.config.get("OTEL_SPAN_EXPORTER"))
    signature = (exporter.__class__, getattr(exporter, "_endpoint", None))
    if not injected and signature in _configured_exporters:
        return

    use_simple = bool(app.config.get("OTEL_USE_SIMPLE_PROCESSOR")) or isinstance(
        exporter, ConsoleSpanExporter
    )
    processor_class = SimpleSpanProcessor if use_simple else BatchSpanProcessor
    provider.add_span_processor(processor_class(exporter))
    if not injected:
        _configured_exporters.add(signature)


def configure_tracing(app: Flask) -> TracerProvider:
    """Configure OpenTelemetry tracing for the Flask application.

    Spans cover the inbound request (Flask), the pipeline run and each stage,
    and every outbound extension call (requests). The tracer provider is
    process-wide, so repeated ``create_app`` calls share it.
    """

    global _requests_instrumented

    if app.extensions.get("tracing_configured"):
        return trace.get_tracer_provider()  # type: ignore[return-value]

    provider = _resolve_provider(app)
    exporter = _build_exporter(app)
    if exporter is not None:
        _attach_exporter(app, provider, exporter)

    if not _requests_instrumented:
        RequestsInstrumentor().instrument(raise_on_double_instrumentation=False)
        _requests_instrumented = True

    if not app.extensions.get("otel_flask_instrumented"):
        FlaskInstrumentor().instrument_app(
            app,
            excluded_urls=app.config.get("OTEL_EXCLUDED_URLS") or DEFAULT_EXCLUDED_URLS,
        )
        app.extensions["otel_flask_instrumented"] = True
    app.extensions["tracing_configured"] = True
    app.extensions["tracer_provider"] = provider
    return provider
