"""Prometheus metrics helpers."""

from __future__ import annotations
from flask import Flask, Response
from prometheus_client import (  # type: ignore[import-not-found]
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class MetricsRegistry:
    """Collectors for inbound requests, extension calls and pipeline outcomes."""

    def __init__(self) -> None:
        self.registry = CollectorRegistry()
        self.http_requests_total = Counter(
            "apix_http_requests_total",
            "Total number of HTTP requests processed by the gateway.",
            ("method", "endpoint", "status"),
            registry=self.registry,
        )
        self.http_request_latency = Histogram(
            "apix_http_request_duration_seconds",
            "Latency of HTTP requests processed by the gateway.",
            ("method", "endpoint"),
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.extension_latency = Histogram(
            "apix_extension_request_duration_seconds",
            "Latency of extension service calls.",
            ("extension", "status"),
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.extension_failures = Counter(
            "apix_extension_failures_total",
            "Number of extension calls that failed at the transport level.",
            ("extension", "reason"),
            registry=self.registry,
        )
        self.pipeline_outcomes = Counter(
            "apix_pipeline_outcomes_total",
            "Pipeline runs by route and result.",
            ("route", "result"),
            registry=self.registry,
        )

    def observe_http_request(
        self,
        *,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float | None,
    ) -> None:
        self.http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()
        if duration_seconds is not None:
            self.http_request_latency.labels(method=method, endpoint=endpoint).observe(
                max(duration_seconds, 0.0)
            )

    def observe_extension_latency(
        self,
        *,
        extension: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        self.extension_latency.labels(extension=extension, status=str(status)).observe(
            max(duration_seconds, 0.0)
        )

    def record_extension_failure(self, *, extension: str, reason: str) -> None:
        self.extension_failures.labels(extension=extension, reason=reason).inc()

    def record_pipeline_outcome(self, *, route: str, result: str) -> None:
        self.pipeline_outcomes.labels(route=route, result=result).inc()


def configure_metrics(app: Flask) -> MetricsRegistry:
    """Initialise Prometheus metrics and expose the `/metrics` endpoint."""

    if "metrics" in app.extensions:
        return app.extensions["metrics"]

    metrics = MetricsRegistry()
    app.extensions["metrics"] = metrics

    @app.route("/metrics")
    def metrics_endpoint() -> Response:
        return Response(generate_latest(metrics.registry), mimetype=CONTENT_TYPE_LATEST)

    return metrics
