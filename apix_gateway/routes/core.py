"""Core endpoint running inbound requests through the extension pipeline."""

from __future__ import annotations

from flask import Blueprint, Response, current_app, g, request
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..pipeline import (
    ConfigError,
    DeadlineExceeded,
    NoRouteMatched,
    Orchestrator,
    PipelineRequest,
    ServiceUnavailable,
    UploadedFile,
)
from ..utils.responses import error_response, payload_response

CORE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

tracer = trace.get_tracer(__name__)


def parse_pipeline_request() -> PipelineRequest:
    """Build a :class:`PipelineRequest` from the active Flask request."""

    # The raw body must be cached before ``request.files`` parses the stream.
    payload = request.get_data(cache=True) or None
    files = tuple(
        UploadedFile(
            field=field_name,
            filename=storage.filename or "",
            content_type=storage.mimetype or None,
            size=storage.content_length or None,
        )
        for field_name, storage in request.files.items(multi=True)
    )
    uri = request.full_path.rstrip("?") or request.path
    return PipelineRequest(
        method=request.method,
        uri=uri,
        headers={key: value for key, value in request.headers.items()},
        payload=payload,
        files=files,
        content_type=request.headers.get("Content-Type"),
    )


def _run_pipeline() -> Response:
    orchestrator: Orchestrator = current_app.extensions["orchestrator"]
    metrics = current_app.extensions.get("metrics")
    pipeline_request = parse_pipeline_request()

    with tracer.start_as_current_span(
        "core.handle",
        attributes={"http.method": pipeline_request.method, "http.target": pipeline_request.uri},
    ) as span:
        try:
            outcome = orchestrator.handle(pipeline_request)
        except NoRouteMatched as exc:
            span.record_exception(exc)
            span.set_status(Status(status_code=StatusCode.ERROR, description="no_route"))
            current_app.logger.warning("No route matched: %s", exc)
            _record(metrics, route="none", result="no_route")
            return error_response(404, "No route matched the request")
        except ConfigError as exc:
            span.record_exception(exc)
            span.set_status(Status(status_code=StatusCode.ERROR, description="config_error"))
            current_app.logger.error("Pipeline configuration error: %s", exc)
            _record(metrics, route="unknown", result="config_error")
            return error_response(500, "Pipeline configuration error")
        except DeadlineExceeded as exc:
            span.record_exception(exc)
            span.set_status(Status(status_code=StatusCode.ERROR, description="deadline_exceeded"))
            current_app.logger.warning("Pipeline deadline exceeded: %s", exc)
            _record(metrics, route="unknown", result="deadline_exceeded")
            return error_response(504, "Gateway Timeout")
        except ServiceUnavailable as exc:
            span.record_exception(exc)
            span.set_status(Status(status_code=StatusCode.ERROR, description="service_unavailable"))
            current_app.logger.warning(
                "Extension service unavailable",
                extra={"extension": exc.extension, "extension_uri": exc.uri},
            )
            _record(metrics, route="unknown", result="service_unavailable")
            return error_response(503, "Service Unavailable")

        g.pipeline_route = outcome.route
        span.set_attribute("pipeline.route", outcome.route or "")
        span.set_attribute("pipeline.phase", outcome.phase.value)
        span.set_attribute("http.status_code", outcome.status_code)
        _record(metrics, route=outcome.route or "unknown", result=outcome.phase.value)

        if outcome.errored:
            current_app.logger.info(
                "Request rejected by extension pipeline",
                extra={"route": outcome.route, "extension": outcome.terminated_by},
            )
            return error_response(outcome.status_code, outcome.diagnostic or "Bad Request")

        return payload_response(outcome.payload, outcome.status_code, outcome.content_type)


def _record(metrics, *, route: str, result: str) -> None:
    if metrics:
        metrics.record_pipeline_outcome(route=route, result=result)


def create_core_blueprint(path: str = "/core") -> Blueprint:
    """Return a blueprint exposing the pipeline at ``path`` and below it."""

    blueprint = Blueprint("core", __name__)
    base = "/" + path.strip("/") if path.strip("/") else ""

    blueprint.add_url_rule(
        base or "/",
        endpoint="core",
        view_func=_run_pipeline,
        methods=CORE_METHODS,
    )
    blueprint.add_url_rule(
        f"{base}/<path:subpath>",
        endpoint="core_subpath",
        view_func=lambda subpath: _run_pipeline(),
        methods=CORE_METHODS,
    )
    return blueprint
