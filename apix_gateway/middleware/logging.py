"""Request logging middleware for the gateway."""

import json
import logging
import time
import uuid
from typing import Any, Dict

from flask import Flask, Response, g, has_request_context, request
from opentelemetry import trace

REQUEST_ID_HEADER = "X-Request-ID"


def _serialise_log(record: Dict[str, Any]) -> str:
    """Serialise a dictionary as a JSON string for structured logging."""

    return json.dumps(record, sort_keys=True, separators=(",", ":"))


def request_id_headers() -> Dict[str, str]:
    """Headers propagating the current request id to extension services."""

    if not has_request_context():
        return {}
    request_id = getattr(g, "request_id", None)
    return {REQUEST_ID_HEADER: request_id} if request_id else {}


def setup_request_logging(app: Flask) -> None:
    """Attach request id and access-log hooks to the provided Flask application."""

    logger = logging.getLogger(app.logger.name)

    @app.before_request
    def _start_timer() -> None:
        g.request_started_at = time.perf_counter()
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            g.client_ip = forwarded_for.split(",")[0].strip()
        else:
            g.client_ip = request.remote_addr or ""

    @app.after_request
    def _log_request(response: Response) -> Response:
        start = getattr(g, "request_started_at", None)
        duration_ms = (time.perf_counter() - start) * 1000 if start is not None else None
        endpoint = getattr(request.url_rule, "rule", request.path)

        log_record: Dict[str, Any] = {
            "method": request.method,
            "path": request.full_path.rstrip("?") or request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 3) if duration_ms is not None else None,
            "ip": getattr(g, "client_ip", request.remote_addr),
            "request_id": getattr(g, "request_id", None),
            "route": endpoint,
            "user_agent": request.headers.get("User-Agent"),
        }

        pipeline_route = getattr(g, "pipeline_route", None)
        if pipeline_route:
            log_record["pipeline_route"] = pipeline_route

        context = trace.get_current_span().get_span_context()
        if context and context.trace_id:
            log_record["trace_id"] = format(context.trace_id, "032x")
        if context and context.span_id:
            log_record["span_id"] = format(context.span_id, "016x")

        logger.info(_serialise_log(log_record))

        metrics = app.extensions.get("metrics")
        if metrics:
            metrics.observe_http_request(
                method=request.method,
                endpoint=endpoint,
                status=response.status_code,
                duration_seconds=(duration_ms / 1000.0) if duration_ms is not None else None,
            )

        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers.setdefault(REQUEST_ID_HEADER, request_id)

        return response
