"""Helpers for building gateway responses."""

from typing import Any, Dict, Optional

from flask import Response, jsonify


def error_response(status_code: int, message: str, details: Optional[Dict[str, Any]] = None):
    """Return a JSON error envelope with the provided status code and message."""

    payload: Dict[str, Any] = {"error": {"code": status_code, "message": message}}
    if details:
        payload["error"]["details"] = details
    response = jsonify(payload)
    response.status_code = status_code
    return response


def payload_response(body: Optional[bytes], status_code: int, content_type: Optional[str] = None) -> Response:
    """Return the pipeline payload as-is, preserving its content type."""

    response = Response(body or b"", status=status_code)
    if content_type:
        response.headers["Content-Type"] = content_type
    elif not body:
        response.headers.pop("Content-Type", None)
    return response
