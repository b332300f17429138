"""Demo extension services hosted alongside the core endpoint."""

from __future__ import annotations

import json
from typing import Any, Mapping

from flask import Blueprint, Response, current_app, jsonify, request

from ..services.storage import FileStore
from ..services.validation import PropertyRule, validate_properties
from ..utils.responses import error_response

extensions_bp = Blueprint("extension_services", __name__)


def _read_properties() -> Mapping[str, Any] | None:
    document = request.get_json(silent=True)
    if document is None:
        raw = request.form.get("properties")
        if raw is None:
            return None
        try:
            return _as_properties(json.loads(raw))
        except json.JSONDecodeError:
            return None
    if isinstance(document, Mapping) and "properties" in document:
        return _as_properties(document["properties"])
    return _as_properties(document)


def _as_properties(value: Any) -> Mapping[str, Any] | None:
    return value if isinstance(value, Mapping) else None


@extensions_bp.route("/validation", methods=["POST"])
def validation_service():
    """Validate submitted properties.

    Answers 204 with an empty body when every rule passes, so the pipeline
    keeps the current payload, and 412 with the list of failures otherwise.
    """

    properties = _read_properties()
    if properties is None:
        return error_response(400, "Expected a JSON object of properties")

    rules: Mapping[str, PropertyRule] = current_app.extensions.get("validation_rules", {})
    result = validate_properties(properties, rules)
    if result.passed:
        current_app.logger.debug("Validation passed for %d properties", len(properties))
        return Response(status=204)

    current_app.logger.info(
        "Validation failed",
        extra={"failures": [failure.as_dict() for failure in result.failures]},
    )
    response = jsonify({"failures": [failure.as_dict() for failure in result.failures]})
    response.status_code = 412
    return response


@extensions_bp.route("/storage", methods=["POST"])
def storage_service():
    """Persist the raw request body and acknowledge with 201."""

    store: FileStore = current_app.extensions["file_store"]
    try:
        store.append(request.get_data())
    except OSError as exc:
        current_app.logger.error("Storage write to %s failed: %s", store.path, exc)
        return Response("Storage write failed.", status=500, mimetype="text/plain")
    return Response("Stored.", status=201, mimetype="text/plain")
