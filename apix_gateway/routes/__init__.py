"""Route registration helpers for the gateway."""

from __future__ import annotations

from flask import Flask

from .core import create_core_blueprint, parse_pipeline_request
from .extensions import extensions_bp

__all__ = ["parse_pipeline_request", "register_blueprints"]


def register_blueprints(app: Flask) -> None:
    """Register the core endpoint and, when enabled, the demo extension services."""

    if app.config.get("EXTENSION_SERVICES_ENABLED", True):
        app.register_blueprint(extensions_bp)
    app.register_blueprint(create_core_blueprint(app.config.get("CORE_ROUTE_PATH", "/core")))
