"""APIX gateway application factory."""
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .middleware.logging import request_id_headers, setup_request_logging
from .observability import (
    configure_metrics,
    configure_structured_logging,
    configure_tracing,
)
from .pipeline import (
    Orchestrator,
    PipelineConfig,
    PipelineExecutor,
    load_pipeline_config,
)
from .services.invoker import HttpServiceInvoker, create_http_session
from .services.storage import FileStore
from .services.validation import load_validation_rules
from .utils.config import (
    EnvironmentSettings,
    load_environment_settings,
    log_configuration_snapshot,
    split_list,
)
from .utils.lifecycle import install_shutdown_handlers, register_shutdown_task
from .utils.responses import error_response

HealthResult = Tuple[str, Dict[str, Any], int]

DEFAULT_PIPELINE_CONFIG = Path("config") / "extensions.yaml"
DEFAULT_VALIDATION_RULES = Path("config") / "validation.yaml"


def _load_settings_into_config(app: Flask, settings: EnvironmentSettings) -> None:
    get = settings.get
    app.config["APP_ENV"] = settings.name
    app.config["CONFIG_ENV_FILES"] = settings.loaded_files
    app.config["APIX_CONFIG"] = get("APIX_CONFIG")
    app.config["APIX_CONFIG_PATH"] = get("APIX_CONFIG_PATH")
    app.config["CORE_ROUTE_PATH"] = get("CORE_ROUTE_PATH", "/core")
    # Per-stage connect/read timeouts and the overall pipeline budget, in seconds.
    app.config["EXTENSION_TIMEOUT_CONNECT"] = settings.get_float("EXTENSION_TIMEOUT_CONNECT", 2.0)
    app.config["EXTENSION_TIMEOUT_READ"] = settings.get_float("EXTENSION_TIMEOUT_READ", 10.0)
    app.config["PIPELINE_DEADLINE_SECONDS"] = settings.get_float("PIPELINE_DEADLINE_SECONDS", 0.0)
    app.config["EMPTY_PIPELINE_STATUS"] = settings.get_int("EMPTY_PIPELINE_STATUS", 200)
    app.config["HTTP_POOL_CONNECTIONS"] = settings.get_int("HTTP_POOL_CONNECTIONS", 10)
    app.config["HTTP_POOL_MAXSIZE"] = settings.get_int("HTTP_POOL_MAXSIZE", 10)
    app.config["HTTP_POOL_BLOCK"] = settings.get_bool("HTTP_POOL_BLOCK", True)
    app.config["HTTP_SESSION_KEEPALIVE"] = settings.get_bool("HTTP_SESSION_KEEPALIVE", True)
    app.config["EXTENSION_SERVICES_ENABLED"] = settings.get_bool("EXTENSION_SERVICES_ENABLED", True)
    app.config["VALIDATION_RULES_PATH"] = get("VALIDATION_RULES_PATH")
    app.config["STORAGE_OUTPUT_PATH"] = get("STORAGE_OUTPUT_PATH")
    app.config["LOG_LEVEL_NAME"] = (get("LOG_LEVEL", "INFO") or "INFO").upper()
    app.config["LOG_AGGREGATORS"] = tuple(split_list(get("LOG_AGGREGATORS")))
    app.config["LOGGER_NAME"] = get("LOGGER_NAME", "apix.gateway")
    app.config["OTEL_EXPORTER"] = get("OTEL_EXPORTER", "none")
    app.config["OTEL_EXPORTER_OTLP_ENDPOINT"] = get("OTEL_EXPORTER_OTLP_ENDPOINT")
    app.config["OTEL_EXPORTER_OTLP_HEADERS"] = get("OTEL_EXPORTER_OTLP_HEADERS")
    app.config["OTEL_SERVICE_NAME"] = get("OTEL_SERVICE_NAME", "apix-gateway")
    app.config["OTEL_TRACES_SAMPLE_RATIO"] = settings.get_float("OTEL_TRACES_SAMPLE_RATIO", 1.0)
    app.config["OTEL_EXCLUDED_URLS"] = get("OTEL_EXCLUDED_URLS")
    app.config["APP_PORT"] = int(get("APP_PORT") or get("PORT") or "5000")


def _configure_logging(app: Flask) -> None:
    """Resolve ``LOG_LEVEL_NAME`` into a numeric level and install JSON logging."""

    level = getattr(logging, str(app.config.get("LOG_LEVEL_NAME", "INFO")), None)
    if not isinstance(level, int):
        level = logging.INFO
    app.config["LOG_LEVEL"] = level
    configure_structured_logging(app)


def _resolve_source(app: Flask, key: str, default: Path, project_root: Path) -> Any:
    source = app.config.get(key)
    if source:
        path = Path(source)
        return path if path.is_absolute() else project_root / path
    candidate = project_root / default
    return candidate if candidate.exists() else None


def _configure_pipeline(app: Flask, project_root: Path) -> None:
    """Load the route table and wire the orchestrator into ``app.extensions``."""

    source = app.config.get("APIX_CONFIG") or _resolve_source(
        app, "APIX_CONFIG_PATH", DEFAULT_PIPELINE_CONFIG, project_root
    )
    if source:
        config = load_pipeline_config(source, base_dir=project_root)
    else:
        app.logger.warning("No pipeline configuration found; every request will be rejected")
        config = PipelineConfig.empty()
    app.logger.info(
        "Pipeline configuration loaded",
        extra={
            "routes": [route.name for route in config.routes],
            "extensions": list(config.extensions.names()),
        },
    )

    session = create_http_session(
        pool_connections=app.config["HTTP_POOL_CONNECTIONS"],
        pool_maxsize=app.config["HTTP_POOL_MAXSIZE"],
        pool_block=app.config["HTTP_POOL_BLOCK"],
        keepalive=app.config["HTTP_SESSION_KEEPALIVE"],
    )
    register_shutdown_task(app, "http_session", session.close)

    invoker = HttpServiceInvoker(
        session,
        timeout=(app.config["EXTENSION_TIMEOUT_CONNECT"], app.config["EXTENSION_TIMEOUT_READ"]),
        metrics=app.extensions.get("metrics"),
        headers_provider=request_id_headers,
    )
    executor = PipelineExecutor(
        invoker,
        empty_status=app.config["EMPTY_PIPELINE_STATUS"],
        deadline=app.config["PIPELINE_DEADLINE_SECONDS"],
    )
    app.extensions["http_session"] = session
    app.extensions["pipeline_config"] = config
    app.extensions["service_invoker"] = invoker
    app.extensions["orchestrator"] = Orchestrator(config, executor)


def _configure_extension_services(app: Flask, project_root: Path) -> None:
    if not app.config["EXTENSION_SERVICES_ENABLED"]:
        return
    rules_source = _resolve_source(
        app, "VALIDATION_RULES_PATH", DEFAULT_VALIDATION_RULES, project_root
    )
    app.extensions["validation_rules"] = load_validation_rules(rules_source)
    app.extensions["file_store"] = FileStore(app.config.get("STORAGE_OUTPUT_PATH"))


def _check_gateway_health(app: Flask) -> HealthResult:
    return "up", {"environment": app.config.get("APP_ENV")}, 200


def _check_pipeline_health(app: Flask) -> HealthResult:
    config: PipelineConfig | None = app.extensions.get("pipeline_config")
    if config is None:
        return "down", {"message": "Pipeline not initialised"}, 503
    details = {"routes": len(config.routes), "extensions": len(config.extensions)}
    if not config.routes:
        return "degraded", {**details, "message": "No routes configured"}, 200
    return "up", details, 200


def _check_observability_health(app: Flask) -> HealthResult:
    missing = [name for name in ("metrics", "tracer_provider") if name not in app.extensions]
    if missing:
        return "degraded", {"missing": missing}, 200
    return "up", {"logger": app.logger.name}, 200


def _register_health_endpoints(app: Flask) -> None:
    checks: Dict[str, Callable[[Flask], HealthResult]] = {
        "gateway": _check_gateway_health,
        "pipeline": _check_pipeline_health,
        "observability": _check_observability_health,
    }

    @app.route("/health")
    def health():
        dependency_status: Dict[str, Dict[str, Any]] = {}
        overall = "ok"
        http_status = 200
        for name, check in checks.items():
            status, details, status_code = check(app)
            dependency_status[name] = {"status": status, "details": details}
            if status == "down":
                overall = "error"
            elif status != "up" and overall == "ok":
                overall = "degraded"
            if status_code >= 500:
                http_status = 503
        payload = {"service": "apix-gateway", "status": overall, "dependencies": dependency_status}
        return jsonify(payload), http_status

    @app.route("/health/<check>")
    def health_check(check: str):
        handler = checks.get(check)
        if handler is None:
            return error_response(404, "No such health check")
        status, details, http_status = handler(app)
        return jsonify({"check": check, "status": status, "details": details}), http_status


def create_app() -> Flask:
    """Create and configure the Flask application."""

    project_root = Path(__file__).resolve().parent.parent
    settings = load_environment_settings(project_root=project_root)
    app = Flask(__name__)
    _load_settings_into_config(app, settings)
    install_shutdown_handlers(app)

    _configure_logging(app)
    configure_metrics(app)
    setup_request_logging(app)

    log_configuration_snapshot(
        logger=app.logger,
        settings=settings,
        config=app.config,
        keys_of_interest=[
            "APP_ENV",
            "CONFIG_ENV_FILES",
            "APIX_CONFIG_PATH",
            "CORE_ROUTE_PATH",
            "EXTENSION_TIMEOUT_CONNECT",
            "EXTENSION_TIMEOUT_READ",
            "PIPELINE_DEADLINE_SECONDS",
            "EMPTY_PIPELINE_STATUS",
            "HTTP_POOL_CONNECTIONS",
            "HTTP_POOL_MAXSIZE",
            "EXTENSION_SERVICES_ENABLED",
            "APP_PORT",
        ],
    )

    _configure_pipeline(app, project_root)
    _configure_extension_services(app, project_root)

    from .routes import register_blueprints

    register_blueprints(app)
    _register_health_endpoints(app)
    configure_tracing(app)

    @app.errorhandler(HTTPException)
    def http_error_handler(error: HTTPException):
        """Return JSON envelopes for Werkzeug HTTP exceptions."""

        return error_response(error.code or 500, error.description or error.name or "Error")

    @app.errorhandler(Exception)
    def generic_error_handler(error: Exception):  # noqa: D401 - brief message sufficient
        """Return a JSON envelope for unexpected errors."""

        app.logger.exception("Unhandled exception", exc_info=error)
        return error_response(500, "Internal Server Error")

    return app


if __name__ == "__main__":
    application = create_app()
    application.run(host="0.0.0.0", port=int(application.config.get("APP_PORT", 5000)))
