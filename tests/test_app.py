import json
import logging
from urllib.parse import urlparse

import pytest
import requests

from apix_gateway.app import create_app
from apix_gateway.pipeline import TERMINATE_ERROR_MESSAGE

PIPELINE_CONFIG = {
    "routes": [
        {
            "name": "ingest",
            "condition": {"methods": ["POST", "PUT"]},
            "extensions": [
                "validation",
                {"name": "storage", "condition": {"has_payload": True}},
            ],
        },
        {"name": "reads", "condition": {"methods": ["GET"]}, "extensions": []},
    ],
    "extensions": {
        "validation": {
            "service": {"uri": "http://validation.test/check"},
            "response_routing": {"204": "forward", "412": "send_error"},
        },
        "storage": {
            "service": {"uri": "http://storage.test/", "method": "POST"},
            "response_routing": {"201": "forward"},
        },
    },
}


class _CapturingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _build_response(status: int, body: bytes = b"", content_type: str | None = None):
    response = requests.Response()
    response.status_code = status
    response._content = body
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


class FakeUpstreams:
    """Stand-in for ``Session.request`` answering per extension URL."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses[kwargs["url"]]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def urls(self):
        return [call["url"] for call in self.calls]


@pytest.fixture
def app(monkeypatch, tmp_path):
    monkeypatch.setenv("APIX_CONFIG", json.dumps(PIPELINE_CONFIG))
    monkeypatch.setenv("STORAGE_OUTPUT_PATH", str(tmp_path / "storage.out"))
    monkeypatch.setenv("LOG_AGGREGATORS", "")
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


def _install_upstreams(monkeypatch, app, responses):
    upstreams = FakeUpstreams(responses)
    monkeypatch.setattr(app.extensions["http_session"], "request", upstreams)
    return upstreams


def test_pipeline_forwards_through_every_stage(client, app, monkeypatch):
    upstreams = _install_upstreams(
        monkeypatch,
        app,
        {
            "http://validation.test/check": _build_response(204),
            "http://storage.test/": _build_response(201, b"Stored.", "text/plain"),
        },
    )

    response = client.post("/core", data=b'{"title": "x"}', content_type="application/json")

    assert response.status_code == 201
    assert response.data == b"Stored."
    assert response.mimetype == "text/plain"
    assert upstreams.urls == ["http://validation.test/check", "http://storage.test/"]
    assert upstreams.calls[1]["data"] == b'{"title": "x"}'
    assert upstreams.calls[1]["headers"]["Content-Type"] == "application/json"


def test_terminate_directive_returns_error_envelope(client, app, monkeypatch):
    upstreams = _install_upstreams(
        monkeypatch,
        app,
        {"http://validation.test/check": _build_response(412, b'{"failures": []}')},
    )

    response = client.post("/core/items", data=b"payload")

    assert response.status_code == 400
    assert response.json == {"error": {"code": 400, "message": TERMINATE_ERROR_MESSAGE}}
    assert upstreams.urls == ["http://validation.test/check"]


def test_unreachable_extension_returns_503(client, app, monkeypatch):
    _install_upstreams(
        monkeypatch,
        app,
        {"http://validation.test/check": requests.ConnectionError("refused")},
    )

    response = client.put("/core", data=b"payload")

    assert response.status_code == 503
    assert response.json["error"]["message"] == "Service Unavailable"


def test_unrouted_status_returns_500(client, app, monkeypatch):
    _install_upstreams(
        monkeypatch,
        app,
        {
            "http://validation.test/check": _build_response(204),
            "http://storage.test/": _build_response(500, b"disk full"),
        },
    )

    response = client.post("/core", data=b"payload")

    assert response.status_code == 500
    assert response.json["error"]["message"] == "Pipeline configuration error"


def test_no_matching_route_returns_404(client, app, monkeypatch):
    upstreams = _install_upstreams(monkeypatch, app, {})

    response = client.delete("/core/items/1")

    assert response.status_code == 404
    assert response.json["error"]["code"] == 404
    assert upstreams.calls == []


def test_empty_queue_echoes_request(client, app, monkeypatch):
    upstreams = _install_upstreams(monkeypatch, app, {})

    response = client.get("/core/anything?x=1")

    assert response.status_code == 200
    assert response.data == b""
    assert upstreams.calls == []


def test_local_condition_skips_storage_without_payload(client, app, monkeypatch):
    upstreams = _install_upstreams(
        monkeypatch,
        app,
        {"http://validation.test/check": _build_response(204)},
    )

    response = client.post("/core")

    assert response.status_code == 204
    assert upstreams.urls == ["http://validation.test/check"]


def test_request_id_propagates_to_extensions(client, app, monkeypatch):
    upstreams = _install_upstreams(
        monkeypatch,
        app,
        {
            "http://validation.test/check": _build_response(204),
            "http://storage.test/": _build_response(201),
        },
    )

    response = client.post("/core", data=b"x", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert all(call["headers"]["X-Request-ID"] == "req-123" for call in upstreams.calls)


def test_access_log_includes_pipeline_route(client, app, monkeypatch):
    _install_upstreams(monkeypatch, app, {})
    handler = _CapturingHandler()
    logger = logging.getLogger(app.logger.name)
    logger.addHandler(handler)
    try:
        response = client.get("/core/docs")
    finally:
        logger.removeHandler(handler)

    assert response.status_code == 200
    access_logs = [json.loads(r.getMessage()) for r in handler.records if r.getMessage().startswith("{")]
    entry = access_logs[-1]
    assert entry["method"] == "GET"
    assert entry["status"] == 200
    assert entry["pipeline_route"] == "reads"
    assert entry["request_id"] == response.headers["X-Request-ID"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json["service"] == "apix-gateway"
    assert response.json["dependencies"]["pipeline"]["details"] == {"routes": 2, "extensions": 2}


def test_health_unknown_check(client):
    response = client.get("/health/database")

    assert response.status_code == 404
    assert response.json["error"]["message"] == "No such health check"


def test_unknown_path_returns_json_envelope(client):
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.json["error"]["code"] == 404


def test_core_path_is_configurable(monkeypatch, tmp_path):
    monkeypatch.setenv("APIX_CONFIG", json.dumps(PIPELINE_CONFIG))
    monkeypatch.setenv("CORE_ROUTE_PATH", "/api/pipeline")
    monkeypatch.setenv("EXTENSION_SERVICES_ENABLED", "false")
    app = create_app()
    _install_upstreams(monkeypatch, app, {})

    client = app.test_client()

    assert client.get("/api/pipeline/x").status_code == 200
    assert client.get("/core").status_code == 404
    assert client.post("/validation", json={}).status_code == 404


def test_invalid_pipeline_configuration_fails_startup(monkeypatch):
    from apix_gateway.pipeline import ConfigError

    monkeypatch.setenv("APIX_CONFIG", json.dumps({"routes": [{"extensions": ["ghost"]}]}))

    with pytest.raises(ConfigError):
        create_app()


@pytest.fixture
def bundled_app(monkeypatch, tmp_path):
    monkeypatch.delenv("APIX_CONFIG", raising=False)
    monkeypatch.delenv("APIX_CONFIG_PATH", raising=False)
    monkeypatch.delenv("VALIDATION_RULES_PATH", raising=False)
    monkeypatch.setenv("STORAGE_OUTPUT_PATH", str(tmp_path / "storage.out"))
    monkeypatch.setenv("LOG_AGGREGATORS", "")
    app = create_app()
    app.config["TESTING"] = True

    # Extension calls to localhost are served by the same application.
    loopback = app.test_client()
    paths = []

    def serve_locally(**kwargs):
        path = urlparse(kwargs["url"]).path
        paths.append(path)
        served = loopback.open(
            path,
            method=kwargs["method"],
            data=kwargs["data"],
            headers=kwargs["headers"],
        )
        return _build_response(served.status_code, served.data, served.headers.get("Content-Type"))

    monkeypatch.setattr(app.extensions["http_session"], "request", serve_locally)
    app.extensions["served_paths"] = paths
    return app


def test_bundled_config_rejects_unreadable_body(bundled_app):
    response = bundled_app.test_client().post("/core", data=b"not json")

    assert response.status_code == 400
    assert response.json == {"error": {"code": 400, "message": TERMINATE_ERROR_MESSAGE}}
    assert bundled_app.extensions["served_paths"] == ["/validation"]


def test_bundled_config_validates_then_stores(bundled_app, tmp_path):
    document = {"properties": {"title": "Moby Dick", "creator": ["Melville"]}}

    response = bundled_app.test_client().post("/core", json=document)

    assert response.status_code == 201
    assert response.data == b"Stored."
    assert bundled_app.extensions["served_paths"] == ["/validation", "/storage"]
    assert '"Moby Dick"' in (tmp_path / "storage.out").read_text(encoding="utf-8")
