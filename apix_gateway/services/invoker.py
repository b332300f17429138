"""HTTP invocation of extension services."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Mapping

import requests
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from requests.adapters import HTTPAdapter

from ..pipeline.errors import ServiceUnavailable
from ..pipeline.models import StageResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_BODYLESS_METHODS = {"GET", "HEAD"}


class ServiceInvoker(ABC):
    """Interface for the single network call made per pipeline stage."""

    @abstractmethod
    def invoke(
        self,
        uri: str,
        method: str,
        payload: bytes | None,
        *,
        content_type: str | None = None,
        timeout: float | None = None,
        extension: str | None = None,
    ) -> StageResult:
        """Call the service once and return its status, body and content type."""


class HttpServiceInvoker(ServiceInvoker):
    """Invoke extension services over HTTP using a pooled session.

    Calls are never retried. Any transport failure (connection refused,
    timeout, invalid URL) is raised as :class:`ServiceUnavailable`; a response
    with an error status is a normal result.
    """

    def __init__(
        self,
        session: requests.Session,
        *,
        timeout: tuple[float, float] = (2.0, 10.0),
        metrics=None,
        headers_provider=None,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self.metrics = metrics
        self._headers_provider = headers_provider

    def invoke(
        self,
        uri: str,
        method: str,
        payload: bytes | None,
        *,
        content_type: str | None = None,
        timeout: float | None = None,
        extension: str | None = None,
    ) -> StageResult:
        method = method.upper()
        label = extension or uri
        headers: dict[str, str] = dict(self._extra_headers())
        data = None
        if method not in _BODYLESS_METHODS:
            data = payload
            if content_type:
                headers["Content-Type"] = content_type

        connect_timeout, read_timeout = self.timeout
        if timeout is not None:
            connect_timeout = min(connect_timeout, timeout)
            read_timeout = min(read_timeout, timeout)

        attributes = {"http.method": method, "upstream.url": uri, "extension.name": extension}
        attributes = {k: v for k, v in attributes.items() if v is not None}
        with tracer.start_as_current_span("extension.invoke", attributes=attributes) as span:
            start = time.perf_counter()
            try:
                response = self.session.request(
                    method=method,
                    url=uri,
                    headers=headers,
                    data=data,
                    timeout=(connect_timeout, read_timeout),
                )
            except requests.RequestException as exc:
                duration = time.perf_counter() - start
                span.record_exception(exc)
                span.set_status(Status(status_code=StatusCode.ERROR, description=str(exc)))
                if self.metrics:
                    self.metrics.record_extension_failure(
                        extension=label, reason=exc.__class__.__name__
                    )
                    self.metrics.observe_extension_latency(
                        extension=label, status=599, duration_seconds=duration
                    )
                logger.warning("Extension %s unreachable at %s: %s", label, uri, exc)
                raise ServiceUnavailable(
                    f"Extension service {label} unavailable", extension=extension, uri=uri
                ) from exc

            duration = time.perf_counter() - start
            body = response.content or None
            span.set_attribute("http.status_code", response.status_code)
            span.set_attribute("http.response_content_length", len(body or b""))
            span.set_attribute("http.response_time_ms", duration * 1000.0)
            if self.metrics:
                self.metrics.observe_extension_latency(
                    extension=label,
                    status=response.status_code,
                    duration_seconds=duration,
                )
            return StageResult(
                body=body,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
            )

    def _extra_headers(self) -> Mapping[str, str]:
        if self._headers_provider is None:
            return {}
        return self._headers_provider() or {}


def create_http_session(
    *,
    pool_connections: int = 10,
    pool_maxsize: int = 10,
    pool_block: bool = True,
    keepalive: bool = True,
) -> requests.Session:
    """Return a pooled session for extension calls."""

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=pool_connections,
        pool_maxsize=pool_maxsize,
        pool_block=pool_block,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    if keepalive:
        session.headers.setdefault("Connection", "keep-alive")
    return session
