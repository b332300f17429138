"""Structured logging configuration for the gateway."""

from __future__ import annotations

import json
import logging
import socket
from datetime import datetime, timezone
from logging import Handler, Logger
from logging.handlers import DatagramHandler, HTTPHandler, SocketHandler
from typing import Iterable
from urllib.parse import urlparse

from flask import Flask


DEFAULT_LOGGER_NAME = "apix.gateway"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def __init__(self, *, component: str = "apix-gateway") -> None:
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - obvious
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": self.component,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in payload or key.startswith("_"):
                continue
            if value is None:
                continue
            payload[key] = value

        return json.dumps(
            payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False, default=str
        )


def _create_network_handler(url: str) -> Handler:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        raise ValueError(f"Invalid handler URL: {url}")

    host = parsed.hostname
    port = parsed.port or (443 if parsed.scheme == "https" else 80)

    if parsed.scheme in {"tcp", "socket"}:
        handler = SocketHandler(host, port)
        handler.closeOnError = True  # type: ignore[attr-defined]
        return handler
    if parsed.scheme in {"udp", "datagram"}:
        return DatagramHandler(host, port)
    if parsed.scheme in {"http", "https"}:
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        return HTTPHandler(
            host=f"{host}:{port}",
            url=path,
            method="POST",
            secure=parsed.scheme == "https",
        )
    raise ValueError(f"Unsupported handler scheme: {parsed.scheme}")


def _normalise_aggregators(raw: Iterable[str] | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw if item and item.strip()]


def configure_structured_logging(app: Flask) -> Logger:
    """Attach JSON handlers to the application logger and the engine loggers.

    The ``apix_gateway`` package logger (used by the pipeline engine and the
    service invoker) shares the handlers of the application logger so every
    line leaves the process in the same format.
    """

    level = app.config.get("LOG_LEVEL", logging.INFO)
    logger_name = app.config.get("LOGGER_NAME", DEFAULT_LOGGER_NAME)
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers = []

    formatter = JsonFormatter()
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    fallback_logger = logging.getLogger(__name__)
    for aggregator in _normalise_aggregators(app.config.get("LOG_AGGREGATORS")):
        try:
            handler = _create_network_handler(aggregator)
        except (OSError, ValueError, socket.error) as exc:
            fallback_logger.warning(
                "Failed to configure log aggregator %s: %s", aggregator, exc
            )
            continue
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False

    engine_logger = logging.getLogger("apix_gateway")
    engine_logger.setLevel(level)
    engine_logger.handlers = list(logger.handlers)
    engine_logger.propagate = False

    app.logger = logger
    return logger
