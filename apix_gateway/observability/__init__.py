"""Logging, metrics and tracing for the gateway."""

from .logging import JsonFormatter, configure_structured_logging  # noqa: F401
from .metrics import MetricsRegistry, configure_metrics  # noqa: F401
from .tracing import configure_tracing  # noqa: F401

__all__ = [
    "JsonFormatter",
    "configure_structured_logging",
    "configure_metrics",
    "configure_tracing",
    "MetricsRegistry",
]
