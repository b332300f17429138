"""Errors raised by the extension pipeline engine."""

from __future__ import annotations


class PipelineError(Exception):
    """Base error for fatal pipeline aborts."""


class NoRouteMatched(PipelineError):
    """Raised when no route condition holds for a request."""

    def __init__(self, method: str, uri: str) -> None:
        super().__init__(f"No route matched {method} {uri}")
        self.method = method
        self.uri = uri


class ConfigError(PipelineError):
    """Raised when the route table or extension registry is unusable."""


class ServiceUnavailable(PipelineError):
    """Raised when an extension service cannot be reached."""

    def __init__(self, message: str, *, extension: str | None = None, uri: str | None = None) -> None:
        super().__init__(message)
        self.extension = extension
        self.uri = uri


class DeadlineExceeded(PipelineError):
    """Raised when the pipeline deadline expires before a stage starts."""

    def __init__(self, message: str, *, extension: str | None = None) -> None:
        super().__init__(message)
        self.extension = extension
