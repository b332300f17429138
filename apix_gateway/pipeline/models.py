"""Data types shared by the pipeline engine."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from .errors import ConfigError


class Directive(enum.Enum):
    """Control decision derived from a stage's status code."""

    FORWARD = "forward"
    TERMINATE_ERROR = "send_error"


class Phase(enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass(frozen=True)
class UploadedFile:
    """Descriptor of a file uploaded with the inbound request."""

    field: str
    filename: str
    content_type: str | None = None
    size: int | None = None


@dataclass(frozen=True)
class PipelineRequest:
    """Immutable representation of an inbound request.

    The request is the context handed to every route and extension condition.
    """

    method: str
    uri: str
    headers: Mapping[str, str] = field(default_factory=dict)
    payload: bytes | None = None
    files: tuple[UploadedFile, ...] = ()
    content_type: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "files", tuple(self.files))

    @property
    def path(self) -> str:
        return self.uri.split("?", 1)[0]

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the header ``name`` using a case-insensitive lookup."""

        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    def copy(self, **kwargs: Any) -> "PipelineRequest":
        return replace(self, **kwargs)


Condition = Callable[[PipelineRequest], bool]


@dataclass(frozen=True)
class ServiceDescriptor:
    uri: str
    method: str = "POST"

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())


@dataclass(frozen=True)
class ExtensionReference:
    """One entry of a route's extension list."""

    name: str
    condition: Condition


@dataclass(frozen=True)
class Route:
    name: str
    condition: Condition
    extensions: tuple[ExtensionReference, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "extensions", tuple(self.extensions))


RoutingTable = Mapping[Any, Directive]


def freeze_routing(table: Mapping[Any, Directive]) -> RoutingTable:
    """Return an immutable routing table with integer status keys."""

    frozen: dict[int | str, Directive] = {}
    for key, directive in table.items():
        if key == "*":
            frozen["*"] = directive
        else:
            try:
                frozen[int(key)] = directive
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid status code key {key!r} in response routing") from None
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class ExtensionConfig:
    """Registry entry describing an extension and its backing service."""

    name: str
    service: ServiceDescriptor
    response_routing: RoutingTable
    active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "response_routing", freeze_routing(self.response_routing))


@dataclass(frozen=True)
class ResolvedExtension:
    """A runnable queue entry."""

    name: str
    service: ServiceDescriptor
    response_routing: RoutingTable


@dataclass(frozen=True)
class StageResult:
    body: bytes | None
    status_code: int
    content_type: str | None = None


@dataclass
class PipelineState:
    """Mutable per-request execution state owned by the executor."""

    current_payload: bytes | None
    current_content_type: str | None = None
    last_status_code: int | None = None
    phase: Phase = Phase.RUNNING
    executed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineOutcome:
    """Final result of one pipeline run."""

    phase: Phase
    status_code: int
    payload: bytes | None
    content_type: str | None = None
    route: str | None = None
    stages: Sequence[str] = ()
    terminated_by: str | None = None
    diagnostic: str | None = None

    @property
    def errored(self) -> bool:
        return self.phase is Phase.ERRORED
