"""Predicates deciding whether a route or an extension applies to a request."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .errors import ConfigError
from .models import Condition, PipelineRequest


@dataclass(frozen=True)
class Always:
    def __call__(self, request: PipelineRequest) -> bool:
        return True


@dataclass(frozen=True)
class MethodIn:
    methods: frozenset[str]

    def __call__(self, request: PipelineRequest) -> bool:
        return request.method.upper() in self.methods


@dataclass(frozen=True)
class PathPrefix:
    prefix: str

    def __call__(self, request: PipelineRequest) -> bool:
        return request.path.startswith(self.prefix)


@dataclass(frozen=True)
class HeaderEquals:
    """Match a header value, or only its presence when ``value`` is None."""

    name: str
    value: str | None = None

    def __call__(self, request: PipelineRequest) -> bool:
        actual = request.header(self.name)
        if actual is None:
            return False
        return self.value is None or actual == self.value


@dataclass(frozen=True)
class HasPayload:
    expected: bool = True

    def __call__(self, request: PipelineRequest) -> bool:
        return bool(request.payload) is self.expected


@dataclass(frozen=True)
class AllOf:
    conditions: tuple[Condition, ...]

    def __call__(self, request: PipelineRequest) -> bool:
        return all(condition(request) for condition in self.conditions)


@dataclass(frozen=True)
class AnyOf:
    conditions: tuple[Condition, ...]

    def __call__(self, request: PipelineRequest) -> bool:
        return any(condition(request) for condition in self.conditions)


@dataclass(frozen=True)
class Not:
    condition: Condition

    def __call__(self, request: PipelineRequest) -> bool:
        return not self.condition(request)


ALWAYS = Always()


def _parse_header(data: Any) -> Condition:
    if isinstance(data, str):
        return HeaderEquals(name=data)
    if isinstance(data, Mapping) and data.get("name"):
        value = data.get("value")
        return HeaderEquals(name=str(data["name"]), value=None if value is None else str(value))
    raise ConfigError("Header condition requires a 'name'")


def _parse_methods(data: Any) -> Condition:
    if isinstance(data, str):
        data = [data]
    return MethodIn(frozenset(str(m).upper() for m in data))


def _parse_list(data: Any, key: str) -> tuple[Condition, ...]:
    if not isinstance(data, (list, tuple)):
        raise ConfigError(f"'{key}' condition expects a list")
    return tuple(parse_condition(item) for item in data)


_PARSERS: dict[str, Callable[[Any], Condition]] = {
    "methods": _parse_methods,
    "path_prefix": lambda data: PathPrefix(str(data)),
    "header": _parse_header,
    "has_payload": lambda data: HasPayload(bool(data)),
    "all": lambda data: AllOf(_parse_list(data, "all")),
    "any": lambda data: AnyOf(_parse_list(data, "any")),
    "not": lambda data: Not(parse_condition(data)),
}


def parse_condition(data: Any) -> Condition:
    """Build a condition from its configuration form.

    ``None`` or an empty mapping yields :data:`ALWAYS`. Callables are returned
    unchanged so programmatically built tables can use plain functions. Several
    keys in one mapping are combined with a logical AND.
    """

    if data is None:
        return ALWAYS
    if callable(data):
        return data
    if isinstance(data, bool):
        return ALWAYS if data else Not(ALWAYS)
    if not isinstance(data, Mapping):
        raise ConfigError(f"Unsupported condition: {data!r}")

    parts: list[Condition] = []
    for key, value in data.items():
        parser = _PARSERS.get(key)
        if parser is None:
            raise ConfigError(f"Unknown condition '{key}'")
        parts.append(parser(value))

    if not parts:
        return ALWAYS
    if len(parts) == 1:
        return parts[0]
    return AllOf(tuple(parts))
