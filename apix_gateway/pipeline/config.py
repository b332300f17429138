"""Load the route table and extension registry from YAML or JSON."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

import jsonschema
import yaml

from .conditions import parse_condition
from .errors import ConfigError
from .models import (
    Directive,
    ExtensionConfig,
    ExtensionReference,
    Route,
    ServiceDescriptor,
)

_DIRECTIVE_ALIASES: dict[str, Directive] = {
    "forward": Directive.FORWARD,
    "send_error": Directive.TERMINATE_ERROR,
    "terminate_error": Directive.TERMINATE_ERROR,
}

_CONDITION_SCHEMA: dict[str, Any] = {"type": ["object", "boolean", "null"]}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "routes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "condition": _CONDITION_SCHEMA,
                    "extensions": {
                        "type": "array",
                        "items": {
                            "anyOf": [
                                {"type": "string", "minLength": 1},
                                {
                                    "type": "object",
                                    "properties": {
                                        "name": {"type": "string", "minLength": 1},
                                        "condition": _CONDITION_SCHEMA,
                                    },
                                    "required": ["name"],
                                    "additionalProperties": False,
                                },
                            ]
                        },
                    },
                },
                "additionalProperties": False,
            },
        },
        "extensions": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "active": {"type": "boolean"},
                    "service": {
                        "type": "object",
                        "properties": {
                            "uri": {"type": "string", "minLength": 1},
                            "method": {"type": "string", "minLength": 1},
                        },
                        "required": ["uri"],
                        "additionalProperties": False,
                    },
                    "response_routing": {
                        "type": "object",
                        "minProperties": 1,
                        "additionalProperties": {
                            "type": "string",
                            "enum": sorted(_DIRECTIVE_ALIASES),
                        },
                    },
                },
                "required": ["service", "response_routing"],
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}


class ExtensionRegistry:
    """Read-only lookup of extension definitions keyed by name."""

    def __init__(self, extensions: Iterable[ExtensionConfig] = ()) -> None:
        self._extensions: Mapping[str, ExtensionConfig] = MappingProxyType(
            {extension.name: extension for extension in extensions}
        )

    def get(self, name: str) -> ExtensionConfig:
        try:
            return self._extensions[name]
        except KeyError:
            raise ConfigError(f"Unknown extension '{name}'") from None

    def names(self) -> tuple[str, ...]:
        return tuple(self._extensions)

    def __contains__(self, name: object) -> bool:
        return name in self._extensions

    def __iter__(self) -> Iterator[ExtensionConfig]:
        return iter(self._extensions.values())

    def __len__(self) -> int:
        return len(self._extensions)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable route table and extension registry."""

    routes: tuple[Route, ...]
    extensions: ExtensionRegistry

    @classmethod
    def empty(cls) -> "PipelineConfig":
        return cls(routes=(), extensions=ExtensionRegistry())


def read_config_document(
    source: str | Path | Mapping[str, Any],
    *,
    base_dir: str | Path | None = None,
) -> dict[str, Any]:
    """Read a configuration document from a mapping, file path or raw string.

    Args:
        source: A mapping, a path to a YAML/JSON file or a raw YAML/JSON
            string.
        base_dir: Optional base directory used to resolve relative paths.

    Returns:
        The parsed document.

    Raises:
        ConfigError: If the document cannot be read or parsed.
    """

    if isinstance(source, Mapping):
        return dict(source)

    path: Path | None = None
    if isinstance(source, Path):
        path = source
    elif "\n" not in source:
        path = Path(source)

    if path is not None and not path.is_absolute() and base_dir:
        path = Path(base_dir) / path

    if path is not None and (isinstance(source, Path) or _is_file(path)):
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read configuration file: {exc}") from exc
    else:
        text = str(source)

    text = text.strip()
    if not text:
        return {}

    if text.startswith("{"):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError("Invalid YAML pipeline configuration") from exc

    if not isinstance(data, dict):
        raise ConfigError("Pipeline configuration must be a mapping")
    return data


def load_pipeline_config(
    source: str | Path | Mapping[str, Any],
    *,
    base_dir: str | Path | None = None,
) -> PipelineConfig:
    """Load, validate and freeze a pipeline configuration document."""

    document = read_config_document(source, base_dir=base_dir)
    validate_document(document)

    extensions = ExtensionRegistry(
        _build_extension(name, data)
        for name, data in (document.get("extensions") or {}).items()
    )
    routes = tuple(
        _build_route(index, data, extensions)
        for index, data in enumerate(document.get("routes") or [])
    )
    return PipelineConfig(routes=routes, extensions=extensions)


def validate_document(document: Mapping[str, Any]) -> None:
    """Validate ``document`` against :data:`CONFIG_SCHEMA`."""

    try:
        jsonschema.validate(instance=document, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ConfigError(f"Invalid pipeline configuration at {location}: {exc.message}") from exc


def parse_routing_table(data: Mapping[str, Any], *, extension: str) -> dict[int | str, Directive]:
    table: dict[int | str, Directive] = {}
    for raw_key, raw_directive in data.items():
        key = str(raw_key).strip()
        directive = _DIRECTIVE_ALIASES.get(str(raw_directive).lower())
        if directive is None:
            raise ConfigError(
                f"Extension '{extension}' routes {key} to unknown directive '{raw_directive}'"
            )
        if key == "*":
            table["*"] = directive
            continue
        if not key.isdigit():
            raise ConfigError(f"Extension '{extension}' has invalid status code key '{key}'")
        table[int(key)] = directive
    return table


def _build_extension(name: str, data: Mapping[str, Any]) -> ExtensionConfig:
    service = data["service"]
    return ExtensionConfig(
        name=name,
        active=bool(data.get("active", True)),
        service=ServiceDescriptor(
            uri=str(service["uri"]),
            method=str(service.get("method", "POST")),
        ),
        response_routing=parse_routing_table(data["response_routing"], extension=name),
    )


def _build_route(index: int, data: Mapping[str, Any], registry: ExtensionRegistry) -> Route:
    name = str(data.get("name") or f"route-{index}")
    references: list[ExtensionReference] = []
    for entry in data.get("extensions") or []:
        if isinstance(entry, str):
            entry = {"name": entry}
        extension_name = entry["name"]
        if extension_name not in registry:
            raise ConfigError(f"Route '{name}' references unknown extension '{extension_name}'")
        references.append(
            ExtensionReference(
                name=extension_name,
                condition=parse_condition(entry.get("condition")),
            )
        )
    return Route(
        name=name,
        condition=parse_condition(data.get("condition")),
        extensions=tuple(references),
    )


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        # Raw documents longer than the platform's path limit.
        return False
