"""Configuration helpers for environment-aware setup."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, MutableMapping
import os

from dotenv import dotenv_values

__all__ = [
    "EnvironmentSettings",
    "load_environment_settings",
    "build_hierarchical_tree",
    "log_configuration_snapshot",
    "lookup_hierarchical_value",
    "split_list",
]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def split_list(raw: str | None) -> list[str]:
    """Split a comma separated value, dropping blanks."""

    return [item.strip() for item in (raw or "").split(",") if item.strip()]


@dataclass(frozen=True)
class EnvironmentSettings:
    """Represents the environment configuration detected at runtime.

    Lookups consult the process environment first, then ``KEY__CHILD``
    hierarchical overrides.
    """

    name: str
    project_root: Path
    loaded_files: tuple[str, ...]
    hierarchical: Mapping[str, Any]

    def get(self, key: str, default: str | None = None) -> str | None:
        value = os.getenv(key)
        if value is None:
            value = lookup_hierarchical_value(self.hierarchical, key)
        if value is None or value == "":
            return default
        return value

    def get_int(self, key: str, default: int) -> int:
        return int(self.get(key) or default)

    def get_float(self, key: str, default: float) -> float:
        return float(self.get(key) or default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() in _TRUE_VALUES


def build_hierarchical_tree(
    values: Mapping[str, str], *, delimiter: str = "__"
) -> Mapping[str, Any]:
    """Build a nested mapping from ``KEY__CHILD`` style environment variables."""

    tree: dict[str, Any] = {}
    for raw_key, value in values.items():
        if delimiter not in raw_key:
            continue
        segments = [segment.strip().upper() for segment in raw_key.split(delimiter) if segment.strip()]
        if not segments:
            continue
        current: MutableMapping[str, Any] = tree
        for part in segments[:-1]:
            node = current.setdefault(part, {})
            if not isinstance(node, MutableMapping):
                break
            current = node
        else:
            current[segments[-1]] = value
    return tree


def lookup_hierarchical_value(tree: Mapping[str, Any], key: str) -> str | None:
    """Lookup ``key`` in ``tree`` by splitting on underscores."""

    segments = [segment.strip().upper() for segment in key.split("_") if segment.strip()]
    if not segments:
        return None
    current: Any = tree
    for part in segments:
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    if isinstance(current, Mapping):
        return None
    return str(current)


def load_environment_settings(
    *, env: str | None = None, project_root: str | Path | None = None
) -> EnvironmentSettings:
    """Load layered ``.env`` files: base, local, per-environment, per-environment local."""

    root = Path(project_root or Path.cwd())
    name = (env or os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or "development").strip()
    name = name or "development"
    slug = name.lower()
    ordered_files = [
        root / ".env",
        root / ".env.local",
        root / f".env.{slug}",
        root / f".env.{slug}.local",
    ]

    original_keys = set(os.environ)
    loaded_files: list[str] = []
    for candidate in ordered_files:
        if not candidate.exists():
            continue
        # Later files override earlier ones; the real environment wins over all.
        for key, value in dotenv_values(candidate).items():
            if value is not None and key not in original_keys:
                os.environ[key] = value
        loaded_files.append(str(candidate))

    return EnvironmentSettings(
        name=name,
        project_root=root,
        loaded_files=tuple(loaded_files),
        hierarchical=build_hierarchical_tree(dict(os.environ)),
    )


def _sanitize_value(key: str, value: Any) -> Any:
    markers = ("SECRET", "PASSWORD", "TOKEN", "KEY")
    if any(marker in key.upper() for marker in markers):
        return "***"
    return value


def log_configuration_snapshot(
    *,
    logger: Any,
    settings: EnvironmentSettings,
    config: Mapping[str, Any],
    keys_of_interest: Iterable[str],
) -> None:
    """Log a sanitized snapshot of the runtime configuration."""

    snapshot = {
        key: _sanitize_value(key, config.get(key))
        for key in keys_of_interest
        if key in config
    }
    logger.info(
        "Runtime configuration initialised",
        extra={
            "environment": settings.name,
            "env_files": settings.loaded_files,
            "config_snapshot": snapshot,
        },
    )
