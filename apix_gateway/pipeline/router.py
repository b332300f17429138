"""Mapping of extension status codes to pipeline directives."""
from __future__ import annotations

from .errors import ConfigError
from .models import Directive, RoutingTable

WILDCARD = "*"


def resolve_directive(status_code: int, table: RoutingTable, *, extension: str | None = None) -> Directive:
    """Return the directive for ``status_code``: exact entry first, then ``*``."""

    if status_code in table:
        return table[status_code]
    if WILDCARD in table:
        return table[WILDCARD]
    owner = f" of extension '{extension}'" if extension else ""
    raise ConfigError(f"No response routing{owner} for status {status_code}")
