"""Expansion of a route into an ordered queue of runnable extensions."""
from __future__ import annotations

import logging

from .config import ExtensionRegistry
from .models import PipelineRequest, ResolvedExtension, Route

logger = logging.getLogger(__name__)


def build_queue(
    route: Route,
    registry: ExtensionRegistry,
    request: PipelineRequest,
) -> tuple[ResolvedExtension, ...]:
    """Resolve the extensions of ``route`` that apply to ``request``.

    Declared order is preserved. Inactive extensions and those whose local
    condition does not hold are skipped; an unknown name raises
    :class:`~apix_gateway.pipeline.errors.ConfigError`.
    """

    queue: list[ResolvedExtension] = []
    for reference in route.extensions:
        extension = registry.get(reference.name)
        if not extension.active:
            logger.debug("Skipping inactive extension %s", extension.name)
            continue
        if not reference.condition(request):
            logger.debug("Skipping extension %s: condition not met", extension.name)
            continue
        queue.append(
            ResolvedExtension(
                name=extension.name,
                service=extension.service,
                response_routing=extension.response_routing,
            )
        )
    return tuple(queue)
