"""First-match route selection."""
from __future__ import annotations

import logging
from typing import Iterable

from .errors import NoRouteMatched
from .models import PipelineRequest, Route

logger = logging.getLogger(__name__)


def match_route(routes: Iterable[Route], request: PipelineRequest) -> Route:
    """Return the first route whose condition holds for ``request``."""

    for route in routes:
        if route.condition(request):
            logger.debug("Route %s selected for %s %s", route.name, request.method, request.uri)
            return route
    raise NoRouteMatched(request.method, request.uri)
