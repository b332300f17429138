"""Compose route matching, queue building and execution for one request."""
from __future__ import annotations

import logging

from .config import PipelineConfig
from .executor import PipelineExecutor
from .matcher import match_route
from .models import PipelineOutcome, PipelineRequest
from .queue import build_queue

logger = logging.getLogger(__name__)


class Orchestrator:
    def __init__(self, config: PipelineConfig, executor: PipelineExecutor) -> None:
        self.config = config
        self.executor = executor

    def handle(self, request: PipelineRequest) -> PipelineOutcome:
        route = match_route(self.config.routes, request)
        queue = build_queue(route, self.config.extensions, request)
        if not queue:
            logger.info("Route %s resolved to an empty extension queue", route.name)
        return self.executor.run(request, queue, route=route.name)
