"""Sequential execution of an extension queue."""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, Sequence

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .errors import DeadlineExceeded
from .models import (
    Directive,
    Phase,
    PipelineOutcome,
    PipelineRequest,
    PipelineState,
    ResolvedExtension,
)
from .router import resolve_directive

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..services.invoker import ServiceInvoker

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TERMINATE_ERROR_STATUS = 400
TERMINATE_ERROR_MESSAGE = "Your request was rejected by an extension."
DEFAULT_EMPTY_STATUS = 200


class PipelineExecutor:
    """Drive a queue of extensions through a service invoker.

    Stages run strictly one after another. A stage's non-empty body becomes
    the payload of the next stage; an empty body carries the previous payload
    over. The directive resolved from each stage's status code either
    continues the run or ends it with the fixed error outcome.
    """

    def __init__(
        self,
        invoker: "ServiceInvoker",
        *,
        empty_status: int = DEFAULT_EMPTY_STATUS,
        deadline: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._invoker = invoker
        self.empty_status = empty_status
        self.deadline = deadline if deadline and deadline > 0 else None
        self._clock = clock or time.monotonic

    def run(
        self,
        request: PipelineRequest,
        queue: Sequence[ResolvedExtension],
        *,
        route: str | None = None,
    ) -> PipelineOutcome:
        state = PipelineState(
            current_payload=request.payload,
            current_content_type=request.content_type,
        )
        expires_at = self._clock() + self.deadline if self.deadline else None

        attributes = {"pipeline.route": route, "pipeline.queue_length": len(queue)}
        attributes = {k: v for k, v in attributes.items() if v is not None}
        with tracer.start_as_current_span("pipeline.execute", attributes=attributes) as span:
            for extension in queue:
                directive = self._run_stage(extension, state, expires_at)
                if directive is Directive.TERMINATE_ERROR:
                    state.phase = Phase.ERRORED
                    span.set_status(
                        Status(status_code=StatusCode.ERROR, description="terminated")
                    )
                    logger.info(
                        "Pipeline terminated by extension %s with status %s",
                        extension.name,
                        state.last_status_code,
                    )
                    return PipelineOutcome(
                        phase=Phase.ERRORED,
                        status_code=TERMINATE_ERROR_STATUS,
                        payload=None,
                        route=route,
                        stages=tuple(state.executed),
                        terminated_by=extension.name,
                        diagnostic=TERMINATE_ERROR_MESSAGE,
                    )

            state.phase = Phase.COMPLETED
            status_code = state.last_status_code
            if status_code is None:
                status_code = self.empty_status
            span.set_attribute("http.status_code", status_code)
            return PipelineOutcome(
                phase=Phase.COMPLETED,
                status_code=status_code,
                payload=state.current_payload,
                content_type=state.current_content_type,
                route=route,
                stages=tuple(state.executed),
            )

    def _run_stage(
        self,
        extension: ResolvedExtension,
        state: PipelineState,
        expires_at: float | None,
    ) -> Directive:
        timeout = None
        if expires_at is not None:
            remaining = expires_at - self._clock()
            if remaining <= 0:
                raise DeadlineExceeded(
                    f"Pipeline deadline expired before extension '{extension.name}'",
                    extension=extension.name,
                )
            timeout = remaining

        service = extension.service
        with tracer.start_as_current_span(
            "pipeline.stage",
            attributes={
                "extension.name": extension.name,
                "extension.uri": service.uri,
                "extension.method": service.method,
            },
        ) as span:
            result = self._invoker.invoke(
                service.uri,
                service.method,
                state.current_payload,
                content_type=state.current_content_type,
                timeout=timeout,
                extension=extension.name,
            )
            state.executed.append(extension.name)
            if result.body:
                state.current_payload = result.body
                state.current_content_type = result.content_type
            state.last_status_code = result.status_code

            directive = resolve_directive(
                result.status_code, extension.response_routing, extension=extension.name
            )
            span.set_attribute("http.status_code", result.status_code)
            span.set_attribute("extension.directive", directive.value)
            logger.debug(
                "Extension %s returned %s -> %s",
                extension.name,
                result.status_code,
                directive.value,
            )
            return directive
