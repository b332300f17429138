"""Extension pipeline engine: route matching, queue building and execution."""

from .conditions import parse_condition
from .config import ExtensionRegistry, PipelineConfig, load_pipeline_config
from .errors import (
    ConfigError,
    DeadlineExceeded,
    NoRouteMatched,
    PipelineError,
    ServiceUnavailable,
)
from .executor import TERMINATE_ERROR_MESSAGE, TERMINATE_ERROR_STATUS, PipelineExecutor
from .matcher import match_route
from .models import (
    Directive,
    ExtensionConfig,
    ExtensionReference,
    Phase,
    PipelineOutcome,
    PipelineRequest,
    ResolvedExtension,
    Route,
    ServiceDescriptor,
    StageResult,
    UploadedFile,
)
from .orchestrator import Orchestrator
from .queue import build_queue
from .router import resolve_directive

__all__ = [
    "ConfigError",
    "DeadlineExceeded",
    "Directive",
    "ExtensionConfig",
    "ExtensionReference",
    "ExtensionRegistry",
    "NoRouteMatched",
    "Orchestrator",
    "Phase",
    "PipelineConfig",
    "PipelineError",
    "PipelineExecutor",
    "PipelineOutcome",
    "PipelineRequest",
    "ResolvedExtension",
    "Route",
    "ServiceDescriptor",
    "ServiceUnavailable",
    "StageResult",
    "TERMINATE_ERROR_MESSAGE",
    "TERMINATE_ERROR_STATUS",
    "UploadedFile",
    "build_queue",
    "load_pipeline_config",
    "match_route",
    "parse_condition",
    "resolve_directive",
]
