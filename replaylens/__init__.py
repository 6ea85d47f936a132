from replaylens.core.config import ExecuteOptions, ReplaySettings, get_platform_config
from replaylens.core.errors import (
    ActionExecutionFailure,
    CaptureFailure,
    ConfigurationError,
    InjectionFailure,
    ReplayLensError,
    ResolutionFailure,
)
from replaylens.core.lens import ReplayLens
from replaylens.core.logging import configure_logging, get_logger
from replaylens.core.types import (
    Action,
    ActionResult,
    ActionType,
    ErrorRecord,
    ExecutionReport,
    ResolutionMode,
    SessionInfo,
    VisualDescriptor,
    Workflow,
)
from replaylens.driver import BrowserDriver, PlaywrightDriver
from replaylens.recorder import ActionCompiler, InteractionRecorder
from replaylens.replay import ReplayController, ResolutionEngine
from replaylens.store import WorkflowStore

__all__ = [
    "ReplayLens",
    "ReplaySettings",
    "ExecuteOptions",
    "get_platform_config",
    "configure_logging",
    "get_logger",
    # Errors
    "ReplayLensError",
    "CaptureFailure",
    "InjectionFailure",
    "ResolutionFailure",
    "ActionExecutionFailure",
    "ConfigurationError",
    # Data model
    "Action",
    "ActionResult",
    "ActionType",
    "ErrorRecord",
    "ExecutionReport",
    "ResolutionMode",
    "SessionInfo",
    "VisualDescriptor",
    "Workflow",
    # Components
    "BrowserDriver",
    "PlaywrightDriver",
    "InteractionRecorder",
    "ActionCompiler",
    "ReplayController",
    "ResolutionEngine",
    "WorkflowStore",
]
