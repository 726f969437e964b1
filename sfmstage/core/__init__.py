from .context import PipelineRun
from .events import ProgressEmitter, ProgressEvent, ProgressKind
from .pipeline import Pipeline
from .engine import BaseEngine, create_engine
from .exceptions import (
    BackendUnavailable,
    ConfigurationError,
    EngineFailure,
    InvalidCameraModel,
    InvalidCameraParameters,
    PreconditionError,
    SfmStageError,
    UnsupportedFormat,
)
from .hardware import Capabilities, detect_capabilities
from .options import ProjectConfiguration, resolve_options
from .persistence import IncrementalPersistenceController, write_seed_result
from .reconstruction import Reconstruction, ReconstructionManager
from .stage import ComputeContext, ExecutionPolicy, Stage, StageRunner
from .logger import attach_project_log, get_logger, run_logger, setup_logging

__all__ = [
    "PipelineRun", "Pipeline",
    "ProgressEmitter", "ProgressEvent", "ProgressKind",
    "BaseEngine", "create_engine",
    "SfmStageError", "ConfigurationError", "InvalidCameraModel", "InvalidCameraParameters",
    "UnsupportedFormat", "PreconditionError", "BackendUnavailable", "EngineFailure",
    "Capabilities", "detect_capabilities",
    "ProjectConfiguration", "resolve_options",
    "IncrementalPersistenceController", "write_seed_result",
    "Reconstruction", "ReconstructionManager",
    "ComputeContext", "ExecutionPolicy", "Stage", "StageRunner",
    "attach_project_log", "get_logger", "run_logger", "setup_logging",
]
