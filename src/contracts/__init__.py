"""Error types and file contracts shared across the runner."""

from __future__ import annotations

from .errors import (
    DEFAULT_FAILURE_MESSAGE,
    BuildFailure,
    ConfigurationError,
    DeviceResolutionError,
    ExecutionFailure,
    RunnerError,
    ToolExit,
    ToolchainFailure,
    UninstallFailure,
)
from .schemas import validate

__all__ = [
    "DEFAULT_FAILURE_MESSAGE",
    "BuildFailure",
    "ConfigurationError",
    "DeviceResolutionError",
    "ExecutionFailure",
    "RunnerError",
    "ToolExit",
    "ToolchainFailure",
    "UninstallFailure",
    "validate",
]
