"""Shared error types for the test runner."""

from __future__ import annotations

from typing import Sequence

DEFAULT_FAILURE_MESSAGE = (
    "See the logs above to learn what happened. Also consider running with "
    "--verbose. If the logs still aren't useful, please report an issue "
    "with the verbose output attached."
)


class RunnerError(RuntimeError):
    """Base class for every failure that ends a run with a non-zero status."""

    exit_code = 1


class ToolExit(RunnerError):
    """Fatal, user-facing error reported without a stack trace."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ConfigurationError(ToolExit):
    """Raised when project files, defines or CLI values are invalid."""


class DeviceResolutionError(ToolExit):
    """Raised when the device selectors do not resolve to exactly one device."""


class ToolchainFailure(RunnerError):
    """A platform toolchain command exited unsuccessfully."""

    phase = "toolchain"

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = tuple(command)
        self.returncode = returncode
        self.output = output

    def detail(self) -> str:
        """Return the verbose diagnostic block for this failure."""

        lines = [f"phase: {self.phase}"]
        if self.command:
            lines.append(f"command: {' '.join(self.command)}")
        if self.returncode is not None:
            lines.append(f"exit code: {self.returncode}")
        if self.output:
            lines.append("output (tail):")
            lines.append(self.output)
        return "\n".join(lines)


class BuildFailure(ToolchainFailure):
    phase = "build"


class ExecutionFailure(ToolchainFailure):
    phase = "execute"


class UninstallFailure(ToolchainFailure):
    phase = "uninstall"


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
]
