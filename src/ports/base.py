"""Backend interface shared by the platform ports."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence, Type

from contracts.errors import ToolchainFailure
from devices.device import Device

from ._process import ProcessFailure, ProcessResult, ProcessRunner


class TestBackend(Protocol):
    """Build and execute capabilities against one device.

    macOS apps run straight from the build products and are never
    uninstalled, so only the Android and iOS backends are
    :class:`UninstallingBackend`.
    """

    __test__ = False

    def build(self, options: Any) -> None:
        """Build the app under test together with the test runner."""

    def execute(self, options: Any, device: Device) -> None:
        """Run the bundled tests on *device*; raise on any test failure."""


class UninstallingBackend(TestBackend, Protocol):
    def uninstall(self, app_id: str, device: Device, flavor: str | None = None) -> None:
        """Remove the app and its test runner from *device*."""


def invoke(
    runner: ProcessRunner,
    cmd: Sequence[str],
    *,
    failure: Type[ToolchainFailure],
    message: str,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> ProcessResult:
    """Run *cmd* and translate process errors into *failure*."""

    try:
        return runner.run(cmd, cwd=cwd, env=env)
    except ProcessFailure as exc:
        raise failure(
            message,
            command=exc.result.args,
            returncode=exc.result.returncode,
            output=exc.result.tail,
        ) from exc
    except OSError as exc:
        if logger is not None:
            logger.debug("Could not start %s: %s", cmd[0], exc)
        raise failure(f"{message}: {exc}", command=tuple(str(part) for part in cmd)) from exc


__all__ = ["TestBackend", "UninstallingBackend", "invoke"]
