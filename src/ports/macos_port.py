"""macOS backend driving ``flutter build macos`` and ``xcodebuild``."""

from __future__ import annotations

import logging
from pathlib import Path

from contracts.errors import BuildFailure, ExecutionFailure
from devices.device import Device

from ._process import ProcessRunner
from ._xcode import find_xctestrun, result_bundle_path
from .base import invoke
from .options import MacOSAppOptions


class MacOSTestBackend:
    def __init__(
        self,
        project_directory: str | Path,
        runner: ProcessRunner,
        logger: logging.Logger | None = None,
    ) -> None:
        self._project_dir = Path(project_directory)
        self._runner = runner
        self._logger = logger or logging.getLogger(__name__)

    @property
    def derived_data(self) -> Path:
        return self._project_dir / "build" / "macos_integ"

    def build(self, options: MacOSAppOptions) -> None:
        self._logger.info("Building app with entrypoint %s for macOS...", Path(options.flutter.target).name)
        invoke(
            self._runner,
            options.to_flutter_build_invocation(),
            failure=BuildFailure,
            message="Failed to build app with entrypoint test_bundle.dart",
            cwd=self._project_dir,
            logger=self._logger,
        )
        invoke(
            self._runner,
            options.build_for_testing_invocation(self.derived_data),
            failure=BuildFailure,
            message=f"Failed to build scheme {options.scheme} for testing",
            cwd=self._project_dir / "macos",
            logger=self._logger,
        )
        self._logger.info("Completed building %s (%s)", options.scheme, options.configuration)

    def execute(self, options: MacOSAppOptions, device: Device) -> None:
        xctestrun = find_xctestrun(self.derived_data, options.scheme, "macosx")
        result_bundle = result_bundle_path(self._project_dir, "macos")
        self._logger.info("Running tests on %s...", device.resolved_name)
        invoke(
            self._runner,
            options.test_without_building_invocation(xctestrun=xctestrun, result_bundle=result_bundle),
            failure=ExecutionFailure,
            message=f"Tests failed on {device.resolved_name}",
            cwd=self._project_dir / "macos",
            logger=self._logger,
        )
        self._logger.info("Tests passed on %s", device.resolved_name)


__all__ = ["MacOSTestBackend"]
